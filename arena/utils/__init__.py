"""Utility modules for the prediction arena."""

from .database import (
    get_db,
    init_db,
    make_engine,
    User,
)
from .logger import setup_logging

__all__ = [
    "get_db",
    "init_db",
    "make_engine",
    "User",
    "setup_logging",
]
