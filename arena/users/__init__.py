"""User statistics registries."""

from arena.users.registry import (
    UserRecord,
    UserRegistry,
    InMemoryUserRegistry,
    SqlUserRegistry,
)

__all__ = [
    'UserRecord',
    'UserRegistry',
    'InMemoryUserRegistry',
    'SqlUserRegistry',
]
