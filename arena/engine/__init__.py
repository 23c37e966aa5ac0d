"""Round engine: domain types and errors."""

from arena.engine.errors import (
    ArenaError,
    PriceFeedError,
    RateLimitError,
    NotificationError,
    UserRegistryError,
    AlreadyActiveError,
    AlreadyResolvedError,
    UserInputError,
    InvalidDirectionError,
    UnknownAssetError,
    NoActiveRoundError,
    RoundNotFoundError,
    RoundNotActiveError,
)
from arena.engine.models import (
    Direction,
    RoundStatus,
    Asset,
    PriceSnapshot,
    Prediction,
    Round,
)

__all__ = [
    'ArenaError',
    'PriceFeedError',
    'RateLimitError',
    'NotificationError',
    'UserRegistryError',
    'AlreadyActiveError',
    'AlreadyResolvedError',
    'UserInputError',
    'InvalidDirectionError',
    'UnknownAssetError',
    'NoActiveRoundError',
    'RoundNotFoundError',
    'RoundNotActiveError',
    'Direction',
    'RoundStatus',
    'Asset',
    'PriceSnapshot',
    'Prediction',
    'Round',
]
