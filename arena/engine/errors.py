"""Exception hierarchy for the round engine."""


class ArenaError(Exception):
    """Base class for all engine errors."""

    pass


# ========== TRANSIENT-EXTERNAL ==========

class PriceFeedError(ArenaError):
    """Price feed call failed (timeout, HTTP error, malformed payload)."""

    pass


class RateLimitError(PriceFeedError):
    """Price feed rejected the call with HTTP 429."""

    pass


class NotificationError(ArenaError):
    """Notification channel could not deliver a message."""

    pass


class UserRegistryError(ArenaError):
    """User registry failed to read or update a record."""

    pass


# ========== INVARIANT-VIOLATION ==========

class AlreadyActiveError(ArenaError):
    """An Active round already exists for the asset."""

    def __init__(self, symbol: str, round_id: str):
        super().__init__(f"{symbol} already has an active round ({round_id})")
        self.symbol = symbol
        self.round_id = round_id


class AlreadyResolvedError(ArenaError):
    """The round was resolved by an earlier call."""

    def __init__(self, round_id: str):
        super().__init__(f"Round {round_id} is already resolved")
        self.round_id = round_id


# ========== USER-INPUT ==========

class UserInputError(ArenaError):
    """
    Rejected user request.

    The message is plain text meant for the user and may echo their input.
    """

    pass


class InvalidDirectionError(UserInputError):
    """Direction is not one of up/down."""

    def __init__(self, value: str):
        super().__init__(f"Invalid direction '{value}'. Use 'up' or 'down'.")
        self.value = value


class UnknownAssetError(UserInputError):
    """Asset symbol is not tracked."""

    def __init__(self, symbol: str):
        super().__init__(f"{symbol} is not a tracked asset.")
        self.symbol = symbol


class NoActiveRoundError(UserInputError):
    """No open round for the asset."""

    def __init__(self, symbol: str):
        super().__init__(
            f"There is no open round for {symbol} right now. "
            f"Please wait for the next round to start."
        )
        self.symbol = symbol


class RoundNotFoundError(UserInputError):
    """Round id is unknown (never existed or already evicted)."""

    def __init__(self, round_id: str):
        super().__init__(f"Round {round_id} was not found.")
        self.round_id = round_id


class RoundNotActiveError(UserInputError):
    """Round no longer accepts predictions."""

    def __init__(self, round_id: str):
        super().__init__(
            f"Round {round_id} is no longer open. Please wait for the next round."
        )
        self.round_id = round_id
