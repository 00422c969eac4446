from __future__ import annotations


class NotFoundError(ValueError):
    """A referenced entity does not exist."""


class InvalidArgumentError(ValueError):
    """A required field is missing or malformed."""


class InsufficientStockError(ValueError):
    """The source holder does not have enough quantity for a movement."""

    def __init__(self, message: str, *, holder: str, available: int, requested: int) -> None:
        super().__init__(message)
        self.holder = holder
        self.available = available
        self.requested = requested

    @property
    def shortfall(self) -> int:
        return self.requested - self.available
