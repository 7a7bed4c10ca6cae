"""Error taxonomy for the counting engine.

Every error carries a message that can be shown to the operator as-is.
"""
from __future__ import annotations


class StocktakeError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StocktakeError):
    """Roster import rejected; ``errors`` lists the offending rows."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors or [])

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        return f"{self.message}: {'; '.join(self.errors)}"


class ItemNotFound(StocktakeError):
    pass


class InvalidQuantity(StocktakeError):
    pass


class NoActiveSession(StocktakeError):
    def __init__(self, message: str = "No active counting session") -> None:
        super().__init__(message)


class StorageError(StocktakeError):
    """A persisted document could not be written."""
