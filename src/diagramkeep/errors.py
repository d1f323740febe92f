"""Error taxonomy shared by the store, the exchange boundary and the controller."""

from __future__ import annotations


class DiagramKeepError(Exception):
    """Base exception for diagramkeep."""


class StorageError(DiagramKeepError):
    """A persistence write or read failed for a reason other than capacity."""


class QuotaExceeded(StorageError):
    """A write would exceed the capacity of the key-value substrate.

    Recoverable by the user freeing space; callers route it to the storage
    manager instead of treating it as an ordinary I/O failure.
    """

    def __init__(self, key: str, requested: int, quota: int) -> None:
        self.key = key
        self.requested = requested
        self.quota = quota
        super().__init__(
            f"Storage quota exceeded writing '{key}' ({requested} bytes needed, quota {quota})"
        )


class CorruptRegistry(StorageError):
    """The persisted registry index could not be decoded."""


class RecordNotFound(DiagramKeepError, KeyError):
    """No saved record with the given id."""

    def __str__(self) -> str:
        return f"No saved diagram with id '{self.args[0]}'"


class ParseError(DiagramKeepError):
    """An imported document could not be parsed."""


class UserCancelled(DiagramKeepError):
    """The user backed out of a dialog or confirmation. Not a failure."""
