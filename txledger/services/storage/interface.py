"""
Abstract Ledger Store Interface

DESIGN DECISION: We define an abstract interface for the transaction log.
This allows us to:
1. Keep the state engine independent of the on-disk format
2. Use in-memory storage for testing
3. Swap the newline-delimited JSON file for another append-only medium

The interface is intentionally small: the log is append-only and is only
ever read back in full, front to back.
"""

from abc import ABC, abstractmethod
from typing import Iterator, Optional

from txledger.models.transaction import Transaction


class LedgerStoreInterface(ABC):
    """
    Abstract interface for the durable transaction log.

    Records are never modified or deleted once appended.
    """

    @property
    @abstractmethod
    def location(self) -> str:
        """Human-readable location of the log (path, URI, ...)."""
        pass

    @abstractmethod
    def replay_all(self) -> Iterator[Transaction]:
        """
        Lazily yield every transaction in the log, in append order.

        Raises:
            CorruptRecord: If any record fails to decode. Records yielded
                before the bad one must not be treated as a complete replay.
            StoreUnavailable: If the store has been closed
        """
        pass

    @abstractmethod
    def append(self, tx: Transaction) -> None:
        """
        Append one transaction as a new record at the end of the log.

        Returns only once the record is durable from the store's point of
        view. On failure no part of the record is observable in the log.

        Raises:
            PersistFailure: If the record could not be written
            StoreUnavailable: If the store has been closed
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the underlying resource. Safe to call more than once."""
        pass

    def __enter__(self) -> "LedgerStoreInterface":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class StorageError(Exception):
    """Base exception for ledger store operations."""
    pass


class StoreUnavailable(StorageError):
    """The log does not exist, cannot be opened, or has been closed."""
    pass


class CorruptRecord(StorageError):
    """A log record failed to decode during replay."""

    def __init__(self, line_number: int, reason: str, location: Optional[str] = None):
        self.line_number = line_number
        self.reason = reason
        self.location = location
        where = f"{location}:{line_number}" if location else f"record {line_number}"
        super().__init__(f"Corrupt ledger record at {where}: {reason}")


class PersistFailure(StorageError):
    """A record could not be appended to the log."""
    pass
