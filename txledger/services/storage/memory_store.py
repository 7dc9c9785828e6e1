"""
In-Memory Ledger Store

Keeps encoded frames in a list. Frames go through the same encoding and
decoding as the file store, so replay behaves identically, minus durability.
"""

from typing import Iterable, Iterator, Optional

from pydantic import ValidationError

from txledger.models.transaction import Transaction
from txledger.services.storage.interface import (
    CorruptRecord,
    LedgerStoreInterface,
    StoreUnavailable,
)
from txledger.services.storage.jsonl_store import summarize_validation_error


class InMemoryLedgerStore(LedgerStoreInterface):
    """Non-durable ledger store backed by a list of encoded frames."""

    def __init__(self, frames: Optional[Iterable[str]] = None):
        self._frames: list[str] = list(frames or [])
        self._closed = False

    @property
    def location(self) -> str:
        return "memory"

    @property
    def frames(self) -> tuple[str, ...]:
        """Encoded records in append order."""
        return tuple(self._frames)

    def _require_open(self) -> None:
        if self._closed:
            raise StoreUnavailable("In-memory ledger store is closed")

    def replay_all(self) -> Iterator[Transaction]:
        self._require_open()
        for index, frame in enumerate(list(self._frames), start=1):
            try:
                yield Transaction.from_record(frame)
            except ValidationError as e:
                raise CorruptRecord(
                    index,
                    summarize_validation_error(e),
                    location=self.location,
                ) from e

    def append(self, tx: Transaction) -> None:
        self._require_open()
        self._frames.append(tx.to_record())

    def close(self) -> None:
        self._closed = True
