"""
Newline-Delimited JSON Ledger Store

The ledger file holds one compact JSON transaction per line, in append
order. The file is the source of truth: balances are rebuilt from it on
every start.

TRADEOFFS:
- Startup cost grows with the log (full replay, no checkpoints)
- One writer per file; nothing here coordinates between processes
- Every append is fsynced by default, trading throughput for durability

The file must already exist. Creating it (and the genesis file next to it)
is a bootstrap concern outside this module.
"""

import os
from pathlib import Path
from typing import Iterator, Union

from pydantic import ValidationError

from txledger.models.transaction import Transaction
from txledger.services.storage.interface import (
    CorruptRecord,
    LedgerStoreInterface,
    PersistFailure,
    StoreUnavailable,
)


class JsonlLedgerStore(LedgerStoreInterface):
    """
    File-backed append-only transaction log.

    Writes go through a single unbuffered read/write handle so a failed
    write can be truncated away without stale bytes lingering in a buffer.
    """

    def __init__(self, handle, path: Path, fsync: bool = True):
        self._handle = handle
        self._path = path
        self._fsync = fsync

    @classmethod
    def open(cls, path: Union[str, Path], fsync: bool = True) -> "JsonlLedgerStore":
        """
        Open an existing ledger file for reading and appending.

        Never creates the file.

        Raises:
            StoreUnavailable: If the path is missing or cannot be opened
                for read/write
        """
        path = Path(path)
        if not path.exists():
            raise StoreUnavailable(f"Ledger file not found: {path}")
        if not path.is_file():
            raise StoreUnavailable(f"Ledger path is not a regular file: {path}")

        try:
            handle = open(path, "r+b", buffering=0)
        except OSError as e:
            raise StoreUnavailable(f"Cannot open ledger file {path}: {e}") from e

        return cls(handle, path, fsync=fsync)

    @property
    def location(self) -> str:
        return str(self._path)

    @property
    def closed(self) -> bool:
        return self._handle.closed

    def _require_open(self):
        if self._handle.closed:
            raise StoreUnavailable(f"Ledger store is closed: {self._path}")
        return self._handle

    def replay_all(self) -> Iterator[Transaction]:
        """
        Yield every transaction in file order.

        Any line that does not decode to a transaction, blank lines
        included, aborts the replay.
        """
        self._require_open()

        try:
            reader = open(self._path, "rb")
        except OSError as e:
            raise StoreUnavailable(f"Cannot read ledger file {self._path}: {e}") from e

        with reader:
            for line_number, raw in enumerate(reader, start=1):
                try:
                    line = raw.decode("utf-8")
                except UnicodeDecodeError as e:
                    raise CorruptRecord(
                        line_number,
                        f"invalid UTF-8 ({e.reason})",
                        location=self.location,
                    ) from e
                try:
                    yield Transaction.from_record(line)
                except ValidationError as e:
                    raise CorruptRecord(
                        line_number,
                        summarize_validation_error(e),
                        location=self.location,
                    ) from e

    def append(self, tx: Transaction) -> None:
        """
        Append one record and make it durable.

        On any write error the file is truncated back to its previous size.
        """
        handle = self._require_open()

        try:
            frame = (tx.to_record() + "\n").encode("utf-8")
        except (TypeError, ValueError) as e:
            raise PersistFailure(f"Could not encode transaction: {e}") from e

        try:
            end = handle.seek(0, os.SEEK_END)
            if end > 0:
                # A final line without its newline would merge with this frame
                handle.seek(end - 1)
                if handle.read(1) != b"\n":
                    frame = b"\n" + frame
                handle.seek(end)
        except OSError as e:
            raise PersistFailure(f"Could not position ledger file {self._path}: {e}") from e

        try:
            self._write_all(handle, frame)
            if self._fsync:
                os.fsync(handle.fileno())
        except OSError as e:
            self._rollback(handle, end)
            raise PersistFailure(f"Could not append to ledger file {self._path}: {e}") from e

    @staticmethod
    def _write_all(handle, frame: bytes) -> None:
        view = memoryview(frame)
        written = 0
        while written < len(frame):
            written += handle.write(view[written:])

    def _rollback(self, handle, size: int) -> None:
        try:
            handle.truncate(size)
        except OSError as e:
            raise PersistFailure(
                f"Append failed and ledger file {self._path} could not be "
                f"truncated back to {size} bytes: {e}"
            ) from e

    def close(self) -> None:
        if not self._handle.closed:
            self._handle.close()


def summarize_validation_error(error: ValidationError) -> str:
    """First validation error as a single line."""
    errors = error.errors()
    if not errors:
        return str(error)
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    return f"{loc}: {first['msg']}" if loc else first["msg"]
