"""
Ledger Storage Package

Provides the abstract ledger store interface and its implementations.
The newline-delimited JSON file is the production backend; the in-memory
store shares its encoding for tests.
"""

from txledger.services.storage.interface import (
    CorruptRecord,
    LedgerStoreInterface,
    PersistFailure,
    StorageError,
    StoreUnavailable,
)
from txledger.services.storage.jsonl_store import JsonlLedgerStore
from txledger.services.storage.memory_store import InMemoryLedgerStore

__all__ = [
    # Interface
    "LedgerStoreInterface",
    # Exceptions
    "CorruptRecord",
    "PersistFailure",
    "StorageError",
    "StoreUnavailable",
    # Implementations
    "InMemoryLedgerStore",
    "JsonlLedgerStore",
]
