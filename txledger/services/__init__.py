"""Services package."""

from txledger.services.genesis import GenesisError, load_genesis
from txledger.services.storage import (
    CorruptRecord,
    InMemoryLedgerStore,
    JsonlLedgerStore,
    LedgerStoreInterface,
    PersistFailure,
    StorageError,
    StoreUnavailable,
)

__all__ = [
    # Genesis
    "GenesisError",
    "load_genesis",
    # Ledger storage
    "CorruptRecord",
    "InMemoryLedgerStore",
    "JsonlLedgerStore",
    "LedgerStoreInterface",
    "PersistFailure",
    "StorageError",
    "StoreUnavailable",
]
