"""Genesis loading package."""

from txledger.services.genesis.loader import GenesisError, load_genesis

__all__ = [
    "GenesisError",
    "load_genesis",
]
