"""State engine package."""

from txledger.state.commit_buffer import CommitBuffer
from txledger.state.engine import (
    BalanceOverflow,
    EngineNotReady,
    EngineStatus,
    InsufficientBalance,
    StateEngine,
    StateError,
)

__all__ = [
    "BalanceOverflow",
    "CommitBuffer",
    "EngineNotReady",
    "EngineStatus",
    "InsufficientBalance",
    "StateEngine",
    "StateError",
]
