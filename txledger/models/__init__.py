"""
Data Models Package

This package contains all Pydantic models used by txledger.
Everything read from or written to disk must conform to these schemas.
"""

from txledger.models.transaction import (
    MAX_BALANCE,
    REWARD_MARKER,
    Account,
    Amount,
    Balances,
    Transaction,
)
from txledger.models.genesis import Genesis
from txledger.models.audit import (
    AuditSeverity,
    LedgerEvent,
    LedgerEventBuilder,
    LedgerEventType,
)

__all__ = [
    # Ledger models
    "MAX_BALANCE",
    "REWARD_MARKER",
    "Account",
    "Amount",
    "Balances",
    "Genesis",
    "Transaction",
    # Audit models
    "AuditSeverity",
    "LedgerEvent",
    "LedgerEventBuilder",
    "LedgerEventType",
]
