"""
Audit Models for txledger

Every state-changing step of the ledger is described by an audit event:
opening the store, replaying the log, accepting or rejecting a
transaction, and persisting the mempool.

DESIGN DECISION: Audit events are observations only. Nothing in the ledger
reads them back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from txledger.models.transaction import Transaction


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LedgerEventType(str, Enum):
    """
    Types of events we audit.

    One event type per step of the ledger lifecycle.
    """
    # Store lifecycle
    STORE_OPENED = "store_opened"
    STORE_CLOSED = "store_closed"

    # Startup replay
    REPLAY_STARTED = "replay_started"
    REPLAY_COMPLETED = "replay_completed"
    REPLAY_FAILED = "replay_failed"

    # Live transactions
    TX_ACCEPTED = "tx_accepted"
    TX_REJECTED = "tx_rejected"

    # Persistence
    TX_PERSISTED = "tx_persisted"
    PERSIST_COMPLETED = "persist_completed"
    PERSIST_FAILED = "persist_failed"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class LedgerEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of the audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: LedgerEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    description: str = Field(
        ...,
        description="Human-readable description of what happened"
    )

    # Event-specific data
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


def _tx_details(tx: Transaction) -> dict[str, Any]:
    return {
        "from": tx.from_,
        "to": tx.to,
        "value": tx.value,
        "data": tx.data,
    }


class LedgerEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = LedgerEventBuilder.tx_accepted(tx, mempool_size=3)
        event = LedgerEventBuilder.replay_completed(records=120, accounts=4)
    """

    @staticmethod
    def store_opened(path: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STORE_OPENED,
            description=f"Ledger store opened: {path}",
            details={"path": path},
        )

    @staticmethod
    def store_closed(path: str) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.STORE_CLOSED,
            description=f"Ledger store closed: {path}",
            details={"path": path},
        )

    @staticmethod
    def replay_started(accounts: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.REPLAY_STARTED,
            description=f"Replaying ledger from genesis ({accounts} accounts)",
            details={"genesis_accounts": accounts},
        )

    @staticmethod
    def replay_completed(records: int, accounts: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.REPLAY_COMPLETED,
            description=f"Replay completed: {records} records applied",
            details={
                "records": records,
                "accounts": accounts,
            },
        )

    @staticmethod
    def replay_failed(
        records: int,
        error_type: str,
        error_message: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.REPLAY_FAILED,
            severity=AuditSeverity.CRITICAL,
            description=f"Replay aborted after {records} records",
            details={"records": records},
            error_code=error_type,
            error_message=error_message,
        )

    @staticmethod
    def tx_accepted(tx: Transaction, mempool_size: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TX_ACCEPTED,
            description=f"Transaction accepted: {tx.from_} -> {tx.to} ({tx.value})",
            details={
                **_tx_details(tx),
                "reward": tx.is_reward,
                "mempool_size": mempool_size,
            },
        )

    @staticmethod
    def tx_rejected(
        tx: Transaction,
        error_type: str,
        error_message: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TX_REJECTED,
            severity=AuditSeverity.WARNING,
            description=f"Transaction rejected: {tx.from_} -> {tx.to} ({tx.value})",
            details=_tx_details(tx),
            error_code=error_type,
            error_message=error_message,
        )

    @staticmethod
    def tx_persisted(tx: Transaction, remaining: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.TX_PERSISTED,
            severity=AuditSeverity.DEBUG,
            description="Transaction appended to ledger",
            details={
                **_tx_details(tx),
                "remaining": remaining,
            },
        )

    @staticmethod
    def persist_completed(written: int) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PERSIST_COMPLETED,
            description=f"Mempool flushed: {written} records written",
            details={"written": written},
        )

    @staticmethod
    def persist_failed(
        written: int,
        pending: int,
        error_type: str,
        error_message: str,
    ) -> LedgerEvent:
        return LedgerEvent(
            event_type=LedgerEventType.PERSIST_FAILED,
            severity=AuditSeverity.ERROR,
            description=f"Persist failed after {written} records, {pending} still queued",
            details={
                "written": written,
                "pending": pending,
            },
            error_code=error_type,
            error_message=error_message,
        )
