"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged.
This provides:
1. A trace of every accepted and rejected transaction
2. The exact record count and error behind a failed startup
3. Visibility into partially failed persists

The audit logger:
- Is synchronous, like the ledger operations it observes
- Is optional everywhere; components run unchanged without one
- Never feeds back into ledger state
"""

import logging
import sys

import structlog

from txledger.models.audit import AuditSeverity, LedgerEvent, LedgerEventBuilder
from txledger.models.transaction import Transaction


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route the structured log to stderr at the given level.

    structlog's filter_by_level defers to the stdlib logger level,
    so this is what decides which audit events are emitted.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )


class AuditLogger:
    """
    Central audit logging service.

    Writes one structured log line per ledger event.
    """

    def __init__(self, logger_name: str = "txledger"):
        self._logger = structlog.get_logger(logger_name)

    def log(self, event: LedgerEvent) -> None:
        """Log an audit event at the level matching its severity."""
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def log_store_opened(self, path: str) -> None:
        self.log(LedgerEventBuilder.store_opened(path))

    def log_store_closed(self, path: str) -> None:
        self.log(LedgerEventBuilder.store_closed(path))

    def log_replay_started(self, accounts: int) -> None:
        """Log the start of the startup replay."""
        self.log(LedgerEventBuilder.replay_started(accounts))

    def log_replay_completed(self, records: int, accounts: int) -> None:
        """Log a successful replay (the engine is now live)."""
        self.log(LedgerEventBuilder.replay_completed(records, accounts))

    def log_replay_failed(self, records: int, error: Exception) -> None:
        """Log an aborted replay."""
        self.log(LedgerEventBuilder.replay_failed(
            records=records,
            error_type=type(error).__name__,
            error_message=str(error),
        ))

    def log_tx_accepted(self, tx: Transaction, mempool_size: int) -> None:
        self.log(LedgerEventBuilder.tx_accepted(tx, mempool_size))

    def log_tx_rejected(self, tx: Transaction, error: Exception) -> None:
        self.log(LedgerEventBuilder.tx_rejected(
            tx,
            error_type=type(error).__name__,
            error_message=str(error),
        ))

    def log_tx_persisted(self, tx: Transaction, remaining: int) -> None:
        self.log(LedgerEventBuilder.tx_persisted(tx, remaining))

    def log_persist_completed(self, written: int) -> None:
        self.log(LedgerEventBuilder.persist_completed(written))

    def log_persist_failed(
        self,
        written: int,
        pending: int,
        error: Exception,
    ) -> None:
        """Log a persist that stopped partway through the mempool."""
        self.log(LedgerEventBuilder.persist_failed(
            written=written,
            pending=pending,
            error_type=type(error).__name__,
            error_message=str(error),
        ))
