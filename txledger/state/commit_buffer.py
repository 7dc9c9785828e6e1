"""
Commit Buffer (Mempool)

Holds transactions that were accepted in memory but are not yet in the
ledger file, and drains them into the ledger store in submission order.

CRITICAL: An entry leaves the buffer only after the store confirmed its
append, and only from the front. A failed flush therefore leaves exactly
the unwritten suffix queued: nothing is written twice and nothing is lost.
"""

import threading
from collections import deque
from typing import Optional

from txledger.audit import AuditLogger
from txledger.models.transaction import Transaction
from txledger.services.storage import LedgerStoreInterface, StorageError


class CommitBuffer:
    """
    FIFO of accepted, not-yet-persisted transactions.

    The lock is shared with the owning state engine so balances and the
    buffer change together.
    """

    def __init__(
        self,
        lock: Optional[threading.RLock] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._lock = lock or threading.RLock()
        self._flush_lock = threading.Lock()
        self._entries: deque[Transaction] = deque()
        self._audit_logger = audit_logger

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def push(self, tx: Transaction) -> int:
        """Queue a transaction at the tail. Returns the new buffer size."""
        with self._lock:
            self._entries.append(tx)
            return len(self._entries)

    def snapshot(self) -> tuple[Transaction, ...]:
        """Stable copy of the queued transactions, oldest first."""
        with self._lock:
            return tuple(self._entries)

    def _pop_front(self, expected: Transaction) -> int:
        with self._lock:
            if not self._entries or self._entries[0] is not expected:
                raise RuntimeError("Mempool front changed while persisting")
            self._entries.popleft()
            return len(self._entries)

    def flush(self, store: LedgerStoreInterface) -> int:
        """
        Append every queued transaction to the store, oldest first.

        Transactions pushed while the flush runs are left for the next one.
        Flushes are serialised; pushes are not blocked during store I/O.

        Returns:
            Number of transactions written

        Raises:
            PersistFailure: If an append fails. The failed transaction and
                everything after it stay queued.
        """
        with self._flush_lock:
            pending = self.snapshot()
            written = 0

            for tx in pending:
                try:
                    store.append(tx)
                except StorageError as e:
                    if self._audit_logger:
                        self._audit_logger.log_persist_failed(
                            written=written,
                            pending=len(self),
                            error=e,
                        )
                    raise

                remaining = self._pop_front(tx)
                written += 1
                if self._audit_logger:
                    self._audit_logger.log_tx_persisted(tx, remaining)

            if self._audit_logger:
                self._audit_logger.log_persist_completed(written)
            return written
