"""
State Engine

Owns the in-memory balance table and the mempool, and defines the one
state transition of the ledger: applying a transaction to the balances.

The same `apply` runs during startup replay and for live transactions, so
a replay of the log always lands on the balances the live node had.

Lifecycle:
    REPLAYING --replay() succeeds--> LIVE
    REPLAYING --replay() fails-----> FAILED

IMPORTANT: Validation always runs before any balance is written.
A rejected transaction leaves balances and mempool exactly as they were.
"""

import threading
from enum import Enum
from typing import Iterable, Mapping, Optional

from txledger.audit import AuditLogger
from txledger.models.genesis import Genesis
from txledger.models.transaction import MAX_BALANCE, Account, Balances, Transaction
from txledger.services.storage import LedgerStoreInterface
from txledger.state.commit_buffer import CommitBuffer


class EngineStatus(str, Enum):
    """Observable engine state."""
    REPLAYING = "replaying"  # Applying the log at startup
    LIVE = "live"            # Accepting new transactions
    FAILED = "failed"        # Replay aborted; the engine is unusable


class StateError(Exception):
    """Base exception for state engine errors."""
    pass


class InsufficientBalance(StateError):
    """The sender cannot cover a non-reward transaction."""

    def __init__(self, account: Account, balance: int, value: int):
        self.account = account
        self.balance = balance
        self.value = value
        super().__init__(
            f"Insufficient balance for {account!r}: has {balance}, needs {value}"
        )


class BalanceOverflow(StateError):
    """Crediting the recipient would exceed the balance domain."""

    def __init__(self, account: Account, balance: int, value: int):
        self.account = account
        self.balance = balance
        self.value = value
        super().__init__(
            f"Balance overflow for {account!r}: {balance} + {value} exceeds {MAX_BALANCE}"
        )


class EngineNotReady(StateError):
    """The operation is not allowed in the engine's current state."""
    pass


class StateEngine:
    """
    Validated application of transactions to balances.

    One re-entrant lock guards balances and mempool together.
    """

    def __init__(
        self,
        genesis_balances: Mapping[Account, int],
        store: Optional[LedgerStoreInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Seed the engine from genesis balances.

        Args:
            genesis_balances: Starting balances; copied, never mutated
            store: Ledger store to replay from and persist to
            audit_logger: Optional audit logger
        """
        for account, balance in genesis_balances.items():
            if not isinstance(balance, int) or isinstance(balance, bool):
                raise TypeError(f"Genesis balance for {account!r} is not an integer")
            if balance < 0 or balance > MAX_BALANCE:
                raise ValueError(f"Genesis balance for {account!r} out of range: {balance}")

        self._lock = threading.RLock()
        self._balances: Balances = dict(genesis_balances)
        self._mempool = CommitBuffer(self._lock, audit_logger)
        self._store = store
        self._audit_logger = audit_logger
        self._status = EngineStatus.REPLAYING

    @classmethod
    def from_genesis(
        cls,
        genesis: Genesis,
        store: Optional[LedgerStoreInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "StateEngine":
        return cls(genesis.initial_balances(), store=store, audit_logger=audit_logger)

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def status(self) -> EngineStatus:
        return self._status

    @property
    def is_live(self) -> bool:
        return self._status == EngineStatus.LIVE

    @property
    def store(self) -> Optional[LedgerStoreInterface]:
        return self._store

    @property
    def balances(self) -> Balances:
        """Copy of the current balances."""
        with self._lock:
            return dict(self._balances)

    @property
    def mempool(self) -> tuple[Transaction, ...]:
        """Copy of the accepted, not yet persisted transactions."""
        return self._mempool.snapshot()

    def balance_of(self, account: Account) -> int:
        """Balance of an account; unknown accounts hold zero."""
        with self._lock:
            return self._balances.get(account, 0)

    # -------------------------------------------------------------------------
    # State transition
    # -------------------------------------------------------------------------

    def _check(self, tx: Transaction) -> dict[Account, int]:
        """
        Validate `tx` against the current balances.

        Returns the new balance of every account the transaction touches,
        without writing any of them.
        """
        to_balance = self._balances.get(tx.to, 0)

        if tx.is_reward:
            return {tx.to: _credit(tx.to, to_balance, tx.value)}

        from_balance = self._balances.get(tx.from_, 0)
        if tx.value > from_balance:
            raise InsufficientBalance(tx.from_, from_balance, tx.value)

        if tx.from_ == tx.to:
            return {tx.from_: from_balance}

        return {
            tx.from_: from_balance - tx.value,
            tx.to: _credit(tx.to, to_balance, tx.value),
        }

    def apply(self, tx: Transaction) -> None:
        """
        Apply one transaction to the balances.

        Rewards credit `to` only. Other transactions move `value` from
        `from` to `to` and fail if `from` cannot cover it.

        Raises:
            InsufficientBalance: If a non-reward value exceeds the sender's balance
            BalanceOverflow: If the credit would leave the balance domain
        """
        with self._lock:
            updates = self._check(tx)
            self._balances.update(updates)

    def replay(self, transactions: Optional[Iterable[Transaction]] = None) -> int:
        """
        Rebuild balances from the log and go live.

        Args:
            transactions: Records to apply; defaults to the store's full log

        Returns:
            Number of records applied

        Raises:
            EngineNotReady: If the engine is not in REPLAYING state, or
                there is nothing to replay from
            CorruptRecord: If a record fails to decode
            InsufficientBalance, BalanceOverflow: If a record is invalid
                against the balances rebuilt so far
        """
        with self._lock:
            if self._status != EngineStatus.REPLAYING:
                raise EngineNotReady(
                    f"Replay is only allowed before the engine goes live "
                    f"(status: {self._status.value})"
                )
            from_store = transactions is None
            if from_store:
                if self._store is None:
                    raise EngineNotReady("No ledger store to replay from")
                transactions = self._store.replay_all()

            if self._audit_logger:
                self._audit_logger.log_replay_started(len(self._balances))

            applied = 0
            try:
                for tx in transactions:
                    self.apply(tx)
                    applied += 1
            except Exception as e:
                self._status = EngineStatus.FAILED
                if self._audit_logger:
                    self._audit_logger.log_replay_failed(applied, e)
                raise
            finally:
                # Release the store's read handle if the loop stopped early
                if from_store and hasattr(transactions, "close"):
                    transactions.close()

            self._status = EngineStatus.LIVE
            if self._audit_logger:
                self._audit_logger.log_replay_completed(applied, len(self._balances))
            return applied

    def add(self, tx: Transaction) -> None:
        """
        Accept a live transaction: apply it and queue it for persisting.

        Raises:
            EngineNotReady: If the engine is not live
            InsufficientBalance, BalanceOverflow: If the transaction is
                rejected; nothing is mutated
        """
        with self._lock:
            if self._status != EngineStatus.LIVE:
                raise EngineNotReady(
                    f"Engine is not accepting transactions (status: {self._status.value})"
                )
            try:
                self.apply(tx)
            except StateError as e:
                if self._audit_logger:
                    self._audit_logger.log_tx_rejected(tx, e)
                raise
            size = self._mempool.push(tx)

        if self._audit_logger:
            self._audit_logger.log_tx_accepted(tx, size)

    def persist(self) -> int:
        """
        Flush the mempool to the ledger store in submission order.

        Returns:
            Number of transactions written

        Raises:
            EngineNotReady: If the engine is not live or has no store
            PersistFailure: If an append fails; unwritten transactions stay
                queued for the next call
        """
        with self._lock:
            if self._status != EngineStatus.LIVE:
                raise EngineNotReady(
                    f"Engine cannot persist (status: {self._status.value})"
                )
            if self._store is None:
                raise EngineNotReady("No ledger store to persist to")
            store = self._store

        # Store I/O happens outside the state lock
        return self._mempool.flush(store)


def _credit(account: Account, balance: int, value: int) -> int:
    total = balance + value
    if total > MAX_BALANCE:
        raise BalanceOverflow(account, balance, value)
    return total
