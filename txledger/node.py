"""
Ledger Node

This module ties the components together and defines the startup flow:

    genesis file -> balances -> open ledger -> replay every record -> LIVE

DESIGN DECISION: The node is the only place that knows about file paths.
The engine and stores receive their collaborators through constructors;
there is no module-level ledger state.

Startup errors (missing files, corrupt or invalid records) propagate out of
open_node(). There is no partial-ledger mode.
"""

from typing import Optional

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from txledger.audit import AuditLogger, configure_logging
from txledger.config import LedgerSettings, get_settings
from txledger.models.genesis import Genesis
from txledger.models.transaction import Account, Balances, Transaction
from txledger.services.genesis import load_genesis
from txledger.services.storage import (
    JsonlLedgerStore,
    LedgerStoreInterface,
    PersistFailure,
)
from txledger.state import StateEngine


class LedgerNode:
    """
    A live ledger: genesis, store and engine, owned together.

    Use open_node() to build one from settings.
    """

    def __init__(
        self,
        genesis: Genesis,
        store: LedgerStoreInterface,
        engine: StateEngine,
        settings: LedgerSettings,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._genesis = genesis
        self._store = store
        self._engine = engine
        self._settings = settings
        self._audit_logger = audit_logger

    @property
    def genesis(self) -> Genesis:
        return self._genesis

    @property
    def chain_id(self) -> str:
        return self._genesis.chain_id

    @property
    def engine(self) -> StateEngine:
        return self._engine

    @property
    def balances(self) -> Balances:
        return self._engine.balances

    @property
    def mempool(self) -> tuple[Transaction, ...]:
        return self._engine.mempool

    def balance_of(self, account: Account) -> int:
        return self._engine.balance_of(account)

    def add(self, tx: Transaction) -> None:
        """Validate, apply and queue a transaction (see StateEngine.add)."""
        self._engine.add(tx)

    def persist(self) -> int:
        """Flush the mempool to the ledger file (see StateEngine.persist)."""
        return self._engine.persist()

    def persist_with_retry(self) -> int:
        """
        Persist, retrying on PersistFailure.

        Retrying is safe: a failed persist leaves only the unwritten
        transactions queued, so no record is appended twice.

        Returns:
            Number of transactions written by the successful attempt

        Raises:
            PersistFailure: If every attempt failed
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._settings.persist_retry_attempts),
            wait=wait_exponential(
                multiplier=0.5,
                min=0,
                max=self._settings.persist_retry_max_wait,
            ),
            retry=retry_if_exception_type(PersistFailure),
            reraise=True,
        )
        return retrying(self._engine.persist)

    def close(self) -> None:
        """Release the ledger file. Unpersisted transactions are discarded."""
        self._store.close()
        if self._audit_logger:
            self._audit_logger.log_store_closed(self._store.location)

    def __enter__(self) -> "LedgerNode":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_node(
    settings: Optional[LedgerSettings] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> LedgerNode:
    """
    Factory function to build a live ledger node.

    Args:
        settings: Ledger settings; defaults to get_settings()
        audit_logger: Audit logger; defaults to a local structlog logger

    Returns:
        A LedgerNode whose engine has replayed the full log and is LIVE

    Raises:
        GenesisError: If the genesis file is missing or invalid
        StoreUnavailable: If the ledger file is missing or cannot be opened
        CorruptRecord: If a ledger record fails to decode
        InsufficientBalance, BalanceOverflow: If a ledger record is invalid
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    audit_logger = audit_logger or AuditLogger()

    genesis = load_genesis(settings.genesis_path)

    store = JsonlLedgerStore.open(settings.ledger_path, fsync=settings.fsync)
    audit_logger.log_store_opened(store.location)

    engine = StateEngine.from_genesis(genesis, store=store, audit_logger=audit_logger)
    try:
        engine.replay()
    except Exception:
        store.close()
        raise

    return LedgerNode(
        genesis=genesis,
        store=store,
        engine=engine,
        settings=settings,
        audit_logger=audit_logger,
    )
