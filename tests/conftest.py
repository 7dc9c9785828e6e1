"""Shared fixtures for the txledger tests."""

import json
from typing import Optional

import pytest

from txledger.config import LedgerSettings
from txledger.services.storage import InMemoryLedgerStore, PersistFailure


class FailingStore(InMemoryLedgerStore):
    """In-memory store whose Nth append calls (1-based) fail."""

    def __init__(self, fail_on=(), frames=None):
        super().__init__(frames)
        self.fail_on = set(fail_on)
        self.calls = 0

    def append(self, tx) -> None:
        self.calls += 1
        if self.calls in self.fail_on:
            raise PersistFailure(f"simulated write failure on call {self.calls}")
        super().append(tx)


@pytest.fixture
def failing_store():
    """Factory for stores that fail on selected append calls."""
    def _make(fail_on=(), frames=None) -> FailingStore:
        return FailingStore(fail_on=fail_on, frames=frames)
    return _make


@pytest.fixture
def data_dir(tmp_path):
    """
    Factory writing a genesis file and a ledger file into tmp_path.

    Returns settings pointing at them.
    """
    def _make(
        balances: dict,
        ledger_lines: Optional[list] = None,
        create_ledger: bool = True,
        **overrides,
    ) -> LedgerSettings:
        genesis = {
            "genesis_time": "2024-01-01T00:00:00Z",
            "chain_id": "test-chain",
            "balances": balances,
        }
        (tmp_path / "genesis.json").write_text(json.dumps(genesis), encoding="utf-8")
        if create_ledger:
            content = "".join(line + "\n" for line in (ledger_lines or []))
            (tmp_path / "tx.db").write_text(content, encoding="utf-8")

        options = {
            "data_dir": tmp_path,
            "persist_retry_attempts": 3,
            "persist_retry_max_wait": 0.0,
        }
        options.update(overrides)
        return LedgerSettings(**options)
    return _make
