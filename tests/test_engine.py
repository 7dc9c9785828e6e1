"""Tests for the state engine and the commit buffer."""

import builtins
import random
import threading
from unittest import mock

import pytest
from structlog.testing import capture_logs

from txledger.audit import AuditLogger
from txledger.models import MAX_BALANCE, Genesis, Transaction
from txledger.services.storage import (
    CorruptRecord,
    InMemoryLedgerStore,
    JsonlLedgerStore,
    PersistFailure,
)
from txledger.state import (
    BalanceOverflow,
    CommitBuffer,
    EngineNotReady,
    EngineStatus,
    InsufficientBalance,
    StateEngine,
    StateError,
)


def live_engine(balances, store=None, audit_logger=None) -> StateEngine:
    """Engine seeded from `balances` with an empty log, already LIVE."""
    engine = StateEngine(
        balances,
        store=store if store is not None else InMemoryLedgerStore(),
        audit_logger=audit_logger,
    )
    engine.replay()
    return engine


def transfer(sender, recipient, value, data="") -> Transaction:
    return Transaction(from_=sender, to=recipient, value=value, data=data)


class TestApply:
    """Tests for the state transition function."""

    def test_transfer_moves_value(self):
        """Test debit and credit of a plain transfer."""
        engine = StateEngine({"A": 1000})
        engine.apply(transfer("A", "B", 200))
        assert engine.balances == {"A": 800, "B": 200}

    def test_transfer_of_entire_balance(self):
        """Test that value == balance is allowed."""
        engine = StateEngine({"A": 100})
        engine.apply(transfer("A", "B", 100))
        assert engine.balances == {"A": 0, "B": 100}

    def test_insufficient_balance(self):
        """Test that overdrafts are rejected without mutation."""
        engine = StateEngine({"A": 100})
        with pytest.raises(InsufficientBalance) as exc_info:
            engine.apply(transfer("A", "B", 150))
        assert exc_info.value.account == "A"
        assert exc_info.value.balance == 100
        assert exc_info.value.value == 150
        assert engine.balances == {"A": 100}

    def test_unknown_sender_has_zero_balance(self):
        """Test that a positive transfer from a missing account fails."""
        engine = StateEngine({})
        with pytest.raises(InsufficientBalance):
            engine.apply(transfer("ghost", "B", 1))
        assert engine.balances == {}

    def test_zero_value_from_unknown_sender(self):
        """Test that a zero transfer succeeds and records both accounts."""
        engine = StateEngine({})
        engine.apply(transfer("ghost", "B", 0))
        assert engine.balances == {"ghost": 0, "B": 0}

    def test_reward_credits_recipient_only(self):
        """Test that rewards skip sender validation."""
        engine = StateEngine({"B": 5})
        engine.apply(Transaction.reward("B", 700, from_="nobody"))
        assert engine.balances == {"B": 705}
        assert engine.balance_of("nobody") == 0

    def test_self_transfer_keeps_balance(self):
        """Test that A -> A is validated but leaves the balance unchanged."""
        engine = StateEngine({"A": 100})
        engine.apply(transfer("A", "A", 60))
        assert engine.balances == {"A": 100}
        with pytest.raises(InsufficientBalance):
            engine.apply(transfer("A", "A", 101))

    def test_credit_overflow_rejected(self):
        """Test that a credit past the balance domain is rejected."""
        engine = StateEngine({"A": 10, "B": MAX_BALANCE - 5})
        with pytest.raises(BalanceOverflow):
            engine.apply(transfer("A", "B", 6))
        with pytest.raises(BalanceOverflow):
            engine.apply(Transaction.reward("B", 6))
        assert engine.balances == {"A": 10, "B": MAX_BALANCE - 5}

        engine.apply(transfer("A", "B", 5))
        assert engine.balance_of("B") == MAX_BALANCE

    def test_apply_is_deterministic(self):
        """Test that the same transactions give the same balances."""
        txs = [
            Transaction.reward("A", 500),
            transfer("A", "B", 120),
            transfer("B", "C", 20),
            transfer("C", "A", 20),
        ]
        first, second = StateEngine({"A": 1}), StateEngine({"A": 1})
        for tx in txs:
            first.apply(tx)
            second.apply(tx)
        assert first.balances == second.balances

    def test_genesis_balances_are_copied(self):
        """Test that the engine never writes to the genesis mapping."""
        genesis = {"A": 100}
        engine = StateEngine(genesis)
        engine.apply(transfer("A", "B", 40))
        assert genesis == {"A": 100}

    def test_from_genesis(self):
        """Test seeding from a Genesis snapshot."""
        genesis = Genesis(genesis_time="t", chain_id="c", balances={"A": 3})
        engine = StateEngine.from_genesis(genesis)
        engine.apply(transfer("A", "B", 3))
        assert genesis.balances == {"A": 3}
        assert engine.balances == {"A": 0, "B": 3}

    @pytest.mark.parametrize("balance", [-1, MAX_BALANCE + 1])
    def test_out_of_range_genesis_rejected(self, balance):
        """Test that seed balances must be in the unsigned domain."""
        with pytest.raises(ValueError):
            StateEngine({"A": balance})

    def test_non_integer_genesis_rejected(self):
        """Test that seed balances must be integers."""
        with pytest.raises(TypeError):
            StateEngine({"A": 1.5})


class TestReplay:
    """Tests for the REPLAYING -> LIVE transition."""

    def test_replay_from_store_goes_live(self):
        """Test that a clean replay applies every record and goes live."""
        store = InMemoryLedgerStore([
            transfer("A", "B", 200).to_record(),
            Transaction.reward("B", 100).to_record(),
        ])
        engine = StateEngine({"A": 1000}, store=store)
        assert engine.status == EngineStatus.REPLAYING

        assert engine.replay() == 2
        assert engine.status == EngineStatus.LIVE
        assert engine.balances == {"A": 800, "B": 300}
        assert engine.mempool == ()

    def test_replay_from_iterable(self):
        """Test replaying explicit transactions without a store."""
        engine = StateEngine({"A": 10})
        assert engine.replay([transfer("A", "B", 4)]) == 1
        assert engine.is_live

    def test_replay_only_once(self):
        """Test that a live engine refuses a second replay."""
        engine = live_engine({"A": 1})
        with pytest.raises(EngineNotReady):
            engine.replay([])

    def test_replay_without_source(self):
        """Test that replay needs a store or an iterable."""
        engine = StateEngine({"A": 1})
        with pytest.raises(EngineNotReady):
            engine.replay()
        assert engine.status == EngineStatus.REPLAYING

    def test_invalid_record_aborts_replay(self):
        """Test that an overdraft in the log fails startup."""
        store = InMemoryLedgerStore([
            transfer("A", "B", 50).to_record(),
            transfer("B", "C", 51).to_record(),
        ])
        engine = StateEngine({"A": 50}, store=store)
        with pytest.raises(InsufficientBalance):
            engine.replay()
        assert engine.status == EngineStatus.FAILED
        with pytest.raises(EngineNotReady):
            engine.add(transfer("A", "B", 0))
        with pytest.raises(EngineNotReady):
            engine.persist()

    def test_rejected_record_closes_store_reader(self):
        """Test that an aborted replay releases the store's record iterator."""

        class TrackingStore(InMemoryLedgerStore):
            reader_closed = False

            def replay_all(self):
                try:
                    yield from super().replay_all()
                finally:
                    self.reader_closed = True

        store = TrackingStore([
            transfer("A", "B", 99).to_record(),
            transfer("A", "B", 1).to_record(),
        ])
        engine = StateEngine({"A": 5}, store=store)
        with pytest.raises(InsufficientBalance):
            engine.replay()
        assert store.reader_closed

    def test_rejected_record_closes_log_file(self, tmp_path):
        """Test that the file reader is closed when a record is rejected."""
        path = tmp_path / "tx.db"
        path.write_text(
            transfer("A", "B", 99).to_record() + "\n"
            + transfer("A", "B", 1).to_record() + "\n",
            encoding="utf-8",
        )
        opened = []
        real_open = builtins.open

        def tracking_open(*args, **kwargs):
            handle = real_open(*args, **kwargs)
            if args and args[0] == path:
                opened.append(handle)
            return handle

        with JsonlLedgerStore.open(path) as store:
            engine = StateEngine({"A": 5}, store=store)
            with mock.patch.object(builtins, "open", tracking_open):
                with pytest.raises(InsufficientBalance):
                    engine.replay()
            assert opened and all(handle.closed for handle in opened)

    def test_corrupt_record_aborts_replay(self):
        """Test that a decode failure fails startup."""
        store = InMemoryLedgerStore([transfer("A", "B", 1).to_record(), "garbage"])
        engine = StateEngine({"A": 5}, store=store)
        with pytest.raises(CorruptRecord):
            engine.replay()
        assert engine.status == EngineStatus.FAILED

    def test_replay_determinism(self):
        """Test that replaying the same log twice gives identical balances."""
        frames = [
            Transaction.reward("A", 1000).to_record(),
            transfer("A", "B", 250).to_record(),
            transfer("B", "C", 100, data="rent").to_record(),
            transfer("C", "A", 1).to_record(),
        ]
        first = live_engine({"Z": 3}, store=InMemoryLedgerStore(frames))
        second = live_engine({"Z": 3}, store=InMemoryLedgerStore(frames))
        assert first.balances == second.balances == {
            "Z": 3, "A": 751, "B": 150, "C": 99,
        }


class TestAdd:
    """Tests for accepting live transactions."""

    def test_add_before_live(self):
        """Test that add is refused while replaying."""
        engine = StateEngine({"A": 10}, store=InMemoryLedgerStore())
        with pytest.raises(EngineNotReady):
            engine.add(transfer("A", "B", 1))
        assert engine.balances == {"A": 10}

    def test_add_queues_transaction(self):
        """Test that accepted transactions are applied and queued in order."""
        engine = live_engine({"A": 1000})
        tx1, tx2 = transfer("A", "B", 200), transfer("B", "C", 50)
        engine.add(tx1)
        engine.add(tx2)
        assert engine.balances == {"A": 800, "B": 150, "C": 50}
        assert engine.mempool == (tx1, tx2)

    def test_atomic_rejection(self):
        """Test that a rejected add changes neither balances nor mempool."""
        engine = live_engine({"A": 100, "B": 7})
        queued = transfer("A", "C", 10)
        engine.add(queued)

        with pytest.raises(InsufficientBalance):
            engine.add(transfer("A", "B", 150))

        assert engine.balance_of("A") == 90
        assert engine.balance_of("B") == 7
        assert engine.mempool == (queued,)

    def test_reward_exemption(self):
        """Test that a reward succeeds whatever the sender holds."""
        engine = live_engine({"Y": 1})
        engine.add(Transaction(from_="X", to="Y", value=999, data="reward"))
        assert engine.balance_of("Y") == 1000
        assert "X" not in engine.balances

    def test_non_negative_invariant(self):
        """Test that random add sequences never drive a balance below zero."""
        rng = random.Random(1234)
        accounts = ["A", "B", "C", "D"]
        engine = live_engine({"A": 500, "B": 100})
        accepted = 0

        for _ in range(500):
            sender, recipient = rng.choice(accounts), rng.choice(accounts)
            data = "reward" if rng.random() < 0.05 else ""
            tx = transfer(sender, recipient, rng.randint(0, 300), data=data)
            try:
                engine.add(tx)
                accepted += 1
            except StateError:
                pass
            assert all(balance >= 0 for balance in engine.balances.values())

        assert accepted == len(engine.mempool)

    def test_rejected_add_is_audited(self):
        """Test that rejections and acceptances reach the audit log."""
        with capture_logs() as logs:
            engine = live_engine({"A": 5}, audit_logger=AuditLogger())
            engine.add(transfer("A", "B", 5))
            with pytest.raises(InsufficientBalance):
                engine.add(transfer("A", "B", 1))

        event_types = [entry["event_type"] for entry in logs]
        assert event_types == [
            "replay_started",
            "replay_completed",
            "tx_accepted",
            "tx_rejected",
        ]
        assert logs[-1]["error_code"] == "InsufficientBalance"
        assert logs[-1]["log_level"] == "warning"


class TestPersist:
    """Tests for draining the mempool into the store."""

    def test_persist_drains_in_order(self):
        """Test that persist writes every queued transaction once, in order."""
        store = InMemoryLedgerStore()
        engine = live_engine({"A": 1000}, store=store)
        txs = [transfer("A", "B", 10), transfer("B", "C", 5), Transaction.reward("A", 1)]
        for tx in txs:
            engine.add(tx)

        assert engine.persist() == 3
        assert engine.mempool == ()
        assert store.frames == tuple(tx.to_record() for tx in txs)

    def test_persist_empty_mempool(self):
        """Test that persisting nothing is a no-op."""
        store = InMemoryLedgerStore()
        engine = live_engine({"A": 1}, store=store)
        assert engine.persist() == 0
        assert store.frames == ()

    def test_order_preserving_drain(self, failing_store):
        """Test that a failed append keeps it and everything after it queued."""
        store = failing_store(fail_on={2})
        engine = live_engine({"A": 1000}, store=store)
        tx1, tx2, tx3 = transfer("A", "B", 1), transfer("A", "B", 2), transfer("A", "B", 3)
        for tx in (tx1, tx2, tx3):
            engine.add(tx)

        with pytest.raises(PersistFailure):
            engine.persist()

        assert engine.mempool == (tx2, tx3)
        assert store.frames == (tx1.to_record(),)

        assert engine.persist() == 2
        assert engine.mempool == ()
        assert store.frames == (tx1.to_record(), tx2.to_record(), tx3.to_record())

    def test_failed_persist_keeps_balances(self, failing_store):
        """Test that persist failures never touch balances."""
        engine = live_engine({"A": 10}, store=failing_store(fail_on={1}))
        engine.add(transfer("A", "B", 4))
        with pytest.raises(PersistFailure):
            engine.persist()
        assert engine.balances == {"A": 6, "B": 4}

    def test_add_during_persist_waits_for_next_flush(self):
        """Test that persist works on a snapshot taken when it starts."""
        late = transfer("A", "C", 1)

        class AddingStore(InMemoryLedgerStore):
            engine = None

            def append(self, tx):
                super().append(tx)
                if len(self.frames) == 1:
                    self.engine.add(late)

        store = AddingStore()
        engine = live_engine({"A": 100}, store=store)
        store.engine = engine
        early = transfer("A", "B", 1)
        engine.add(early)

        assert engine.persist() == 1
        assert engine.mempool == (late,)
        assert store.frames == (early.to_record(),)

        assert engine.persist() == 1
        assert store.frames == (early.to_record(), late.to_record())

    def test_persist_without_store(self):
        """Test that persist needs a store."""
        engine = StateEngine({"A": 1})
        engine.replay([])
        with pytest.raises(EngineNotReady):
            engine.persist()

    def test_persist_checks_status_under_engine_lock(self):
        """Test that persist waits for the engine lock before checking status."""
        engine = StateEngine({"A": 5}, store=InMemoryLedgerStore(["garbage"]))
        with pytest.raises(CorruptRecord):
            engine.replay()

        errors = []

        def run_persist():
            try:
                engine.persist()
            except EngineNotReady as e:
                errors.append(e)

        worker = threading.Thread(target=run_persist)
        with engine._lock:
            worker.start()
            worker.join(timeout=0.2)
            assert worker.is_alive()
            assert errors == []
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert len(errors) == 1

    def test_persist_round_trip(self):
        """Test that a fresh replay of the persisted log reproduces balances."""
        store = InMemoryLedgerStore()
        engine = live_engine({"A": 1000}, store=store)
        engine.add(transfer("A", "B", 200))
        engine.add(Transaction.reward("C", 50))
        engine.add(transfer("B", "C", 75))
        engine.persist()

        fresh = live_engine({"A": 1000}, store=InMemoryLedgerStore(store.frames))
        assert fresh.balances == engine.balances

    def test_persist_failure_is_audited(self, failing_store):
        """Test the audit trail of a partially failed persist."""
        with capture_logs() as logs:
            engine = live_engine(
                {"A": 10},
                store=failing_store(fail_on={2}),
                audit_logger=AuditLogger(),
            )
            engine.add(transfer("A", "B", 1))
            engine.add(transfer("A", "B", 1))
            with pytest.raises(PersistFailure):
                engine.persist()

        failed = [entry for entry in logs if entry["event_type"] == "persist_failed"]
        assert len(failed) == 1
        assert failed[0]["details"] == {"written": 1, "pending": 1}
        assert failed[0]["log_level"] == "error"


class TestCommitBuffer:
    """Tests for the commit buffer on its own."""

    def test_push_and_snapshot(self):
        """Test FIFO order and snapshot isolation."""
        buffer = CommitBuffer()
        tx1, tx2 = transfer("A", "B", 1), transfer("A", "B", 2)
        assert buffer.push(tx1) == 1
        snapshot = buffer.snapshot()
        buffer.push(tx2)
        assert snapshot == (tx1,)
        assert buffer.snapshot() == (tx1, tx2)
        assert len(buffer) == 2

    def test_flush(self):
        """Test that flush empties the buffer into the store."""
        buffer = CommitBuffer()
        store = InMemoryLedgerStore()
        buffer.push(transfer("A", "B", 1))
        assert buffer.flush(store) == 1
        assert len(buffer) == 0
        assert len(store.frames) == 1

    def test_duplicate_transactions_are_persisted_individually(self):
        """Test that equal transactions queued twice are both written."""
        buffer = CommitBuffer()
        store = InMemoryLedgerStore()
        buffer.push(transfer("A", "B", 1))
        buffer.push(transfer("A", "B", 1))
        assert buffer.flush(store) == 2
        assert len(store.frames) == 2
