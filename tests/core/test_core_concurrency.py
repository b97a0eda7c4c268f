"""
Tests for core.concurrency — keyed locks, units of work, id sequences.
"""

import threading

import pytest

from core.concurrency import (
    IdSequence,
    KeyedLockManager,
    UnitOfWork,
    UnitOfWorkError,
    lock_key,
)
from core.events import NotificationPublisher


# ── Keyed locks ──────────────────────────────────────────────

class TestKeyedLockManager:
    def test_lock_key_stringifies(self):
        assert lock_key("event", 7) == ("event", "7")

    def test_reentrant(self):
        locks = KeyedLockManager()
        with locks.hold(lock_key("event", 1)):
            with locks.hold(lock_key("event", 1)):
                pass
        assert locks.key_count == 1

    def test_distinct_keys_do_not_block(self):
        locks = KeyedLockManager()
        entered = threading.Event()

        def _other():
            with locks.hold(lock_key("event", 2)):
                entered.set()

        with locks.hold(lock_key("event", 1)):
            worker = threading.Thread(target=_other)
            worker.start()
            assert entered.wait(timeout=5)
            worker.join()

    def test_same_key_serializes(self):
        locks = KeyedLockManager()
        counter = {"value": 0}

        def _increment():
            for _ in range(200):
                with locks.hold(lock_key("counter", "x")):
                    current = counter["value"]
                    counter["value"] = current + 1

        workers = [threading.Thread(target=_increment) for _ in range(8)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        assert counter["value"] == 1600

    def test_opposite_order_does_not_deadlock(self):
        locks = KeyedLockManager()
        a, b = lock_key("roles", "a"), lock_key("tickets", "b")
        done = []

        def _run(keys):
            for _ in range(200):
                with locks.hold(*keys):
                    pass
            done.append(True)

        workers = [
            threading.Thread(target=_run, args=((a, b),)),
            threading.Thread(target=_run, args=((b, a),)),
        ]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=10)
        assert done == [True, True]

    def test_hold_everything(self):
        locks = KeyedLockManager()
        with locks.hold(lock_key("event", 1), lock_key("event", 2)):
            pass
        with locks.hold_everything():
            assert locks.key_count == 2

    def test_hold_everything_blocks_keys_created_later(self):
        locks = KeyedLockManager()
        entered = threading.Event()

        def _other():
            with locks.hold(lock_key("organizer", "did:new")):
                entered.set()

        with locks.hold_everything():
            worker = threading.Thread(target=_other)
            worker.start()
            assert not entered.wait(timeout=0.2)
        worker.join(timeout=5)
        assert entered.is_set()

    def test_hold_everything_waits_for_running_holds(self):
        locks = KeyedLockManager()
        holding = threading.Event()
        release = threading.Event()
        snapshotted = threading.Event()

        def _operation():
            with locks.hold(lock_key("event", 1)):
                holding.set()
                release.wait(timeout=5)

        def _snapshot():
            with locks.hold_everything():
                snapshotted.set()

        operation = threading.Thread(target=_operation)
        operation.start()
        holding.wait(timeout=5)
        snapshot = threading.Thread(target=_snapshot)
        snapshot.start()
        assert not snapshotted.wait(timeout=0.2)
        release.set()
        operation.join(timeout=5)
        snapshot.join(timeout=5)
        assert snapshotted.is_set()

    def test_nested_holds_are_reentrant(self):
        locks = KeyedLockManager()
        with locks.hold(lock_key("organizer", "did:a")):
            with locks.hold(lock_key("event", 1)):
                pass
        with locks.hold_everything():
            pass

    def test_hold_everything_inside_hold_raises(self):
        locks = KeyedLockManager()
        with locks.hold(lock_key("event", 1)):
            with pytest.raises(RuntimeError):
                with locks.hold_everything():
                    pass
        with locks.hold_everything():
            pass


# ── Unit of work ─────────────────────────────────────────────

class TestUnitOfWork:
    def test_commit_publishes_in_order(self):
        publisher = NotificationPublisher()
        with UnitOfWork(publisher, "test") as uow:
            uow.stage("a.b.c", {"n": 1})
            uow.stage("a.b.d", {"n": 2})
            assert publisher.log.count == 0
        assert [n.event_type for n in publisher.log.entries()] == ["a.b.c", "a.b.d"]
        assert uow.state == "COMMITTED"

    def test_rollback_runs_undo_in_reverse(self):
        publisher = NotificationPublisher()
        state = []
        with pytest.raises(RuntimeError):
            with UnitOfWork(publisher, "test") as uow:
                uow.apply(lambda: state.append(1), lambda: state.remove(1))
                uow.apply(lambda: state.append(2), lambda: state.remove(2))
                uow.stage("a.b.c", {})
                raise RuntimeError("fail")
        assert state == []
        assert publisher.log.count == 0
        assert uow.state == "ROLLED_BACK"

    def test_undo_order(self):
        order = []
        with pytest.raises(ValueError):
            with UnitOfWork() as uow:
                uow.apply(lambda: None, lambda: order.append("first"))
                uow.on_rollback(lambda: order.append("second"))
                raise ValueError()
        assert order == ["second", "first"]

    def test_failing_undo_keeps_reverting(self):
        reverted = []

        def _bad_undo():
            raise RuntimeError("undo failed")

        with pytest.raises(KeyError):
            with UnitOfWork() as uow:
                uow.apply(lambda: None, lambda: reverted.append("a"))
                uow.apply(lambda: None, _bad_undo)
                raise KeyError("original")
        assert reverted == ["a"]

    def test_single_use(self):
        uow = UnitOfWork()
        with uow:
            pass
        with pytest.raises(UnitOfWorkError):
            with uow:
                pass

    def test_stage_outside_block(self):
        with pytest.raises(UnitOfWorkError):
            UnitOfWork().stage("a.b.c", {})


# ── Id sequences ─────────────────────────────────────────────

class TestIdSequence:
    def test_starts_at_one(self):
        sequence = IdSequence()
        assert [sequence.allocate() for _ in range(3)] == [1, 2, 3]
        assert sequence.next_value == 4

    @pytest.mark.parametrize("start", [0, -3, True, "1"])
    def test_invalid_start(self, start):
        with pytest.raises(ValueError):
            IdSequence(start)

    def test_restore_forward_only(self):
        sequence = IdSequence()
        sequence.restore(10)
        assert sequence.allocate() == 10
        with pytest.raises(ValueError):
            sequence.restore(5)

    def test_concurrent_allocations_unique(self):
        sequence = IdSequence()
        seen = []
        lock = threading.Lock()

        def _take():
            for _ in range(100):
                value = sequence.allocate()
                with lock:
                    seen.append(value)

        workers = [threading.Thread(target=_take) for _ in range(6)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()
        assert sorted(seen) == list(range(1, 601))
