"""
IDTIX Concurrency — Keyed Locks
=================================
One re-entrant lock per key, never one lock for everything.

Keys are (namespace, identifier) pairs, e.g. ("event", "7") or
("tickets", "did:bob"). hold() acquires several keys in sorted order,
so any two operations acquire their common keys in the same order
and can never deadlock each other.

Every hold() also enters the shared side of a snapshot gate.
hold_everything() takes the exclusive side: it waits for running
operations to finish and keeps new ones (including ones on keys that
do not exist yet) out until the block ends.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from threading import Lock, RLock
from typing import Dict, Iterator, Tuple

logger = logging.getLogger("idtix.concurrency")

LockKey = Tuple[str, str]


def lock_key(namespace: str, identifier) -> LockKey:
    return (namespace, str(identifier))


class SnapshotGate:
    """
    Shared/exclusive gate. Shared entry is re-entrant per thread; a
    waiting exclusive holder blocks new shared entries so snapshots are
    not starved.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition(Lock())
        self._shared = 0
        self._exclusive = False
        self._exclusive_waiting = 0
        self._local = threading.local()

    def _depth(self) -> int:
        return getattr(self._local, "depth", 0)

    def enter_shared(self) -> None:
        depth = self._depth()
        if depth:
            self._local.depth = depth + 1
            return
        with self._condition:
            while self._exclusive or self._exclusive_waiting:
                self._condition.wait()
            self._shared += 1
        self._local.depth = 1

    def exit_shared(self) -> None:
        depth = self._depth() - 1
        self._local.depth = depth
        if depth:
            return
        with self._condition:
            self._shared -= 1
            if not self._shared:
                self._condition.notify_all()

    def enter_exclusive(self) -> None:
        if self._depth():
            raise RuntimeError(
                "Cannot take the snapshot gate while holding keyed locks."
            )
        with self._condition:
            self._exclusive_waiting += 1
            try:
                while self._exclusive or self._shared:
                    self._condition.wait()
            finally:
                self._exclusive_waiting -= 1
            self._exclusive = True

    def exit_exclusive(self) -> None:
        with self._condition:
            self._exclusive = False
            self._condition.notify_all()


class KeyedLockManager:
    """Lazily creates and hands out per-key re-entrant locks."""

    def __init__(self) -> None:
        self._locks: Dict[LockKey, RLock] = {}
        self._guard = Lock()
        self._gate = SnapshotGate()

    def _lock_for(self, key: LockKey) -> RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: LockKey) -> Iterator[None]:
        """Hold every key for the duration of the block."""
        ordered = sorted(set(keys))
        acquired = []
        self._gate.enter_shared()
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            self._gate.exit_shared()

    @contextmanager
    def hold_everything(self) -> Iterator[None]:
        """
        Exclusive hold over every key, existing or not (consistent
        snapshots). Must not be called while holding any key.
        """
        self._gate.enter_exclusive()
        try:
            yield
        finally:
            self._gate.exit_exclusive()

    @property
    def key_count(self) -> int:
        with self._guard:
            return len(self._locks)
