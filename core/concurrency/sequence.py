"""
IDTIX Concurrency — Id Sequences
==================================
Monotonically increasing, lock-protected id counters.
An allocated id is never handed out again, even when the operation
that allocated it rolls back.
"""

from __future__ import annotations

from threading import Lock


class IdSequence:
    def __init__(self, start: int = 1) -> None:
        if isinstance(start, bool) or not isinstance(start, int) or start < 1:
            raise ValueError(f"Sequence start must be a positive int, got {start!r}.")
        self._next = start
        self._lock = Lock()

    def allocate(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value

    @property
    def next_value(self) -> int:
        with self._lock:
            return self._next

    def restore(self, next_value: int) -> None:
        """Fast-forward the counter (snapshot restore); never moves back."""
        with self._lock:
            if next_value < self._next:
                raise ValueError(
                    f"Cannot move sequence back from {self._next} to {next_value}."
                )
            self._next = next_value
