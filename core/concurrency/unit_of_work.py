"""
IDTIX Concurrency — Unit of Work
==================================
All-or-nothing execution of one public operation.

Flow:
    1. Guards run (nothing mutated yet)
    2. Each mutation is applied together with its undo action
    3. The last step may be an external interaction (payment forwarding)
    4. On any exception every undo action runs in reverse order and the
       exception propagates; staged notifications are discarded
    5. On success staged notifications are published, in staging order

A UnitOfWork is single-use and must be entered from the thread that
holds the operation's keyed locks.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("idtix.concurrency")


class UnitOfWorkError(Exception):
    """Misuse of a unit of work (re-entry, use after completion)."""
    pass


class UnitOfWork:
    def __init__(self, publisher=None, name: str = "operation") -> None:
        self._publisher = publisher
        self.name = name
        self._undo: List[Callable[[], None]] = []
        self._staged: List[Tuple[str, Dict[str, Any]]] = []
        self._state = "NEW"

    # ── Context management ────────────────────────────────────

    def __enter__(self) -> "UnitOfWork":
        if self._state != "NEW":
            raise UnitOfWorkError(f"Unit of work '{self.name}' already used.")
        self._state = "OPEN"
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.rollback(reason=exc)
            return False
        self.commit()
        return False

    # ── Mutations ─────────────────────────────────────────────

    def apply(self, do: Callable[[], Any], undo: Callable[[], None]) -> Any:
        """Run a mutation and remember how to revert it."""
        self._require_open()
        result = do()
        self._undo.append(undo)
        return result

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._require_open()
        self._undo.append(undo)

    def stage(self, event_type: str, payload: Dict[str, Any]) -> None:
        """Queue a notification for publication after commit."""
        self._require_open()
        self._staged.append((event_type, payload))

    # ── Completion ────────────────────────────────────────────

    def commit(self) -> None:
        self._require_open()
        self._state = "COMMITTED"
        self._undo.clear()
        staged, self._staged = self._staged, []
        if self._publisher is None:
            return
        for event_type, payload in staged:
            self._publisher.publish(event_type, payload)

    def rollback(self, reason: Optional[BaseException] = None) -> None:
        self._require_open()
        self._state = "ROLLED_BACK"
        self._staged.clear()
        if not self._undo:
            return

        logger.warning(
            f"Rolling back '{self.name}' ({len(self._undo)} mutation(s)): "
            f"{type(reason).__name__ if reason else 'explicit rollback'}"
        )
        while self._undo:
            undo = self._undo.pop()
            try:
                undo()
            except Exception:
                # Keep reverting the remaining mutations; the original
                # exception is what the caller must see.
                logger.critical(
                    f"Undo step failed while rolling back '{self.name}'.",
                    exc_info=True,
                )

    @property
    def state(self) -> str:
        return self._state

    def _require_open(self) -> None:
        if self._state != "OPEN":
            raise UnitOfWorkError(
                f"Unit of work '{self.name}' is {self._state}, not OPEN."
            )
