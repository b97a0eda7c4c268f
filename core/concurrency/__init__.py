"""
IDTIX Concurrency — Public API
================================
Per-key locking, all-or-nothing units of work, id sequences.
"""

from core.concurrency.locks import KeyedLockManager, LockKey, lock_key
from core.concurrency.sequence import IdSequence
from core.concurrency.unit_of_work import UnitOfWork, UnitOfWorkError

__all__ = [
    "KeyedLockManager",
    "LockKey",
    "lock_key",
    "IdSequence",
    "UnitOfWork",
    "UnitOfWorkError",
]
