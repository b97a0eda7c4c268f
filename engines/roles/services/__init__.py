"""
IDTIX Roles Engine — Service Layer
====================================
RoleManager keeps, per principal, an append-only history of role
values. The current role is always the last appended entry; a
principal with no history holds Role.NONE.

Appends to one principal's history are serialized on that
principal's ("roles", principal) lock, so concurrent assignments
never lose an entry.
"""

from __future__ import annotations

import copy
import logging
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from core.commands.enforcement import enforce
from core.commands.errors import reject
from core.commands.guards import non_empty_text_policy
from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockManager, UnitOfWork, lock_key

from engines.identity.policies import has_identity_policy
from engines.roles.events import ROLE_ASSIGNED_V1, role_assigned_payload
from engines.roles.models import Role, RoleRecord
from engines.roles.policies import assignable_role_policy, role_required_policy

logger = logging.getLogger("idtix.roles")


# ── Projection Store ──────────────────────────────────────────

class RoleProjectionStore:
    """In-memory append-only role histories keyed by principal."""

    def __init__(self):
        self._history: Dict[str, List[Role]] = {}
        self._lock = Lock()

    def append(self, principal: str, role: Role) -> None:
        with self._lock:
            self._history.setdefault(principal, []).append(role)

    def pop_last(self, principal: str) -> None:
        """Undo of the most recent append (rollback only)."""
        with self._lock:
            entries = self._history.get(principal)
            if not entries:
                return
            entries.pop()
            if not entries:
                del self._history[principal]

    def current(self, principal: str) -> Role:
        with self._lock:
            entries = self._history.get(principal)
            return entries[-1] if entries else Role.NONE

    def history(self, principal: str) -> Tuple[Role, ...]:
        with self._lock:
            return tuple(self._history.get(principal, ()))

    # ── Snapshots ─────────────────────────────────────────────

    def export_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                principal: [role.name for role in entries]
                for principal, entries in self._history.items()
            }

    def import_state(self, state: Dict[str, Any]) -> None:
        state = copy.deepcopy(state)
        with self._lock:
            self._history = {
                principal: [Role[name] for name in names]
                for principal, names in state.items()
                if names
            }


# ── Service ───────────────────────────────────────────────────

class RoleManager:
    """Roles engine service. Enforces the administrative hierarchy."""

    def __init__(
        self,
        *,
        identity_registry,
        store: Optional[RoleProjectionStore] = None,
        locks: Optional[KeyedLockManager] = None,
        publisher=None,
    ):
        self._identities = identity_registry
        self._store = store or RoleProjectionStore()
        self._locks = locks or KeyedLockManager()
        self._publisher = publisher
        self._bootstrapped: Optional[str] = None
        self._bootstrap_lock = Lock()

    @staticmethod
    def lock_key(principal: str):
        return lock_key("roles", principal)

    def assign_role(self, caller: str, target: str, role: Any) -> RoleRecord:
        """
        Guard order: caller identity (NOT_FOUND), caller is SuperAdmin
        (UNAUTHORIZED), target present, role assignable (INVALID_ARGUMENT).
        """
        with self._locks.hold(self.lock_key(target)), \
                UnitOfWork(self._publisher, "roles.assign_role") as uow:
            enforce(
                lambda: has_identity_policy(
                    caller, self._identities.has_identity,
                    policy_name="assign_role_caller_identity",
                ),
                lambda: role_required_policy(
                    caller, Role.SUPER_ADMIN, self.current_role,
                    policy_name="assign_role_super_admin_only",
                ),
                lambda: non_empty_text_policy(target, "target", "assign_role"),
                lambda: assignable_role_policy(role),
            )

            parsed = Role.parse(role)
            self.append_within(uow, target, parsed)
            uow.stage(ROLE_ASSIGNED_V1, role_assigned_payload(target, parsed))

        logger.info(f"Role assigned: {target} → {parsed.label} (by {caller})")
        return RoleRecord(principal=target, history=self._store.history(target))

    def append_within(self, uow: UnitOfWork, principal: str, role: Role) -> None:
        """
        Append inside a caller-owned unit of work. The caller must hold
        lock_key(principal) and has already authorized the append.
        """
        uow.apply(
            lambda: self._store.append(principal, role),
            lambda: self._store.pop_last(principal),
        )

    def bootstrap_super_admin(self, principal: str) -> RoleRecord:
        """
        System-initialization grant. Runs without a caller check and does
        NOT register an identity for the principal; the composition root
        decides whether one is created (see adapters.wiring).
        """
        enforce(lambda: non_empty_text_policy(principal, "principal", "bootstrap_super_admin"))
        with self._bootstrap_lock:
            if self._bootstrapped is not None:
                raise reject(
                    ReasonCode.INVALID_STATE,
                    f"Super admin already bootstrapped ('{self._bootstrapped}').",
                    "bootstrap_super_admin",
                )

            with self._locks.hold(self.lock_key(principal)), \
                    UnitOfWork(self._publisher, "roles.bootstrap_super_admin") as uow:
                self.append_within(uow, principal, Role.SUPER_ADMIN)
                uow.stage(ROLE_ASSIGNED_V1, role_assigned_payload(principal, Role.SUPER_ADMIN))
            self._bootstrapped = principal

        logger.info(f"Bootstrap super admin: {principal}")
        return RoleRecord(principal=principal, history=self._store.history(principal))

    def current_role(self, principal: str) -> Role:
        """Role.NONE when the principal has no record (not an error)."""
        return self._store.current(principal)

    def history(self, principal: str) -> Tuple[Role, ...]:
        """
        NOT_FOUND when the principal never registered, EMPTY_HISTORY when
        it registered but was never assigned a role.
        """
        if not self._identities.has_identity(principal):
            raise reject(
                ReasonCode.NOT_FOUND,
                f"No identity registered for principal '{principal}'.",
                "history",
            )
        entries = self._store.history(principal)
        if not entries:
            raise reject(
                ReasonCode.EMPTY_HISTORY,
                f"Principal '{principal}' has never been assigned a role.",
                "history",
            )
        return entries

    def mark_bootstrapped(self, principal: str) -> None:
        """Restore path: the bootstrap grant is already in the history."""
        self._bootstrapped = principal

    @property
    def bootstrapped_admin(self) -> Optional[str]:
        return self._bootstrapped

    @property
    def store(self) -> RoleProjectionStore:
        return self._store
