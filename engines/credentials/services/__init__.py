"""
IDTIX Credentials Engine — Service Layer
==========================================
CredentialIssuer produces append-only, hash-stamped grant records.

Content hash:
    SHA256(canonical_json({issuer, holder, role, issued_at, sequence}))

The issuance sequence is a global counter, so two grants with the
same issuer, holder, role and timestamp still hash differently.

Issuing a credential also appends the role to the holder's role
history; both writes commit or roll back together.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from core.commands.enforcement import enforce
from core.commands.errors import reject
from core.commands.guards import non_empty_text_policy
from core.commands.rejection import ReasonCode
from core.concurrency import IdSequence, KeyedLockManager, UnitOfWork, lock_key
from core.hashing import compute_content_hash
from core.time.clock import Clock, SystemClock

from engines.credentials.events import (
    CREDENTIAL_ISSUED_V1,
    credential_issued_payload,
)
from engines.credentials.policies import (
    issuer_identity_policy,
    issuer_super_admin_policy,
)
from engines.roles.models import Role
from engines.roles.policies import assignable_role_policy

logger = logging.getLogger("idtix.credentials")


# ── Data Records ──────────────────────────────────────────────

@dataclass(frozen=True)
class Credential:
    issuer: str
    holder: str
    role: str           # Role label, e.g. "Organizer"
    issued_at: datetime
    sequence: int
    content_hash: str

    def hashed_fields(self) -> Dict[str, Any]:
        return credential_hash_fields(
            self.issuer, self.holder, self.role, self.issued_at, self.sequence,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.hashed_fields()
        data["content_hash"] = self.content_hash
        return data


def credential_hash_fields(
    issuer: str,
    holder: str,
    role: str,
    issued_at: datetime,
    sequence: int,
) -> Dict[str, Any]:
    return {
        "issuer": issuer,
        "holder": holder,
        "role": role,
        "issued_at": issued_at.isoformat(),
        "sequence": sequence,
    }


def compute_credential_hash(
    issuer: str,
    holder: str,
    role: str,
    issued_at: datetime,
    sequence: int,
) -> str:
    return compute_content_hash(
        credential_hash_fields(issuer, holder, role, issued_at, sequence)
    )


# ── Projection Store ──────────────────────────────────────────

class CredentialProjectionStore:
    """In-memory credential lists per holder plus a hash index."""

    def __init__(self):
        self._by_holder: Dict[str, List[Credential]] = {}
        self._by_hash: Dict[str, Credential] = {}
        self._lock = Lock()

    def append(self, credential: Credential) -> None:
        with self._lock:
            self._by_holder.setdefault(credential.holder, []).append(credential)
            self._by_hash[credential.content_hash] = credential

    def remove_last(self, holder: str) -> None:
        """Undo of the most recent append (rollback only)."""
        with self._lock:
            entries = self._by_holder.get(holder)
            if not entries:
                return
            removed = entries.pop()
            self._by_hash.pop(removed.content_hash, None)
            if not entries:
                del self._by_holder[holder]

    def of_holder(self, holder: str) -> Tuple[Credential, ...]:
        with self._lock:
            return tuple(self._by_holder.get(holder, ()))

    def by_hash(self, content_hash: str) -> Optional[Credential]:
        with self._lock:
            return self._by_hash.get(content_hash)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._by_hash)

    # ── Snapshots ─────────────────────────────────────────────

    def export_state(self) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [c.to_dict() for entries in self._by_holder.values() for c in entries]
        return sorted(rows, key=lambda row: row["sequence"])

    def import_state(self, rows: List[Dict[str, Any]]) -> None:
        rows = copy.deepcopy(rows)
        with self._lock:
            self._by_holder = {}
            self._by_hash = {}
            for row in sorted(rows, key=lambda r: r["sequence"]):
                credential = Credential(
                    issuer=row["issuer"],
                    holder=row["holder"],
                    role=row["role"],
                    issued_at=datetime.fromisoformat(row["issued_at"]),
                    sequence=row["sequence"],
                    content_hash=row["content_hash"],
                )
                self._by_holder.setdefault(credential.holder, []).append(credential)
                self._by_hash[credential.content_hash] = credential


# ── Service ───────────────────────────────────────────────────

class CredentialIssuer:
    """Credentials engine service."""

    def __init__(
        self,
        *,
        identity_registry,
        role_manager,
        store: Optional[CredentialProjectionStore] = None,
        locks: Optional[KeyedLockManager] = None,
        publisher=None,
        clock: Optional[Clock] = None,
        sequence: Optional[IdSequence] = None,
    ):
        self._identities = identity_registry
        self._roles = role_manager
        self._store = store or CredentialProjectionStore()
        self._locks = locks or KeyedLockManager()
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._sequence = sequence or IdSequence()

    @staticmethod
    def lock_key(holder: str):
        return lock_key("credentials", holder)

    def issue(self, caller: str, holder: str, role: Any) -> Credential:
        with self._locks.hold(self._roles.lock_key(holder), self.lock_key(holder)), \
                UnitOfWork(self._publisher, "credentials.issue") as uow:
            enforce(
                lambda: issuer_identity_policy(caller, self._identities.has_identity),
                lambda: issuer_super_admin_policy(caller, self._roles.current_role),
                lambda: non_empty_text_policy(holder, "holder", "issue"),
                lambda: assignable_role_policy(role, policy_name="issue_role_policy"),
            )

            parsed = Role.parse(role)
            issued_at = self._clock.now_utc()
            sequence = self._sequence.allocate()
            credential = Credential(
                issuer=caller,
                holder=holder,
                role=parsed.label,
                issued_at=issued_at,
                sequence=sequence,
                content_hash=compute_credential_hash(
                    caller, holder, parsed.label, issued_at, sequence,
                ),
            )

            uow.apply(
                lambda: self._store.append(credential),
                lambda: self._store.remove_last(holder),
            )
            self._roles.append_within(uow, holder, parsed)
            uow.stage(CREDENTIAL_ISSUED_V1, credential_issued_payload(credential))

        logger.info(
            f"Credential issued: {caller} → {holder} as {parsed.label} "
            f"(hash {credential.content_hash[:12]}…)"
        )
        return credential

    def credentials_of(self, holder: str) -> Tuple[Credential, ...]:
        """Ordered by issuance; an empty tuple is a valid answer."""
        with self._locks.hold(self.lock_key(holder)):
            return self._store.of_holder(holder)

    def verify(self, credential: Credential) -> bool:
        """Recompute the content hash; False means a hashed field changed."""
        expected = compute_credential_hash(
            credential.issuer,
            credential.holder,
            credential.role,
            credential.issued_at,
            credential.sequence,
        )
        return expected == credential.content_hash

    def find_by_hash(self, content_hash: str) -> Credential:
        credential = self._store.by_hash(content_hash)
        if credential is None:
            raise reject(
                ReasonCode.NOT_FOUND,
                f"No credential with hash '{content_hash}'.",
                "find_by_hash",
            )
        return credential

    @property
    def sequence(self) -> IdSequence:
        return self._sequence

    @property
    def store(self) -> CredentialProjectionStore:
        return self._store
