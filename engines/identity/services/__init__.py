"""
IDTIX Identity Engine — Service Layer
=======================================
IdentityRegistry: one self-declared identifier per principal plus
last-write-wins profile metadata. Every other engine asks this
registry whether a principal exists before doing anything else.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Any, Dict, Optional

from core.commands.enforcement import enforce
from core.commands.errors import reject
from core.commands.guards import non_empty_text_policy
from core.commands.rejection import ReasonCode
from core.concurrency import KeyedLockManager, UnitOfWork, lock_key
from core.time.clock import Clock, SystemClock

from engines.identity.events import (
    IDENTITY_CREATED_V1,
    METADATA_SET_V1,
    identity_created_payload,
    metadata_set_payload,
)
from engines.identity.policies import (
    has_identity_policy,
    no_existing_identity_policy,
)

logger = logging.getLogger("idtix.identity")


# ── Data Records ──────────────────────────────────────────────

@dataclass(frozen=True)
class Identity:
    principal: str
    identifier: str
    created_at: datetime


@dataclass(frozen=True)
class MetaData:
    """Profile metadata. All-empty when never set for an existing identity."""
    owner: str
    name: str = ""
    email: str = ""
    picture: str = ""
    updated_at: Optional[datetime] = None

    @property
    def is_set(self) -> bool:
        return self.updated_at is not None


# ── Projection Store ──────────────────────────────────────────

class IdentityProjectionStore:
    """In-memory identity and metadata records keyed by principal."""

    def __init__(self):
        self._identities: Dict[str, Identity] = {}
        self._metadata: Dict[str, MetaData] = {}
        self._lock = Lock()

    def get(self, principal: str) -> Optional[Identity]:
        with self._lock:
            return self._identities.get(principal)

    def has(self, principal: str) -> bool:
        with self._lock:
            return principal in self._identities

    def add(self, identity: Identity) -> None:
        with self._lock:
            self._identities[identity.principal] = identity

    def remove(self, principal: str) -> None:
        with self._lock:
            self._identities.pop(principal, None)

    def get_metadata(self, principal: str) -> Optional[MetaData]:
        with self._lock:
            return self._metadata.get(principal)

    def put_metadata(self, metadata: MetaData) -> Optional[MetaData]:
        """Store metadata, returning whatever it replaced."""
        with self._lock:
            previous = self._metadata.get(metadata.owner)
            self._metadata[metadata.owner] = metadata
            return previous

    def restore_metadata(self, owner: str, previous: Optional[MetaData]) -> None:
        with self._lock:
            if previous is None:
                self._metadata.pop(owner, None)
            else:
                self._metadata[owner] = previous

    @property
    def identity_count(self) -> int:
        with self._lock:
            return len(self._identities)

    # ── Snapshots ─────────────────────────────────────────────

    def export_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "identities": [
                    {
                        "principal": i.principal,
                        "identifier": i.identifier,
                        "created_at": i.created_at.isoformat(),
                    }
                    for i in self._identities.values()
                ],
                "metadata": [
                    {
                        "owner": m.owner,
                        "name": m.name,
                        "email": m.email,
                        "picture": m.picture,
                        "updated_at": m.updated_at.isoformat() if m.updated_at else None,
                    }
                    for m in self._metadata.values()
                ],
            }

    def import_state(self, state: Dict[str, Any]) -> None:
        state = copy.deepcopy(state)
        with self._lock:
            self._identities = {
                row["principal"]: Identity(
                    principal=row["principal"],
                    identifier=row["identifier"],
                    created_at=datetime.fromisoformat(row["created_at"]),
                )
                for row in state.get("identities", [])
            }
            self._metadata = {
                row["owner"]: MetaData(
                    owner=row["owner"],
                    name=row["name"],
                    email=row["email"],
                    picture=row["picture"],
                    updated_at=(
                        datetime.fromisoformat(row["updated_at"])
                        if row.get("updated_at") else None
                    ),
                )
                for row in state.get("metadata", [])
            }


# ── Service ───────────────────────────────────────────────────

class IdentityRegistry:
    """Identity engine service. All mutations publish notifications."""

    def __init__(
        self,
        *,
        store: Optional[IdentityProjectionStore] = None,
        locks: Optional[KeyedLockManager] = None,
        publisher=None,
        clock: Optional[Clock] = None,
    ):
        self._store = store or IdentityProjectionStore()
        self._locks = locks or KeyedLockManager()
        self._publisher = publisher
        self._clock = clock or SystemClock()

    @staticmethod
    def lock_key(principal: str):
        return lock_key("identity", principal)

    def register(self, principal: str, identifier: str) -> Identity:
        enforce(
            lambda: non_empty_text_policy(principal, "principal", "register"),
            lambda: non_empty_text_policy(identifier, "identifier", "register"),
        )

        with self._locks.hold(self.lock_key(principal)), \
                UnitOfWork(self._publisher, "identity.register") as uow:
            enforce(lambda: no_existing_identity_policy(principal, self._store.has))

            identity = Identity(
                principal=principal,
                identifier=identifier,
                created_at=self._clock.now_utc(),
            )
            uow.apply(
                lambda: self._store.add(identity),
                lambda: self._store.remove(principal),
            )
            uow.stage(IDENTITY_CREATED_V1, identity_created_payload(identity))

        logger.info(f"Identity registered: {principal} → {identifier}")
        return identity

    def lookup(self, principal: str) -> str:
        return self._require(principal, "lookup").identifier

    def get_identity(self, principal: str) -> Identity:
        return self._require(principal, "get_identity")

    def has_identity(self, principal: str) -> bool:
        return isinstance(principal, str) and self._store.has(principal)

    def set_metadata(
        self,
        principal: str,
        name: str,
        email: str,
        picture: str,
    ) -> MetaData:
        with self._locks.hold(self.lock_key(principal)), \
                UnitOfWork(self._publisher, "identity.set_metadata") as uow:
            enforce(
                lambda: has_identity_policy(principal, self.has_identity),
                lambda: non_empty_text_policy(name, "name", "set_metadata"),
                lambda: non_empty_text_policy(email, "email", "set_metadata"),
                lambda: non_empty_text_policy(picture, "picture", "set_metadata"),
            )

            metadata = MetaData(
                owner=principal,
                name=name,
                email=email,
                picture=picture,
                updated_at=self._clock.now_utc(),
            )
            previous = self._store.put_metadata(metadata)
            uow.on_rollback(
                lambda: self._store.restore_metadata(principal, previous)
            )
            uow.stage(METADATA_SET_V1, metadata_set_payload(metadata))

        logger.info(f"Metadata set for {principal}")
        return metadata

    def get_metadata(self, principal: str) -> MetaData:
        """
        Identity presence is the gate: a registered principal without
        metadata gets an empty MetaData, an unknown one gets NotFound.
        """
        self._require(principal, "get_metadata")
        return self._store.get_metadata(principal) or MetaData(owner=principal)

    def _require(self, principal: str, operation: str) -> Identity:
        identity = self._store.get(principal) if isinstance(principal, str) else None
        if identity is None:
            raise reject(
                ReasonCode.NOT_FOUND,
                f"No identity registered for principal '{principal}'.",
                operation,
            )
        return identity

    @property
    def store(self) -> IdentityProjectionStore:
        return self._store
