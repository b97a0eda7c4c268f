"""
IDTIX Catalog Engine — Service Layer
======================================
EventCatalog: organizer-created events with inventory counters.

Lifecycle:
    created → ACTIVE → SOLD_OUT (derived: active, 0 tickets left)
    ACTIVE | SOLD_OUT → CANCELLED (terminal, no reactivation)

Invariant: 0 <= available_tickets <= total_supply, at all times.
Every read and write of an event runs under its ("event", id) lock.
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
from core.commands.guards import int_id_policy, non_empty_text_policy, positive_int_policy
from core.commands.rejection import ReasonCode
from core.concurrency import IdSequence, KeyedLockManager, UnitOfWork, lock_key
from core.time.clock import Clock, SystemClock

from engines.catalog.events import (
    EVENT_CANCELLED_V1,
    EVENT_CREATED_V1,
    EventStatus,
    event_cancelled_payload,
    event_created_payload,
)
from engines.catalog.policies import (
    aware_datetime_policy,
    event_active_policy,
    event_exists_policy,
    event_owner_policy,
    future_event_date_policy,
)
from engines.identity.policies import has_identity_policy
from engines.roles.models import Role
from engines.roles.policies import role_required_policy

logger = logging.getLogger("idtix.catalog")


# ── Data Records ──────────────────────────────────────────────

@dataclass
class _EventEntry:
    """Internal mutable event record (never handed to callers)."""
    event_id: int
    name: str
    total_supply: int
    available_tickets: int
    price: int              # minor currency units
    event_date: datetime
    organizer: str
    active: bool
    created_at: datetime


@dataclass(frozen=True)
class Event:
    """Immutable point-in-time view of an event."""
    event_id: int
    name: str
    total_supply: int
    available_tickets: int
    price: int
    event_date: datetime
    organizer: str
    active: bool
    created_at: datetime

    @property
    def sold(self) -> int:
        return self.total_supply - self.available_tickets

    @property
    def status(self) -> EventStatus:
        if not self.active:
            return EventStatus.CANCELLED
        if self.available_tickets == 0:
            return EventStatus.SOLD_OUT
        return EventStatus.ACTIVE


def _snapshot(entry: _EventEntry) -> Event:
    return Event(
        event_id=entry.event_id,
        name=entry.name,
        total_supply=entry.total_supply,
        available_tickets=entry.available_tickets,
        price=entry.price,
        event_date=entry.event_date,
        organizer=entry.organizer,
        active=entry.active,
        created_at=entry.created_at,
    )


# ── Projection Store ──────────────────────────────────────────

class CatalogProjectionStore:
    """In-memory events keyed by id, plus an organizer index."""

    def __init__(self):
        self._events: Dict[int, _EventEntry] = {}
        self._by_organizer: Dict[str, List[int]] = {}
        self._lock = Lock()

    def add(self, entry: _EventEntry) -> None:
        with self._lock:
            self._events[entry.event_id] = entry
            self._by_organizer.setdefault(entry.organizer, []).append(entry.event_id)

    def remove(self, event_id: int) -> None:
        with self._lock:
            entry = self._events.pop(event_id, None)
            if entry is None:
                return
            ids = self._by_organizer.get(entry.organizer, [])
            if event_id in ids:
                ids.remove(event_id)
            if not ids:
                self._by_organizer.pop(entry.organizer, None)

    def entry(self, event_id: int) -> Optional[_EventEntry]:
        with self._lock:
            return self._events.get(event_id)

    def ids_by_organizer(self, organizer: str) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._by_organizer.get(organizer, ()))

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._events)

    # ── Snapshots ─────────────────────────────────────────────

    def export_state(self) -> List[Dict[str, Any]]:
        with self._lock:
            entries = sorted(self._events.values(), key=lambda e: e.event_id)
            return [
                {
                    "event_id": e.event_id,
                    "name": e.name,
                    "total_supply": e.total_supply,
                    "available_tickets": e.available_tickets,
                    "price": e.price,
                    "event_date": e.event_date.isoformat(),
                    "organizer": e.organizer,
                    "active": e.active,
                    "created_at": e.created_at.isoformat(),
                }
                for e in entries
            ]

    def import_state(self, rows: List[Dict[str, Any]]) -> None:
        rows = copy.deepcopy(rows)
        with self._lock:
            self._events = {}
            self._by_organizer = {}
        for row in sorted(rows, key=lambda r: r["event_id"]):
            self.add(_EventEntry(
                event_id=row["event_id"],
                name=row["name"],
                total_supply=row["total_supply"],
                available_tickets=row["available_tickets"],
                price=row["price"],
                event_date=datetime.fromisoformat(row["event_date"]),
                organizer=row["organizer"],
                active=row["active"],
                created_at=datetime.fromisoformat(row["created_at"]),
            ))


# ── Service ───────────────────────────────────────────────────

class EventCatalog:
    """Catalog engine service."""

    def __init__(
        self,
        *,
        identity_registry,
        role_manager,
        store: Optional[CatalogProjectionStore] = None,
        locks: Optional[KeyedLockManager] = None,
        publisher=None,
        clock: Optional[Clock] = None,
        sequence: Optional[IdSequence] = None,
    ):
        self._identities = identity_registry
        self._roles = role_manager
        self._store = store or CatalogProjectionStore()
        self._locks = locks or KeyedLockManager()
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._sequence = sequence or IdSequence()

    @staticmethod
    def lock_key(event_id: int):
        return lock_key("event", event_id)

    @staticmethod
    def organizer_lock_key(organizer: str):
        return lock_key("organizer", organizer)

    def create_event(
        self,
        caller: str,
        name: str,
        total_supply: int,
        price: int,
        event_date: datetime,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Guard order: caller identity (NOT_FOUND), caller is Organizer
        (UNAUTHORIZED), then inputs (INVALID_ARGUMENT). `now` is the
        caller-supplied current time, defaulting to the injected clock.
        """
        reference_now = self._clock.now_utc() if now is None else now
        enforce(
            lambda: has_identity_policy(
                caller, self._identities.has_identity,
                policy_name="create_event_caller_identity",
            ),
            lambda: role_required_policy(
                caller, Role.ORGANIZER, self._roles.current_role,
                policy_name="create_event_organizer_only",
            ),
            lambda: non_empty_text_policy(name, "name", "create_event"),
            lambda: positive_int_policy(total_supply, "total_supply", "create_event"),
            lambda: positive_int_policy(price, "price", "create_event"),
            lambda: aware_datetime_policy(reference_now, "now"),
            lambda: future_event_date_policy(event_date, reference_now),
        )

        # Rejected creates never consume an id; allocation happens inside
        # the snapshot gate.
        with self._locks.hold(self.organizer_lock_key(caller)):
            event_id = self._sequence.allocate()
            entry = _EventEntry(
                event_id=event_id,
                name=name,
                total_supply=total_supply,
                available_tickets=total_supply,
                price=price,
                event_date=event_date,
                organizer=caller,
                active=True,
                created_at=self._clock.now_utc(),
            )

            with self._locks.hold(self.lock_key(event_id)), \
                    UnitOfWork(self._publisher, "catalog.create_event") as uow:
                uow.apply(
                    lambda: self._store.add(entry),
                    lambda: self._store.remove(event_id),
                )
                uow.stage(EVENT_CREATED_V1, event_created_payload(entry))

        logger.info(
            f"Event created: {event_id} '{name}' by {caller} "
            f"(supply {total_supply}, price {price})"
        )
        return event_id

    def cancel_event(self, caller: str, event_id: int) -> Event:
        """
        Guard order: caller is Organizer (UNAUTHORIZED), event exists
        (NOT_FOUND), caller owns the event (UNAUTHORIZED), event still
        active (INVALID_STATE).
        """
        enforce(
            lambda: role_required_policy(
                caller, Role.ORGANIZER, self._roles.current_role,
                policy_name="cancel_event_organizer_only",
            ),
            lambda: int_id_policy(event_id, "event_id", "cancel_event"),
        )

        with self._locks.hold(self.lock_key(event_id)), \
                UnitOfWork(self._publisher, "catalog.cancel_event") as uow:
            entry = self._store.entry(event_id)
            enforce(
                lambda: event_exists_policy(entry, event_id),
                lambda: event_owner_policy(entry, caller),
                lambda: event_active_policy(entry),
            )

            def _deactivate():
                entry.active = False

            def _reactivate():
                entry.active = True

            uow.apply(_deactivate, _reactivate)
            uow.stage(EVENT_CANCELLED_V1, event_cancelled_payload(event_id))
            cancelled = _snapshot(entry)

        logger.info(f"Event cancelled: {event_id} by {caller}")
        return cancelled

    def details(self, event_id: int) -> Event:
        enforce(lambda: int_id_policy(event_id, "event_id", "details"))
        with self._locks.hold(self.lock_key(event_id)):
            entry = self._store.entry(event_id)
            enforce(lambda: event_exists_policy(entry, event_id))
            return _snapshot(entry)

    def status(self, event_id: int) -> EventStatus:
        return self.details(event_id).status

    def events_by(self, organizer: str) -> Tuple[int, ...]:
        """Ids of events created by an organizer, in creation order."""
        with self._locks.hold(self.organizer_lock_key(organizer)):
            return self._store.ids_by_organizer(organizer)

    # ── Inventory (used by the ticket ledger) ─────────────────

    def locked_entry(self, event_id: int) -> Optional[_EventEntry]:
        """
        Live entry for callers already holding lock_key(event_id).
        Returns None for unknown ids.
        """
        return self._store.entry(event_id)

    def take_one_within(self, uow: UnitOfWork, event_id: int) -> int:
        """
        Decrement available tickets by exactly one inside a caller-owned
        unit of work. Caller must hold lock_key(event_id).
        Returns the remaining count.
        """
        entry = self._store.entry(event_id)
        if entry is None:
            raise reject(
                ReasonCode.NOT_FOUND,
                f"Event {event_id!r} does not exist.",
                "take_one_within",
            )
        if entry.available_tickets <= 0:
            raise reject(
                ReasonCode.SOLD_OUT,
                f"Event {event_id} is sold out.",
                "take_one_within",
            )

        def _decrement():
            entry.available_tickets -= 1

        def _increment():
            entry.available_tickets += 1

        uow.apply(_decrement, _increment)
        return entry.available_tickets

    @property
    def sequence(self) -> IdSequence:
        return self._sequence

    @property
    def store(self) -> CatalogProjectionStore:
        return self._store
