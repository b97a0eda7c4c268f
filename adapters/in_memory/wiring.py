"""
IDTIX In-Memory Wiring
========================
Composition root: builds the five engine services around one shared
lock manager, one notification publisher and one clock, and exposes
them through the IdtixSystem facade.

Bootstrap:
- settings.bootstrap_admin is granted SuperAdmin once, at build time
- with settings.bootstrap_admin_identifier, the admin's identity is
  registered too; without it the admin must register() before any
  administrative call succeeds
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from core.concurrency import IdSequence, KeyedLockManager
from core.config import IdtixSettings
from core.events import WILDCARD, Notification, NotificationPublisher
from core.projections import SNAPSHOT_SCHEMA_VERSION, SnapshotEntry, SnapshotStore
from core.time.clock import Clock, SystemClock

from engines.catalog.events import EventStatus
from engines.catalog.services import Event, EventCatalog
from engines.credentials.services import Credential, CredentialIssuer
from engines.identity.services import Identity, IdentityRegistry, MetaData
from engines.roles.models import Role, RoleRecord
from engines.roles.services import RoleManager
from engines.tickets.payments import InMemoryPaymentLedger, PaymentGateway
from engines.tickets.services import Ticket, TicketLedger

logger = logging.getLogger("idtix.bootstrap")


class IdtixSystem:
    """Single entry point over the engine services."""

    def __init__(
        self,
        *,
        settings: IdtixSettings,
        clock: Clock,
        locks: KeyedLockManager,
        publisher: NotificationPublisher,
        identities: IdentityRegistry,
        roles: RoleManager,
        credentials: CredentialIssuer,
        catalog: EventCatalog,
        tickets: TicketLedger,
        snapshots: Optional[SnapshotStore] = None,
    ):
        self.settings = settings
        self.clock = clock
        self.locks = locks
        self.publisher = publisher
        self.identities = identities
        self.roles = roles
        self.credentials = credentials
        self.catalog = catalog
        self.tickets = tickets
        self.snapshots = snapshots or SnapshotStore()

    # ── Identity ──────────────────────────────────────────────

    def register(self, principal: str, identifier: str) -> Identity:
        return self.identities.register(principal, identifier)

    def lookup(self, principal: str) -> str:
        return self.identities.lookup(principal)

    def set_metadata(self, principal: str, name: str, email: str, picture: str) -> MetaData:
        return self.identities.set_metadata(principal, name, email, picture)

    def get_metadata(self, principal: str) -> MetaData:
        return self.identities.get_metadata(principal)

    # ── Roles & credentials ───────────────────────────────────

    def assign_role(self, caller: str, target: str, role: Any) -> RoleRecord:
        return self.roles.assign_role(caller, target, role)

    def current_role(self, principal: str) -> Role:
        return self.roles.current_role(principal)

    def history(self, principal: str) -> Tuple[Role, ...]:
        return self.roles.history(principal)

    def issue(self, caller: str, holder: str, role: Any) -> Credential:
        return self.credentials.issue(caller, holder, role)

    def credentials_of(self, holder: str) -> Tuple[Credential, ...]:
        return self.credentials.credentials_of(holder)

    # ── Events & tickets ──────────────────────────────────────

    def create_event(
        self,
        caller: str,
        name: str,
        total_supply: int,
        price: int,
        event_date: datetime,
        now: Optional[datetime] = None,
    ) -> int:
        return self.catalog.create_event(caller, name, total_supply, price, event_date, now)

    def cancel_event(self, caller: str, event_id: int) -> Event:
        return self.catalog.cancel_event(caller, event_id)

    def event_details(self, event_id: int) -> Event:
        return self.catalog.details(event_id)

    def event_status(self, event_id: int) -> EventStatus:
        return self.catalog.status(event_id)

    def purchase(self, caller: str, event_id: int, payment_amount: int) -> int:
        return self.tickets.purchase(caller, event_id, payment_amount)

    def tickets_of(self, principal: str) -> Tuple[int, ...]:
        return self.tickets.tickets_of(principal)

    def ticket_details(self, ticket_id: int) -> Ticket:
        return self.tickets.details(ticket_id)

    # ── Notifications ─────────────────────────────────────────

    def subscribe(
        self,
        event_type: str,
        handler: Callable[[Notification], Any],
        subscriber_name: str,
    ) -> None:
        """event_type may be WILDCARD ('*') to receive everything."""
        self.publisher.subscribe(event_type, handler, subscriber_name)

    def notifications(self, event_type: Optional[str] = None) -> Tuple[Notification, ...]:
        if event_type is None or event_type == WILDCARD:
            return self.publisher.log.entries()
        return self.publisher.log.of_type(event_type)

    # ── Snapshots ─────────────────────────────────────────────

    def snapshot(self, label: str = "manual") -> SnapshotEntry:
        """
        Capture every store behind the exclusive snapshot gate: running
        operations finish first and new ones wait until the export ends.
        Must not be called from inside an operation (e.g. a subscriber).
        """
        with self.locks.hold_everything():
            data = {
                "identities": self.identities.store.export_state(),
                "roles": self.roles.store.export_state(),
                "credentials": self.credentials.store.export_state(),
                "events": self.catalog.store.export_state(),
                "tickets": self.tickets.store.export_state(),
                "payments": _export_payments(self.tickets.payment_gateway),
                "counters": {
                    "event_id": self.catalog.sequence.next_value,
                    "ticket_id": self.tickets.sequence.next_value,
                    "credential_sequence": self.credentials.sequence.next_value,
                },
                "bootstrap_admin": self.roles.bootstrapped_admin,
            }
            notification_sequence = self.publisher.last_sequence

        entry = self.snapshots.create_snapshot(
            label=label,
            created_at=self.clock.now_utc(),
            data=data,
            notification_sequence=notification_sequence,
        )
        logger.info(
            f"Snapshot '{label}' taken ({entry.snapshot_id}, "
            f"notification #{notification_sequence})"
        )
        return entry

    def restore(self, snapshot: SnapshotEntry) -> "IdtixSystem":
        """Build a new system from a snapshot; this system is untouched."""
        return restore_system(
            snapshot,
            settings=self.settings,
            clock=self.clock,
        )


def _export_payments(gateway: PaymentGateway) -> Optional[Dict[str, Any]]:
    export_state = getattr(gateway, "export_state", None)
    return export_state() if export_state is not None else None


# ── Composition ───────────────────────────────────────────────

def _assemble(
    settings: IdtixSettings,
    clock: Clock,
    payment_gateway: Optional[PaymentGateway],
) -> IdtixSystem:
    locks = KeyedLockManager()
    publisher = NotificationPublisher(clock=clock)

    identities = IdentityRegistry(locks=locks, publisher=publisher, clock=clock)
    roles = RoleManager(identity_registry=identities, locks=locks, publisher=publisher)
    credentials = CredentialIssuer(
        identity_registry=identities,
        role_manager=roles,
        locks=locks,
        publisher=publisher,
        clock=clock,
    )
    catalog = EventCatalog(
        identity_registry=identities,
        role_manager=roles,
        locks=locks,
        publisher=publisher,
        clock=clock,
        sequence=IdSequence(start=settings.event_id_start),
    )
    tickets = TicketLedger(
        identity_registry=identities,
        catalog=catalog,
        locks=locks,
        publisher=publisher,
        clock=clock,
        sequence=IdSequence(start=settings.ticket_id_start),
        payment_gateway=payment_gateway or InMemoryPaymentLedger(),
    )

    return IdtixSystem(
        settings=settings,
        clock=clock,
        locks=locks,
        publisher=publisher,
        identities=identities,
        roles=roles,
        credentials=credentials,
        catalog=catalog,
        tickets=tickets,
    )


def build_system(
    settings: Optional[IdtixSettings] = None,
    *,
    clock: Optional[Clock] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> IdtixSystem:
    settings = settings or IdtixSettings()
    system = _assemble(settings, clock or SystemClock(), payment_gateway)

    admin = settings.bootstrap_admin
    if admin is None:
        logger.warning("No bootstrap admin configured; no principal can assign roles.")
        return system

    if settings.bootstrap_admin_identifier is not None:
        system.identities.register(admin, settings.bootstrap_admin_identifier)
    else:
        logger.warning(
            f"Bootstrap admin '{admin}' has no identity; it must register "
            f"before performing administrative actions."
        )
    system.roles.bootstrap_super_admin(admin)
    return system


def restore_system(
    snapshot: SnapshotEntry,
    *,
    settings: Optional[IdtixSettings] = None,
    clock: Optional[Clock] = None,
    payment_gateway: Optional[PaymentGateway] = None,
) -> IdtixSystem:
    """
    Rebuild a system from a snapshot. No notifications are re-published;
    new ones continue numbering after the snapshot's last notification.
    """
    if snapshot.schema_version != SNAPSHOT_SCHEMA_VERSION:
        raise ValueError(
            f"Unsupported snapshot schema_version {snapshot.schema_version}; "
            f"expected {SNAPSHOT_SCHEMA_VERSION}."
        )

    settings = settings or IdtixSettings()
    system = _assemble(settings, clock or SystemClock(), payment_gateway)
    data = copy.deepcopy(snapshot.data)

    system.identities.store.import_state(data["identities"])
    system.roles.store.import_state(data["roles"])
    system.credentials.store.import_state(data["credentials"])
    system.catalog.store.import_state(data["events"])
    system.tickets.store.import_state(data["tickets"])

    gateway = system.tickets.payment_gateway
    if data.get("payments") is not None and hasattr(gateway, "import_state"):
        gateway.import_state(data["payments"])

    counters = data["counters"]
    system.catalog.sequence.restore(counters["event_id"])
    system.tickets.sequence.restore(counters["ticket_id"])
    system.credentials.sequence.restore(counters["credential_sequence"])
    system.publisher.resume_from(snapshot.notification_sequence)

    if data.get("bootstrap_admin"):
        system.roles.mark_bootstrapped(data["bootstrap_admin"])

    logger.info(
        f"System restored from snapshot {snapshot.snapshot_id} "
        f"('{snapshot.label}')"
    )
    return system
