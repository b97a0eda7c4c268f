"""
IDTIX Tickets Engine — Service Layer
======================================
TicketLedger sells one ticket per purchase call.

Purchase flow (all under the event lock and the buyer's index lock):
    1. Guards: buyer identity, event exists, active, stock, payment
    2. Allocate ticket id, store ticket, index it for the buyer
    3. Decrement the event's available tickets
    4. Forward the full payment to the organizer (last step)

A forwarding failure rolls back steps 2 and 3. The allocated ticket
id is burnt.
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
from core.commands.guards import int_id_policy
from core.commands.rejection import ReasonCode
from core.concurrency import IdSequence, KeyedLockManager, UnitOfWork, lock_key
from core.time.clock import Clock, SystemClock

from engines.catalog.policies import event_active_policy, event_exists_policy
from engines.identity.policies import has_identity_policy
from engines.tickets.events import TICKET_PURCHASED_V1, ticket_purchased_payload
from engines.tickets.payments import (
    InMemoryPaymentLedger,
    PaymentForwardingError,
    PaymentGateway,
)
from engines.tickets.policies import (
    payment_amount_policy,
    sufficient_payment_policy,
    tickets_available_policy,
)

logger = logging.getLogger("idtix.tickets")


# ── Data Records ──────────────────────────────────────────────

@dataclass(frozen=True)
class Ticket:
    ticket_id: int
    event_id: int
    owner: str
    valid: bool
    purchased_at: datetime
    amount_paid: int


# ── Projection Store ──────────────────────────────────────────

class TicketProjectionStore:
    """In-memory tickets keyed by id, plus a per-owner index."""

    def __init__(self):
        self._tickets: Dict[int, Ticket] = {}
        self._by_owner: Dict[str, List[int]] = {}
        self._lock = Lock()

    def add(self, ticket: Ticket) -> None:
        with self._lock:
            self._tickets[ticket.ticket_id] = ticket
            self._by_owner.setdefault(ticket.owner, []).append(ticket.ticket_id)

    def remove(self, ticket_id: int) -> None:
        with self._lock:
            ticket = self._tickets.pop(ticket_id, None)
            if ticket is None:
                return
            ids = self._by_owner.get(ticket.owner, [])
            if ticket_id in ids:
                ids.remove(ticket_id)
            if not ids:
                self._by_owner.pop(ticket.owner, None)

    def get(self, ticket_id: int) -> Optional[Ticket]:
        with self._lock:
            return self._tickets.get(ticket_id)

    def ids_of(self, owner: str) -> Tuple[int, ...]:
        with self._lock:
            return tuple(self._by_owner.get(owner, ()))

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._tickets)

    # ── Snapshots ─────────────────────────────────────────────

    def export_state(self) -> List[Dict[str, Any]]:
        with self._lock:
            tickets = sorted(self._tickets.values(), key=lambda t: t.ticket_id)
            return [
                {
                    "ticket_id": t.ticket_id,
                    "event_id": t.event_id,
                    "owner": t.owner,
                    "valid": t.valid,
                    "purchased_at": t.purchased_at.isoformat(),
                    "amount_paid": t.amount_paid,
                }
                for t in tickets
            ]

    def import_state(self, rows: List[Dict[str, Any]]) -> None:
        rows = copy.deepcopy(rows)
        with self._lock:
            self._tickets = {}
            self._by_owner = {}
        for row in sorted(rows, key=lambda r: r["ticket_id"]):
            self.add(Ticket(
                ticket_id=row["ticket_id"],
                event_id=row["event_id"],
                owner=row["owner"],
                valid=row["valid"],
                purchased_at=datetime.fromisoformat(row["purchased_at"]),
                amount_paid=row["amount_paid"],
            ))


# ── Service ───────────────────────────────────────────────────

class TicketLedger:
    """Tickets engine service."""

    def __init__(
        self,
        *,
        identity_registry,
        catalog,
        store: Optional[TicketProjectionStore] = None,
        locks: Optional[KeyedLockManager] = None,
        publisher=None,
        clock: Optional[Clock] = None,
        sequence: Optional[IdSequence] = None,
        payment_gateway: Optional[PaymentGateway] = None,
    ):
        self._identities = identity_registry
        self._catalog = catalog
        self._store = store or TicketProjectionStore()
        self._locks = locks or KeyedLockManager()
        self._publisher = publisher
        self._clock = clock or SystemClock()
        self._sequence = sequence or IdSequence()
        self._gateway = payment_gateway or InMemoryPaymentLedger()

    @staticmethod
    def lock_key(owner: str):
        return lock_key("tickets", owner)

    def purchase(self, caller: str, event_id: int, payment_amount: int) -> int:
        """
        Guard order: buyer identity (NOT_FOUND), event exists (NOT_FOUND),
        event active (INVALID_STATE), stock (SOLD_OUT), payment covers
        the price (INSUFFICIENT_PAYMENT).
        """
        enforce(
            lambda: has_identity_policy(
                caller, self._identities.has_identity,
                policy_name="purchase_buyer_identity",
            ),
            lambda: int_id_policy(event_id, "event_id", "purchase"),
            lambda: payment_amount_policy(payment_amount),
        )

        with self._locks.hold(self._catalog.lock_key(event_id), self.lock_key(caller)), \
                UnitOfWork(self._publisher, "tickets.purchase") as uow:
            event = self._catalog.locked_entry(event_id)
            enforce(
                lambda: event_exists_policy(event, event_id),
                lambda: event_active_policy(event),
                lambda: tickets_available_policy(event),
                lambda: sufficient_payment_policy(event, payment_amount),
            )

            ticket = Ticket(
                ticket_id=self._sequence.allocate(),
                event_id=event_id,
                owner=caller,
                valid=True,
                purchased_at=self._clock.now_utc(),
                amount_paid=payment_amount,
            )
            uow.apply(
                lambda: self._store.add(ticket),
                lambda: self._store.remove(ticket.ticket_id),
            )
            remaining = self._catalog.take_one_within(uow, event_id)

            try:
                self._gateway.forward(
                    payer=caller,
                    payee=event.organizer,
                    amount=payment_amount,
                    reference=f"ticket:{ticket.ticket_id}",
                )
            except Exception as exc:
                # Gateways outside our control may raise anything; the
                # caller always sees one typed, retryable error.
                logger.error(
                    f"Payment forwarding failed for ticket {ticket.ticket_id} "
                    f"(event {event_id}, buyer {caller}): {exc}",
                    exc_info=not isinstance(exc, PaymentForwardingError),
                )
                raise reject(
                    ReasonCode.PAYMENT_FORWARDING_FAILED,
                    f"Could not forward {payment_amount} to '{event.organizer}': {exc}",
                    "purchase",
                ) from exc

            uow.stage(TICKET_PURCHASED_V1, ticket_purchased_payload(ticket))

        logger.info(
            f"Ticket purchased: {ticket.ticket_id} for event {event_id} "
            f"by {caller} ({remaining} left)"
        )
        return ticket.ticket_id

    def tickets_of(self, principal: str) -> Tuple[int, ...]:
        with self._locks.hold(self.lock_key(principal)):
            ids = self._store.ids_of(principal)
        if not ids:
            raise reject(
                ReasonCode.NO_TICKETS,
                f"Principal '{principal}' owns no tickets.",
                "tickets_of",
            )
        return ids

    def details(self, ticket_id: int) -> Ticket:
        enforce(lambda: int_id_policy(ticket_id, "ticket_id", "details"))
        ticket = self._store.get(ticket_id)
        if ticket is not None:
            # Re-read under the owner's lock: an in-flight purchase may
            # still roll this ticket back.
            with self._locks.hold(self.lock_key(ticket.owner)):
                ticket = self._store.get(ticket_id)
        if ticket is None:
            raise reject(
                ReasonCode.NOT_FOUND,
                f"Ticket {ticket_id!r} does not exist.",
                "details",
            )
        return ticket

    @property
    def payment_gateway(self) -> PaymentGateway:
        return self._gateway

    @property
    def sequence(self) -> IdSequence:
        return self._sequence

    @property
    def store(self) -> TicketProjectionStore:
        return self._store
