"""
Tests for engines.tickets — TicketLedger and payment forwarding.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from core.commands import (
    InsufficientPayment,
    InvalidArgument,
    InvalidState,
    NoTickets,
    NotFound,
    PaymentForwardingFailed,
    SoldOut,
)
from core.events import NotificationPublisher
from core.time.clock import FixedClock
from engines.catalog.services import EventCatalog
from engines.identity.services import IdentityRegistry
from engines.roles.models import Role
from engines.roles.services import RoleManager
from engines.tickets.events import TICKET_PURCHASED_V1
from engines.tickets.payments import InMemoryPaymentLedger, PaymentForwardingError
from engines.tickets.services import TicketLedger, TicketProjectionStore

ADMIN = "did:admin"
ORG = "did:org"
BUYER = "did:buyer"
T0 = datetime(2026, 7, 1, 8, 0, tzinfo=timezone.utc)
LATER = T0 + timedelta(days=10)
PRICE = 2500


class _FailingGateway:
    def __init__(self):
        self.calls = 0

    def forward(self, *, payer, payee, amount, reference):
        self.calls += 1
        raise PaymentForwardingError("gateway offline")


class _BrokenGateway:
    """Raises something other than PaymentForwardingError."""

    def forward(self, *, payer, payee, amount, reference):
        raise ConnectionError("socket closed")


def _setup(gateway=None, supply=3):
    clock = FixedClock(T0)
    publisher = NotificationPublisher(clock=clock)
    identities = IdentityRegistry(publisher=publisher, clock=clock)
    roles = RoleManager(identity_registry=identities, publisher=publisher)
    catalog = EventCatalog(
        identity_registry=identities,
        role_manager=roles,
        publisher=publisher,
        clock=clock,
    )
    ledger = TicketLedger(
        identity_registry=identities,
        catalog=catalog,
        publisher=publisher,
        clock=clock,
        payment_gateway=gateway,
    )
    identities.register(ADMIN, "admin@idtix")
    roles.bootstrap_super_admin(ADMIN)
    identities.register(ORG, "org@example")
    roles.assign_role(ADMIN, ORG, Role.ORGANIZER)
    identities.register(BUYER, "buyer@example")
    event_id = catalog.create_event(ORG, "Festival", supply, PRICE, LATER)
    return catalog, ledger, publisher, event_id


# ── Purchase ─────────────────────────────────────────────────

class TestPurchase:
    def test_purchase(self):
        catalog, ledger, publisher, event_id = _setup()
        ticket_id = ledger.purchase(BUYER, event_id, PRICE)

        assert ticket_id == 1
        ticket = ledger.details(ticket_id)
        assert ticket.owner == BUYER
        assert ticket.event_id == event_id
        assert ticket.valid
        assert ticket.amount_paid == PRICE
        assert ticket.purchased_at == T0
        assert ledger.tickets_of(BUYER) == (ticket_id,)
        assert catalog.details(event_id).available_tickets == 2

        notification = publisher.log.last()
        assert notification.event_type == TICKET_PURCHASED_V1
        assert notification.payload == {
            "ticket_id": ticket_id, "event_id": event_id, "buyer": BUYER,
        }

    def test_full_amount_forwarded_to_organizer(self):
        _, ledger, _, event_id = _setup()
        ledger.purchase(BUYER, event_id, PRICE + 500)
        gateway = ledger.payment_gateway
        assert gateway.balance_of(ORG) == PRICE + 500
        (transfer,) = gateway.transfers
        assert (transfer.payer, transfer.payee, transfer.reference) == (
            BUYER, ORG, "ticket:1",
        )

    def test_ticket_ids_increase_across_events(self):
        catalog, ledger, _, event_id = _setup()
        other = catalog.create_event(ORG, "Other", 5, 100, LATER)
        ids = [
            ledger.purchase(BUYER, event_id, PRICE),
            ledger.purchase(BUYER, other, 100),
            ledger.purchase(BUYER, event_id, PRICE),
        ]
        assert ids == [1, 2, 3]
        assert ledger.tickets_of(BUYER) == (1, 2, 3)

    def test_organizer_may_buy_own_event(self):
        _, ledger, _, event_id = _setup()
        assert ledger.purchase(ORG, event_id, PRICE) == 1


# ── Rejections ───────────────────────────────────────────────

class TestPurchaseRejections:
    def test_buyer_without_identity(self):
        _, ledger, _, event_id = _setup()
        with pytest.raises(NotFound):
            ledger.purchase("did:ghost", event_id, PRICE)

    def test_unknown_event(self):
        _, ledger, _, _ = _setup()
        with pytest.raises(NotFound):
            ledger.purchase(BUYER, 404, PRICE)

    def test_cancelled_event(self):
        catalog, ledger, _, event_id = _setup()
        catalog.cancel_event(ORG, event_id)
        with pytest.raises(InvalidState):
            ledger.purchase(BUYER, event_id, PRICE)

    def test_sold_out(self):
        catalog, ledger, _, event_id = _setup(supply=1)
        ledger.purchase(BUYER, event_id, PRICE)
        with pytest.raises(SoldOut):
            ledger.purchase(BUYER, event_id, PRICE)
        assert catalog.details(event_id).available_tickets == 0

    def test_sold_out_checked_before_payment(self):
        _, ledger, _, event_id = _setup(supply=1)
        ledger.purchase(BUYER, event_id, PRICE)
        with pytest.raises(SoldOut):
            ledger.purchase(BUYER, event_id, 1)

    def test_insufficient_payment(self):
        catalog, ledger, publisher, event_id = _setup()
        before = publisher.log.count
        with pytest.raises(InsufficientPayment):
            ledger.purchase(BUYER, event_id, PRICE - 1)
        assert catalog.details(event_id).available_tickets == 3
        assert ledger.sequence.next_value == 1
        assert publisher.log.count == before

    @pytest.mark.parametrize("amount", ["2500", 2500.0, None, True])
    def test_non_integer_payment(self, amount):
        _, ledger, _, event_id = _setup()
        with pytest.raises(InvalidArgument):
            ledger.purchase(BUYER, event_id, amount)


# ── Payment failure ──────────────────────────────────────────

class TestPaymentForwardingFailure:
    def test_rolls_back_everything(self):
        gateway = _FailingGateway()
        catalog, ledger, publisher, event_id = _setup(gateway=gateway)
        before = publisher.log.count

        with pytest.raises(PaymentForwardingFailed) as exc_info:
            ledger.purchase(BUYER, event_id, PRICE)

        assert exc_info.value.retryable
        assert isinstance(exc_info.value.__cause__, PaymentForwardingError)
        assert gateway.calls == 1
        assert catalog.details(event_id).available_tickets == 3
        assert ledger.store.count == 0
        assert publisher.log.count == before
        with pytest.raises(NoTickets):
            ledger.tickets_of(BUYER)
        with pytest.raises(NotFound):
            ledger.details(1)

    def test_burnt_id_not_reused(self):
        gateway = _FailingGateway()
        _, ledger, _, event_id = _setup(gateway=gateway)
        with pytest.raises(PaymentForwardingFailed):
            ledger.purchase(BUYER, event_id, PRICE)
        assert ledger.sequence.next_value == 2

    def test_unexpected_gateway_error_is_typed_and_rolled_back(self):
        catalog, ledger, publisher, event_id = _setup(gateway=_BrokenGateway())
        before = publisher.log.count

        with pytest.raises(PaymentForwardingFailed) as exc_info:
            ledger.purchase(BUYER, event_id, PRICE)

        assert exc_info.value.retryable
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert catalog.details(event_id).available_tickets == 3
        assert ledger.store.count == 0
        assert publisher.log.count == before


# ── Concurrency ──────────────────────────────────────────────

class TestConcurrentSellOut:
    def test_exactly_k_of_n_succeed(self):
        supply, buyers = 5, 20
        catalog, ledger, _, event_id = _setup(supply=supply)
        identities = ledger._identities
        principals = [f"did:b{i}" for i in range(buyers)]
        for principal in principals:
            identities.register(principal, f"{principal}@example")

        results = {"ok": [], "sold_out": 0}
        lock = threading.Lock()
        start = threading.Barrier(buyers)

        def _buy(principal):
            start.wait()
            try:
                ticket_id = ledger.purchase(principal, event_id, PRICE)
                with lock:
                    results["ok"].append(ticket_id)
            except SoldOut:
                with lock:
                    results["sold_out"] += 1

        workers = [threading.Thread(target=_buy, args=(p,)) for p in principals]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join()

        assert len(results["ok"]) == supply
        assert results["sold_out"] == buyers - supply
        assert sorted(results["ok"]) == list(range(1, supply + 1))
        assert catalog.details(event_id).available_tickets == 0
        assert ledger.payment_gateway.balance_of(ORG) == supply * PRICE


# ── Queries & state ──────────────────────────────────────────

class TestTicketQueries:
    def test_no_tickets(self):
        _, ledger, _, _ = _setup()
        with pytest.raises(NoTickets):
            ledger.tickets_of(BUYER)

    def test_details_unknown(self):
        _, ledger, _, _ = _setup()
        with pytest.raises(NotFound):
            ledger.details(7)

    def test_store_export_import(self):
        _, ledger, _, event_id = _setup()
        ticket_id = ledger.purchase(BUYER, event_id, PRICE)
        restored = TicketProjectionStore()
        restored.import_state(ledger.store.export_state())
        assert restored.get(ticket_id) == ledger.details(ticket_id)
        assert restored.ids_of(BUYER) == (ticket_id,)


class TestInMemoryPaymentLedger:
    def test_rejects_non_positive(self):
        with pytest.raises(PaymentForwardingError):
            InMemoryPaymentLedger().forward(payer="a", payee="b", amount=0, reference="r")

    def test_export_import(self):
        ledger = InMemoryPaymentLedger()
        ledger.forward(payer="a", payee="b", amount=10, reference="r1")
        restored = InMemoryPaymentLedger()
        restored.import_state(ledger.export_state())
        assert restored.balance_of("b") == 10
        assert restored.transfers == ledger.transfers
