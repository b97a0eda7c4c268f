"""
IDTIX Tickets Engine — Payment Forwarding
===========================================
The ticket ledger never holds funds. It forwards each purchase's full
payment to the event organizer through a PaymentGateway, as the last
step of the purchase.

InMemoryPaymentLedger is the default gateway: integer balances per
principal and an ordered journal of transfers.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any, Dict, List, Protocol, Tuple

logger = logging.getLogger("idtix.tickets")


class PaymentForwardingError(Exception):
    """Raised by a gateway when a transfer did not happen."""
    pass


class PaymentGateway(Protocol):
    def forward(self, *, payer: str, payee: str, amount: int, reference: str) -> None:
        ...


@dataclass(frozen=True)
class Transfer:
    payer: str
    payee: str
    amount: int
    reference: str


class InMemoryPaymentLedger:
    """Credits the payee; payer funding is out of scope."""

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._journal: List[Transfer] = []
        self._lock = Lock()

    def forward(self, *, payer: str, payee: str, amount: int, reference: str) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise PaymentForwardingError(
                f"Refusing to forward non-positive amount {amount!r} ({reference})."
            )
        if not payee:
            raise PaymentForwardingError(f"No payee for {reference}.")

        with self._lock:
            self._balances[payee] = self._balances.get(payee, 0) + amount
            self._journal.append(
                Transfer(payer=payer, payee=payee, amount=amount, reference=reference)
            )
        logger.debug(f"Forwarded {amount} from {payer} to {payee} ({reference})")

    def balance_of(self, principal: str) -> int:
        with self._lock:
            return self._balances.get(principal, 0)

    @property
    def transfers(self) -> Tuple[Transfer, ...]:
        with self._lock:
            return tuple(self._journal)

    # ── Snapshots ─────────────────────────────────────────────

    def export_state(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "balances": dict(self._balances),
                "transfers": [asdict(t) for t in self._journal],
            }

    def import_state(self, state: Dict[str, Any]) -> None:
        state = copy.deepcopy(state)
        with self._lock:
            self._balances = dict(state.get("balances", {}))
            self._journal = [Transfer(**row) for row in state.get("transfers", [])]
