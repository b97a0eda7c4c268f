"""
IDTIX Tickets Engine — Policies
=================================
Purchase preconditions on the (locked) event entry.
"""

from __future__ import annotations

from typing import Any, Optional

from core.commands.rejection import ReasonCode, RejectionReason


def tickets_available_policy(event) -> Optional[RejectionReason]:
    if event.available_tickets <= 0:
        return RejectionReason(
            code=ReasonCode.SOLD_OUT,
            message=f"Event {event.event_id} is sold out.",
            policy_name="tickets_available_policy",
        )
    return None


def payment_amount_policy(payment_amount: Any) -> Optional[RejectionReason]:
    """Amounts are ints in minor currency units."""
    if isinstance(payment_amount, bool) or not isinstance(payment_amount, int):
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=f"payment_amount must be an integer, got {payment_amount!r}.",
            policy_name="payment_amount_policy",
        )
    return None


def sufficient_payment_policy(event, payment_amount: int) -> Optional[RejectionReason]:
    if payment_amount < event.price:
        return RejectionReason(
            code=ReasonCode.INSUFFICIENT_PAYMENT,
            message=(
                f"Payment {payment_amount} is below the price {event.price} "
                f"of event {event.event_id}."
            ),
            policy_name="sufficient_payment_policy",
        )
    return None
