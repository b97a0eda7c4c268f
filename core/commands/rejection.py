"""
IDTIX Command Layer — Rejection Model
=======================================
Structured rejection reasons for denied operations.

A RejectionReason is an explanation structure, not an event.
It travels inside the typed error raised to the caller.

Every rejection must be:
- Deterministic (same state + same input → same rejection)
- Auditable (code + message + policy)
- Machine-readable (code)
- Human-readable (message)
"""

from __future__ import annotations

from dataclasses import dataclass


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Structured reason for a rejected operation.

    Fields:
        code:        Machine-readable rejection code (e.g. 'SOLD_OUT').
        message:     Human-readable explanation naming ids/roles involved.
        policy_name: Name of the policy that caused rejection.
    """

    code: str
    message: str
    policy_name: str

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes.

    Convention: SCREAMING_SNAKE_CASE.
    """

    # ── Input ─────────────────────────────────────────────────
    INVALID_ARGUMENT = "INVALID_ARGUMENT"

    # ── Existence ─────────────────────────────────────────────
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE_IDENTITY = "DUPLICATE_IDENTITY"
    EMPTY_HISTORY = "EMPTY_HISTORY"
    NO_TICKETS = "NO_TICKETS"

    # ── Authorization ─────────────────────────────────────────
    UNAUTHORIZED = "UNAUTHORIZED"

    # ── Inventory / payment ───────────────────────────────────
    INVALID_STATE = "INVALID_STATE"
    SOLD_OUT = "SOLD_OUT"
    INSUFFICIENT_PAYMENT = "INSUFFICIENT_PAYMENT"
    PAYMENT_FORWARDING_FAILED = "PAYMENT_FORWARDING_FAILED"


VALID_REASON_CODES = frozenset({
    ReasonCode.INVALID_ARGUMENT,
    ReasonCode.NOT_FOUND,
    ReasonCode.DUPLICATE_IDENTITY,
    ReasonCode.EMPTY_HISTORY,
    ReasonCode.NO_TICKETS,
    ReasonCode.UNAUTHORIZED,
    ReasonCode.INVALID_STATE,
    ReasonCode.SOLD_OUT,
    ReasonCode.INSUFFICIENT_PAYMENT,
    ReasonCode.PAYMENT_FORWARDING_FAILED,
})
