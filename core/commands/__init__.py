"""
IDTIX Command Layer — Rejections, Typed Errors, Enforcement
=============================================================
Every operation either returns its result or raises exactly one
CommandRejected subclass carrying a RejectionReason.
"""

from core.commands.enforcement import enforce, first_rejection
from core.commands.errors import (
    CommandRejected,
    DuplicateIdentity,
    EmptyHistory,
    InsufficientPayment,
    InvalidArgument,
    InvalidState,
    NoTickets,
    NotFound,
    PaymentForwardingFailed,
    SoldOut,
    Unauthorized,
    error_for,
    reject,
)
from core.commands.rejection import (
    VALID_REASON_CODES,
    ReasonCode,
    RejectionReason,
)

__all__ = [
    "enforce",
    "first_rejection",
    "CommandRejected",
    "DuplicateIdentity",
    "EmptyHistory",
    "InsufficientPayment",
    "InvalidArgument",
    "InvalidState",
    "NoTickets",
    "NotFound",
    "PaymentForwardingFailed",
    "SoldOut",
    "Unauthorized",
    "error_for",
    "reject",
    "VALID_REASON_CODES",
    "ReasonCode",
    "RejectionReason",
]
