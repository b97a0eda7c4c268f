"""
IDTIX Command Layer — Typed Errors
====================================
Every rejected operation raises exactly one CommandRejected subclass.
The subclass is selected by the RejectionReason code, so callers can
either catch the kind they care about or inspect `exc.reason.code`.

Some kinds also derive from the builtin they correspond to
(InvalidArgument is a ValueError, NotFound is a LookupError,
Unauthorized is a PermissionError).
"""

from __future__ import annotations

from core.commands.rejection import ReasonCode, RejectionReason


class CommandRejected(Exception):
    """Base error for every rejected IDTIX operation."""

    code = "REJECTED"
    retryable = False

    def __init__(self, reason: RejectionReason):
        self.reason = reason
        super().__init__(f"[{reason.code}] {reason.message}")

    @property
    def message(self) -> str:
        return self.reason.message

    def to_dict(self) -> dict:
        data = self.reason.to_dict()
        data["retryable"] = self.retryable
        return data


class InvalidArgument(CommandRejected, ValueError):
    code = ReasonCode.INVALID_ARGUMENT


class DuplicateIdentity(CommandRejected):
    code = ReasonCode.DUPLICATE_IDENTITY


class NotFound(CommandRejected, LookupError):
    code = ReasonCode.NOT_FOUND


class Unauthorized(CommandRejected, PermissionError):
    code = ReasonCode.UNAUTHORIZED


class InsufficientPayment(CommandRejected):
    code = ReasonCode.INSUFFICIENT_PAYMENT


class SoldOut(CommandRejected):
    code = ReasonCode.SOLD_OUT


class InvalidState(CommandRejected):
    code = ReasonCode.INVALID_STATE


class EmptyHistory(CommandRejected):
    code = ReasonCode.EMPTY_HISTORY


class NoTickets(CommandRejected):
    code = ReasonCode.NO_TICKETS


class PaymentForwardingFailed(CommandRejected):
    """The whole purchase was rolled back; retrying it is safe."""

    code = ReasonCode.PAYMENT_FORWARDING_FAILED
    retryable = True


_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        InvalidArgument,
        DuplicateIdentity,
        NotFound,
        Unauthorized,
        InsufficientPayment,
        SoldOut,
        InvalidState,
        EmptyHistory,
        NoTickets,
        PaymentForwardingFailed,
    )
}


def error_for(reason: RejectionReason) -> CommandRejected:
    """Build the typed error matching a rejection code."""
    error_cls = _ERRORS_BY_CODE.get(reason.code, CommandRejected)
    return error_cls(reason)


def reject(code: str, message: str, policy_name: str) -> CommandRejected:
    """Shorthand: build a RejectionReason and wrap it in its typed error."""
    return error_for(
        RejectionReason(code=code, message=message, policy_name=policy_name)
    )
