"""
IDTIX Command Layer — Argument Guards
=======================================
Generic input policies shared by every engine.
Each returns None on pass or a RejectionReason on failure.
"""

from __future__ import annotations

from typing import Any, Optional

from core.commands.rejection import ReasonCode, RejectionReason


def non_empty_text_policy(
    value: Any,
    field_name: str,
    policy_name: str,
) -> Optional[RejectionReason]:
    """Value must be a string with at least one non-blank character."""
    if not isinstance(value, str) or not value.strip():
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=f"{field_name} must be a non-empty string.",
            policy_name=policy_name,
        )
    return None


def positive_int_policy(
    value: Any,
    field_name: str,
    policy_name: str,
) -> Optional[RejectionReason]:
    """Value must be an int (not bool) greater than zero."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=f"{field_name} must be a positive integer, got {value!r}.",
            policy_name=policy_name,
        )
    return None


def int_id_policy(
    value: Any,
    field_name: str,
    policy_name: str,
) -> Optional[RejectionReason]:
    """Numeric ids must be ints; unknown ids are a NOT_FOUND concern."""
    if isinstance(value, bool) or not isinstance(value, int):
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=f"{field_name} must be an integer id, got {value!r}.",
            policy_name=policy_name,
        )
    return None
