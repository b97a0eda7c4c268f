"""
IDTIX Identity Engine — Policies
==================================
Identity presence is the gate for nearly every other operation,
so has_identity_policy is shared by all engines.
"""

from __future__ import annotations

from typing import Callable, Optional

from core.commands.rejection import ReasonCode, RejectionReason


def has_identity_policy(
    principal: str,
    identity_lookup: Callable[[str], bool],
    *,
    code: str = ReasonCode.NOT_FOUND,
    policy_name: str = "has_identity_policy",
) -> Optional[RejectionReason]:
    """
    Principal must have a registered identity.

    `code` lets an operation report a missing caller identity as
    UNAUTHORIZED instead of NOT_FOUND where its contract says so.
    """
    if isinstance(principal, str) and principal and identity_lookup(principal):
        return None
    return RejectionReason(
        code=code,
        message=f"No identity registered for principal '{principal}'.",
        policy_name=policy_name,
    )


def no_existing_identity_policy(
    principal: str,
    identity_lookup: Callable[[str], bool],
) -> Optional[RejectionReason]:
    """Registration is allowed once per principal."""
    if identity_lookup(principal):
        return RejectionReason(
            code=ReasonCode.DUPLICATE_IDENTITY,
            message=f"Principal '{principal}' already has an identity.",
            policy_name="no_existing_identity_policy",
        )
    return None
