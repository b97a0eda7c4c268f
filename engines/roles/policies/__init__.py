"""
IDTIX Roles Engine — Policies
===============================
Role-level authorization and role argument validation.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from core.commands.rejection import ReasonCode, RejectionReason
from engines.roles.models import Role


def role_required_policy(
    principal: str,
    required: Role,
    role_lookup: Callable[[str], Role],
    *,
    policy_name: str = "role_required_policy",
) -> Optional[RejectionReason]:
    """Principal's current role must be exactly `required`."""
    current = role_lookup(principal)
    if current == required:
        return None
    return RejectionReason(
        code=ReasonCode.UNAUTHORIZED,
        message=(
            f"Principal '{principal}' holds role {current.label}, "
            f"{required.label} required."
        ),
        policy_name=policy_name,
    )


def assignable_role_policy(
    role: Any,
    *,
    policy_name: str = "assignable_role_policy",
) -> Optional[RejectionReason]:
    """Role must parse to a Role other than NONE."""
    parsed = Role.coerce(role)
    if parsed is None:
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=f"Unknown role {role!r}.",
            policy_name=policy_name,
        )
    if parsed == Role.NONE:
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message="Role None cannot be assigned.",
            policy_name=policy_name,
        )
    return None
