"""
IDTIX Credentials Engine — Policies
=====================================
Issuance is SuperAdmin-only. Unlike role assignment, a caller
without an identity is reported as UNAUTHORIZED, not NOT_FOUND.
"""

from __future__ import annotations

from typing import Callable, Optional

from core.commands.rejection import ReasonCode, RejectionReason
from engines.identity.policies import has_identity_policy
from engines.roles.models import Role
from engines.roles.policies import role_required_policy


def issuer_identity_policy(
    caller: str,
    identity_lookup: Callable[[str], bool],
) -> Optional[RejectionReason]:
    return has_identity_policy(
        caller,
        identity_lookup,
        code=ReasonCode.UNAUTHORIZED,
        policy_name="issuer_identity_policy",
    )


def issuer_super_admin_policy(
    caller: str,
    role_lookup: Callable[[str], Role],
) -> Optional[RejectionReason]:
    return role_required_policy(
        caller,
        Role.SUPER_ADMIN,
        role_lookup,
        policy_name="issuer_super_admin_policy",
    )
