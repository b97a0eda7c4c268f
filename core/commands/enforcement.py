"""
IDTIX Command Layer — Policy Enforcement
==========================================
Runs guard checks in a fixed order before an operation body executes.

A check is a zero-argument callable returning Optional[RejectionReason].
Checks are evaluated lazily: a later check only runs once every earlier
check has passed, so it may rely on what they established (e.g. the
ownership check runs only after the event is known to exist).

The first failing check is raised as its typed CommandRejected error.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from core.commands.errors import error_for
from core.commands.rejection import RejectionReason

logger = logging.getLogger("idtix.commands")

PolicyCheck = Callable[[], Optional[RejectionReason]]


def first_rejection(*checks: PolicyCheck) -> Optional[RejectionReason]:
    """Return the first rejection produced by `checks`, or None."""
    for check in checks:
        rejection = check()
        if rejection is not None:
            return rejection
    return None


def enforce(*checks: PolicyCheck) -> None:
    """
    Run checks in order; raise the first rejection as a typed error.

    Raises:
        CommandRejected subclass matching the rejection code.
    """
    rejection = first_rejection(*checks)
    if rejection is None:
        return
    logger.info(
        f"Rejected by {rejection.policy_name}: "
        f"{rejection.code} — {rejection.message}"
    )
    raise error_for(rejection)
