"""
IDTIX Catalog Engine — Policies
=================================
Event creation input rules and the resource-ownership check.
Role-level checks come from the roles engine.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from core.commands.rejection import ReasonCode, RejectionReason


def event_exists_policy(event, event_id: Any) -> Optional[RejectionReason]:
    if event is None:
        return RejectionReason(
            code=ReasonCode.NOT_FOUND,
            message=f"Event {event_id!r} does not exist.",
            policy_name="event_exists_policy",
        )
    return None


def event_owner_policy(event, caller: str) -> Optional[RejectionReason]:
    """Caller must be this specific event's organizer."""
    if event.organizer != caller:
        return RejectionReason(
            code=ReasonCode.UNAUTHORIZED,
            message=(
                f"Principal '{caller}' is not the organizer "
                f"of event {event.event_id}."
            ),
            policy_name="event_owner_policy",
        )
    return None


def event_active_policy(event) -> Optional[RejectionReason]:
    if not event.active:
        return RejectionReason(
            code=ReasonCode.INVALID_STATE,
            message=f"Event {event.event_id} is cancelled.",
            policy_name="event_active_policy",
        )
    return None


def future_event_date_policy(
    event_date: Any,
    now: datetime,
) -> Optional[RejectionReason]:
    """Event date must be a timezone-aware datetime strictly after now."""
    rejection = aware_datetime_policy(event_date, "event_date")
    if rejection is not None:
        return rejection
    if event_date <= now:
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=(
                f"event_date {event_date.isoformat()} is not after "
                f"{now.isoformat()}."
            ),
            policy_name="future_event_date_policy",
        )
    return None


def aware_datetime_policy(value: Any, field_name: str) -> Optional[RejectionReason]:
    if not isinstance(value, datetime) or value.tzinfo is None:
        return RejectionReason(
            code=ReasonCode.INVALID_ARGUMENT,
            message=f"{field_name} must be a timezone-aware datetime.",
            policy_name="aware_datetime_policy",
        )
    return None
