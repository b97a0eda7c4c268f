"""
IDTIX Catalog Engine — Event Types
====================================
Organizer-owned ticketed offerings with finite inventory.
"""

from enum import Enum

# ── Event Types ───────────────────────────────────────────────

EVENT_CREATED_V1 = "catalog.event.created.v1"
EVENT_CANCELLED_V1 = "catalog.event.cancelled.v1"

ALL_EVENT_TYPES = (
    EVENT_CREATED_V1,
    EVENT_CANCELLED_V1,
)


# ── Lifecycle ─────────────────────────────────────────────────

class EventStatus(Enum):
    ACTIVE = "ACTIVE"          # active, tickets remaining
    SOLD_OUT = "SOLD_OUT"      # active, available_tickets == 0
    CANCELLED = "CANCELLED"    # terminal


# ── Payload Builders ──────────────────────────────────────────

def event_created_payload(event) -> dict:
    return {
        "event_id": event.event_id,
        "name": event.name,
        "organizer": event.organizer,
    }


def event_cancelled_payload(event_id: int) -> dict:
    return {
        "event_id": event_id,
    }


PAYLOAD_BUILDERS = {
    EVENT_CREATED_V1: event_created_payload,
    EVENT_CANCELLED_V1: event_cancelled_payload,
}
