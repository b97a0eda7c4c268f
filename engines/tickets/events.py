"""
IDTIX Tickets Engine — Event Types
====================================
One ticket per successful purchase. Tickets are never transferred.
"""

# ── Event Types ───────────────────────────────────────────────

TICKET_PURCHASED_V1 = "tickets.ticket.purchased.v1"

ALL_EVENT_TYPES = (
    TICKET_PURCHASED_V1,
)


# ── Payload Builders ──────────────────────────────────────────

def ticket_purchased_payload(ticket) -> dict:
    return {
        "ticket_id": ticket.ticket_id,
        "event_id": ticket.event_id,
        "buyer": ticket.owner,
    }


PAYLOAD_BUILDERS = {
    TICKET_PURCHASED_V1: ticket_purchased_payload,
}
