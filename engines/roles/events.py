"""
IDTIX Roles Engine — Event Types
==================================
"""

ROLE_ASSIGNED_V1 = "roles.role.assigned.v1"

ALL_EVENT_TYPES = (
    ROLE_ASSIGNED_V1,
)


def role_assigned_payload(principal: str, role) -> dict:
    return {
        "principal": principal,
        "role": role.label,
    }


PAYLOAD_BUILDERS = {
    ROLE_ASSIGNED_V1: role_assigned_payload,
}
