"""
IDTIX Identity Engine — Event Types
=====================================
One identity per principal; metadata is last-write-wins.
"""

# ── Event Types ───────────────────────────────────────────────

IDENTITY_CREATED_V1 = "identity.identity.created.v1"
METADATA_SET_V1 = "identity.metadata.set.v1"

ALL_EVENT_TYPES = (
    IDENTITY_CREATED_V1,
    METADATA_SET_V1,
)


# ── Payload Builders ──────────────────────────────────────────

def identity_created_payload(identity) -> dict:
    return {
        "principal": identity.principal,
        "identifier": identity.identifier,
    }


def metadata_set_payload(metadata) -> dict:
    return {
        "principal": metadata.owner,
        "name": metadata.name,
        "email": metadata.email,
        "picture": metadata.picture,
    }


PAYLOAD_BUILDERS = {
    IDENTITY_CREATED_V1: identity_created_payload,
    METADATA_SET_V1: metadata_set_payload,
}
