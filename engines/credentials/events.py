"""
IDTIX Credentials Engine — Event Types
========================================
The content hash travels in the notification so external audit
pipelines can correlate it with the stored credential.
"""

CREDENTIAL_ISSUED_V1 = "credentials.credential.issued.v1"

ALL_EVENT_TYPES = (
    CREDENTIAL_ISSUED_V1,
)


def credential_issued_payload(credential) -> dict:
    return {
        "issuer": credential.issuer,
        "holder": credential.holder,
        "role": credential.role,
        "hash": credential.content_hash,
    }


PAYLOAD_BUILDERS = {
    CREDENTIAL_ISSUED_V1: credential_issued_payload,
}
