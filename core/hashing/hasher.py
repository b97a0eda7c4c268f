"""
IDTIX Core Hashing — Content Hash Computation
===============================================
Computes content hashes using SHA-256.

Formula:
    content_hash = SHA256(canonical_json(fields))

Rules:
- Canonical JSON: sorted keys, no whitespace variability
- No salt, no randomness — determinism is mandatory
- Same input ALWAYS produces same output

This module ONLY computes. Verification lives with the owner of the
hashed record.
"""

import hashlib
import json
from typing import Any


HASH_ALGORITHM = "sha256"


def canonical_serialize(payload: Any) -> str:
    """
    Produce a deterministic JSON string from payload.

    Rules:
    - Keys sorted alphabetically at all levels
    - No whitespace variability (separators=(',', ':'))
    - ensure_ascii=True for cross-platform consistency
    - Default str() for non-serializable types (UUID, datetime, enums)
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=True,
        default=str,
    )


def compute_content_hash(payload: Any) -> str:
    """
    Compute the SHA-256 hash of a payload's canonical form.

    Returns:
        64-character lowercase hex SHA-256 digest.
    """
    canonical = canonical_serialize(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
