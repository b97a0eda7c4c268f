"""
IDTIX Core Hashing — Public API
=================================
Deterministic canonical serialization and SHA-256 content hashes.
"""

from core.hashing.hasher import (
    HASH_ALGORITHM,
    canonical_serialize,
    compute_content_hash,
)

__all__ = [
    "HASH_ALGORITHM",
    "canonical_serialize",
    "compute_content_hash",
]
