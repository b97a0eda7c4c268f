"""
IDTIX Core Projections — Snapshots
====================================
"""

from core.projections.snapshots import (
    SNAPSHOT_SCHEMA_VERSION,
    SnapshotEntry,
    SnapshotStore,
)

__all__ = [
    "SNAPSHOT_SCHEMA_VERSION",
    "SnapshotEntry",
    "SnapshotStore",
]
