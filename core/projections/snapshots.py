"""
IDTIX Core Projections — Snapshot Storage
===========================================
Point-in-time copies of every in-memory store.

Snapshots are JSON-ready dicts: deep-copied, with datetimes as ISO
strings and roles by name. A snapshot is enough to rebuild a system
(see adapters.wiring.restore_system).
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional

SNAPSHOT_SCHEMA_VERSION = 1


# ══════════════════════════════════════════════════════════════
# SNAPSHOT ENTRY
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SnapshotEntry:
    """
    A point-in-time snapshot of system state.

    Immutable once created. Append-only storage.
    """

    snapshot_id: uuid.UUID
    label: str
    created_at: datetime
    schema_version: int
    data: Dict[str, Any] = field(hash=False)
    notification_sequence: int = 0     # last notification covered

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot_id": str(self.snapshot_id),
            "label": self.label,
            "created_at": self.created_at.isoformat(),
            "schema_version": self.schema_version,
            "data": copy.deepcopy(self.data),
            "notification_sequence": self.notification_sequence,
        }


# ══════════════════════════════════════════════════════════════
# SNAPSHOT STORE (append-only)
# ══════════════════════════════════════════════════════════════

class SnapshotStore:
    """
    Append-only, in-memory snapshot storage.

    Supports:
    - Storing snapshots
    - Fetching the latest one, or the closest one at or before a time
    - Listing all snapshots in creation order
    """

    def __init__(self) -> None:
        self._snapshots: List[SnapshotEntry] = []
        self._lock = Lock()

    def save(self, snapshot: SnapshotEntry) -> None:
        """Append a snapshot. Never overwrites existing snapshots."""
        with self._lock:
            self._snapshots.append(snapshot)

    def create_snapshot(
        self,
        *,
        label: str,
        created_at: datetime,
        data: Dict[str, Any],
        notification_sequence: int = 0,
        schema_version: int = SNAPSHOT_SCHEMA_VERSION,
    ) -> SnapshotEntry:
        """Create and store a new snapshot."""
        entry = SnapshotEntry(
            snapshot_id=uuid.uuid4(),
            label=label,
            created_at=created_at,
            schema_version=schema_version,
            data=copy.deepcopy(data),
            notification_sequence=notification_sequence,
        )
        self.save(entry)
        return entry

    def get_latest(self) -> Optional[SnapshotEntry]:
        with self._lock:
            return self._snapshots[-1] if self._snapshots else None

    def get_at(self, at: datetime) -> Optional[SnapshotEntry]:
        """Closest snapshot taken at or before the given timestamp."""
        with self._lock:
            matches = [s for s in self._snapshots if s.created_at <= at]
        if not matches:
            return None
        return max(matches, key=lambda s: s.created_at)

    def list_snapshots(self) -> List[SnapshotEntry]:
        with self._lock:
            return list(self._snapshots)

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._snapshots)
