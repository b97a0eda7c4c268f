"""
IDTIX Notification Bus — Notifications, Log & Publisher
=========================================================
A Notification announces one committed mutation.

The publisher:
- stamps every notification with a global, strictly increasing sequence
- appends it to the NotificationLog (ordered audit channel)
- routes it to subscribers via dispatch()

Engines never call publish() directly; they stage notifications on
their UnitOfWork, which publishes them only after commit.
"""

from __future__ import annotations

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from core.events.dispatcher import dispatch
from core.events.registry import SubscriberRegistry
from core.time.clock import Clock, SystemClock

logger = logging.getLogger("idtix.events")


@dataclass(frozen=True)
class Notification:
    """Immutable post-commit announcement of a mutation."""

    notification_id: uuid.UUID
    event_type: str
    sequence: int
    payload: Dict[str, Any] = field(hash=False)
    occurred_at: datetime = field(compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notification_id": str(self.notification_id),
            "event_type": self.event_type,
            "sequence": self.sequence,
            "payload": copy.deepcopy(self.payload),
            "occurred_at": self.occurred_at.isoformat(),
        }


class NotificationLog:
    """Append-only, thread-safe, in-memory log of published notifications."""

    def __init__(self) -> None:
        self._entries: List[Notification] = []
        self._lock = Lock()

    def append(self, notification: Notification) -> None:
        with self._lock:
            self._entries.append(notification)

    def entries(self) -> Tuple[Notification, ...]:
        with self._lock:
            return tuple(self._entries)

    def of_type(self, event_type: str) -> Tuple[Notification, ...]:
        with self._lock:
            return tuple(n for n in self._entries if n.event_type == event_type)

    def last(self) -> Optional[Notification]:
        with self._lock:
            return self._entries[-1] if self._entries else None

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._entries)


class NotificationPublisher:
    """Stamps, records and routes committed notifications."""

    def __init__(
        self,
        *,
        registry: Optional[SubscriberRegistry] = None,
        log: Optional[NotificationLog] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.registry = registry or SubscriberRegistry()
        self.log = log or NotificationLog()
        self._clock = clock or SystemClock()
        self._sequence = 0
        self._lock = Lock()

    def publish(self, event_type: str, payload: Dict[str, Any]) -> Notification:
        # Sequence stamping and log append happen under one lock so the log
        # order always equals sequence order.
        with self._lock:
            self._sequence += 1
            notification = Notification(
                notification_id=uuid.uuid4(),
                event_type=event_type,
                sequence=self._sequence,
                payload=copy.deepcopy(payload),
                occurred_at=self._clock.now_utc(),
            )
            self.log.append(notification)

        dispatch(notification, self.registry)
        return notification

    def subscribe(self, event_type: str, handler, subscriber_name: str) -> None:
        self.registry.register_subscriber(event_type, handler, subscriber_name)

    @property
    def last_sequence(self) -> int:
        with self._lock:
            return self._sequence

    def resume_from(self, sequence: int) -> None:
        """Continue numbering after a restored snapshot's last notification."""
        with self._lock:
            if sequence < self._sequence:
                raise ValueError(
                    f"Cannot rewind notification sequence from "
                    f"{self._sequence} to {sequence}."
                )
            self._sequence = sequence
