"""
IDTIX Notification Bus — Subscriber Registry
==============================================
Controls which handlers receive which notifications.

Rules:
- Event types must follow engine.domain.action format
- WILDCARD ('*') subscribes a handler to every event type
- Multiple subscribers per event type allowed
- Duplicate handler for same event type forbidden
- In-memory only, thread-safe
"""

import logging
from threading import Lock
from typing import Callable

from core.events.errors import (
    DuplicateSubscription,
    InvalidNotificationType,
    SubscriptionError,
)

logger = logging.getLogger("idtix.events")

WILDCARD = "*"


class SubscriberRegistry:
    """
    In-memory registry of notification subscribers.

    Each entry maps an event_type (or WILDCARD) to a list of
    (handler, subscriber_name) tuples, in registration order.
    """

    def __init__(self):
        self._subscribers: dict[str, list[tuple[Callable, str]]] = {}
        self._lock = Lock()

    @staticmethod
    def _validate_event_type_format(event_type: str) -> None:
        if event_type == WILDCARD:
            return

        if not event_type or not isinstance(event_type, str):
            raise InvalidNotificationType(event_type or "")

        parts = event_type.strip().split(".")
        if len(parts) < 3 or not all(parts):
            raise InvalidNotificationType(event_type)

    def register_subscriber(
        self,
        event_type: str,
        handler: Callable,
        subscriber_name: str,
    ) -> None:
        """
        Register a handler for an event type.

        Args:
            event_type:      e.g. 'tickets.ticket.purchased.v1', or WILDCARD
            handler:         Callable invoked with the Notification
            subscriber_name: Who is listening (for logs and dispatch reports)

        Raises:
            InvalidNotificationType: Bad event type format
            DuplicateSubscription:   Handler already registered
        """
        self._validate_event_type_format(event_type)

        if not callable(handler):
            raise SubscriptionError(
                f"Handler must be callable, got {type(handler)}."
            )

        handler_name = getattr(handler, "__qualname__", str(handler))

        with self._lock:
            entries = self._subscribers.setdefault(event_type, [])
            for existing_handler, _ in entries:
                if existing_handler is handler:
                    raise DuplicateSubscription(event_type, subscriber_name)
            entries.append((handler, subscriber_name))

        logger.info(
            f"Subscriber registered: {handler_name} → {event_type} "
            f"(subscriber: {subscriber_name})"
        )

    def unregister_subscriber(self, event_type: str, handler: Callable) -> bool:
        """Remove a handler; returns False when it was not registered."""
        with self._lock:
            entries = self._subscribers.get(event_type, [])
            for index, (existing_handler, _) in enumerate(entries):
                if existing_handler is handler:
                    del entries[index]
                    return True
        return False

    def get_subscribers(self, event_type: str) -> list[tuple[Callable, str]]:
        """
        Subscribers for an event type: exact matches first, then wildcards.
        Returns empty list if none (not an error).
        """
        with self._lock:
            exact = list(self._subscribers.get(event_type, []))
            wildcard = list(self._subscribers.get(WILDCARD, []))
        return exact + wildcard

    def has_subscribers(self, event_type: str) -> bool:
        return bool(self.get_subscribers(event_type))

    def subscriber_count(self, event_type: str) -> int:
        return len(self.get_subscribers(event_type))
