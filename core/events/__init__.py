"""
IDTIX Notification Bus — Public API
=====================================
Engines commit state. The bus announces it.
Nothing is announced before it is committed.
"""

from core.events.dispatcher import dispatch
from core.events.errors import (
    DuplicateSubscription,
    InvalidNotificationType,
    SubscriptionError,
)
from core.events.notifications import (
    Notification,
    NotificationLog,
    NotificationPublisher,
)
from core.events.registry import WILDCARD, SubscriberRegistry

__all__ = [
    "dispatch",
    "SubscriberRegistry",
    "WILDCARD",
    "Notification",
    "NotificationLog",
    "NotificationPublisher",
    "SubscriptionError",
    "InvalidNotificationType",
    "DuplicateSubscription",
]
