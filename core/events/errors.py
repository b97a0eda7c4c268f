"""
IDTIX Notification Bus — Subscription Errors
=============================================
Raised by subscribe()/register_subscriber() when a subscription is
malformed. Callers fix their wiring; no operation is ever rejected
with one of these.
"""


class SubscriptionError(Exception):
    """A subscription could not be registered."""


class InvalidNotificationType(SubscriptionError):
    """Notification types look like 'engine.entity.action[.vN]'."""

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(
            f"'{event_type}' is not a notification type "
            f"(expected at least three dot-separated parts, or '*')."
        )


class DuplicateSubscription(SubscriptionError):
    """The handler already listens to this notification type."""

    def __init__(self, event_type: str, subscriber_name: str):
        self.event_type = event_type
        self.subscriber_name = subscriber_name
        super().__init__(
            f"Subscriber '{subscriber_name}' is already listening "
            f"to '{event_type}' with this handler."
        )
