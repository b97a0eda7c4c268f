"""
IDTIX Notification Bus — Delivery
==================================
Hands one committed notification to every matching subscriber.

Subscribers run one after another on the publishing thread, exact
matches before wildcard ones. A subscriber that raises is logged and
recorded in the delivery report; the remaining subscribers still run
and the operation that produced the notification stays committed.
"""

import logging
from typing import Any, Dict, List

from core.events.registry import SubscriberRegistry

logger = logging.getLogger("idtix.events")


def _describe(handler: Any) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


def dispatch(notification: Any, registry: SubscriberRegistry) -> Dict[str, Any]:
    """
    Deliver `notification` and report how it went:

        {"event_type", "sequence", "subscribers_notified",
         "subscribers_failed", "failures": [{"subscriber", "handler",
         "error", "error_type"}, ...]}

    Never raises.
    """
    subscribers = registry.get_subscribers(notification.event_type)
    failures: List[Dict[str, str]] = []
    delivered = 0

    for handler, subscriber_name in subscribers:
        try:
            handler(notification)
        except Exception as exc:
            failures.append({
                "subscriber": subscriber_name,
                "handler": _describe(handler),
                "error": str(exc),
                "error_type": type(exc).__name__,
            })
            logger.error(
                f"Subscriber '{subscriber_name}' raised on notification "
                f"#{notification.sequence} ({notification.event_type}): {exc}",
                exc_info=True,
            )
        else:
            delivered += 1

    if subscribers:
        logger.debug(
            f"Notification #{notification.sequence} delivered to "
            f"{delivered}/{len(subscribers)} subscribers"
        )

    return {
        "event_type": notification.event_type,
        "sequence": notification.sequence,
        "subscribers_notified": delivered,
        "subscribers_failed": len(failures),
        "failures": failures,
    }
