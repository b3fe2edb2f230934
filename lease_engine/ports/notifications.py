"""Port definition for notification publishers."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from lease_engine.domain.models import Notification


@runtime_checkable
class NotificationPublisherPort(Protocol):
    """Interface implemented by notification delivery adapters."""

    def publish(self, notification: Notification) -> None:
        """Deliver a notification to its recipient.

        Raises:
            NotificationError: When delivery fails
        """


__all__ = ["NotificationPublisherPort"]
