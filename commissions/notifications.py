# commissions/notifications.py
"""
Live notification fan-out.

The commission core only depends on `publish(user_id, event)`. Delivery is
best-effort and always happens after the ledger commit; a failed delivery is
logged and dropped, never propagated to the triggering request.
"""
import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def channel_key(user_id: int) -> str:
    return f"user:{user_id}"


@dataclass
class Notification:
    user_id: int
    message: str
    amount: Any
    kind: str = "success"
    title: str = "Commission Received"
    transaction: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_events(self) -> List[Dict[str, Any]]:
        events = [{
            "event": "notifications",
            "data": {
                "type": self.kind,
                "title": self.title,
                "message": self.message,
                "amount": float(self.amount) if self.amount is not None else None,
                "timestamp": self.timestamp.isoformat(),
            },
        }]
        if self.transaction is not None:
            events.append({
                "event": "transactionUpdate",
                "data": {
                    "userId": self.user_id,
                    "transaction": self.transaction,
                    "message": "You received a new commission!",
                },
            })
        return events


class Subscription:
    """Handle returned by NotificationHub.subscribe; events are read from `queue`."""

    def __init__(self, hub: "NotificationHub", maxsize: int = 100):
        self.hub = hub
        self.queue = queue.Queue(maxsize=maxsize)
        self.channels = set()

    def get(self, timeout: Optional[float] = None):
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self):
        self.hub.unsubscribe_all(self)


class NotificationHub:
    """In-process topic routing: channel key -> set of subscriptions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, set] = {}

    def open(self, maxsize: int = 100) -> Subscription:
        return Subscription(self, maxsize=maxsize)

    def subscribe(self, user_id: int, subscription: Optional[Subscription] = None) -> Subscription:
        subscription = subscription or self.open()
        key = channel_key(user_id)
        with self._lock:
            self._channels.setdefault(key, set()).add(subscription)
            subscription.channels.add(key)
        logger.debug(f"Subscribed to {key}")
        return subscription

    def unsubscribe(self, user_id: int, subscription: Subscription):
        key = channel_key(user_id)
        with self._lock:
            subscribers = self._channels.get(key)
            if subscribers:
                subscribers.discard(subscription)
                if not subscribers:
                    del self._channels[key]
            subscription.channels.discard(key)

    def unsubscribe_all(self, subscription: Subscription):
        with self._lock:
            for key in list(subscription.channels):
                subscribers = self._channels.get(key)
                if subscribers:
                    subscribers.discard(subscription)
                    if not subscribers:
                        del self._channels[key]
            subscription.channels.clear()

    def subscriber_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._channels.get(channel_key(user_id), ()))

    def publish(self, key: str, event: Dict[str, Any]) -> int:
        """Deliver `event` to every subscription on `key`. Returns deliveries made."""
        with self._lock:
            subscribers = list(self._channels.get(key, ()))

        delivered = 0
        for subscription in subscribers:
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except queue.Full:
                logger.warning(f"Dropping event for slow subscriber on {key}")
        return delivered


class HubNotificationSink:
    """Notification collaborator backed by a NotificationHub."""

    def __init__(self, hub: NotificationHub):
        self.hub = hub

    def notify(self, notification: Notification):
        for event in notification.to_events():
            self.hub.publish(channel_key(notification.user_id), event)


class NotificationDispatcher:

    @staticmethod
    def default_sink():
        from extensions import notification_hub
        return HubNotificationSink(notification_hub)

    @staticmethod
    def dispatch(notifications: List[Notification], sink=None) -> int:
        """
        Fire-and-forget delivery of already-committed events.
        Returns the number of notifications handed to the sink without error.
        """
        if not notifications:
            return 0

        sink = sink or NotificationDispatcher.default_sink()
        sent = 0
        for notification in notifications:
            try:
                sink.notify(notification)
                sent += 1
            except Exception:
                logger.exception(
                    f"Notification delivery failed for user {notification.user_id}; ledger unaffected"
                )
        return sent
