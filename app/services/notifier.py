"""
Real-time fan-out of state changes to the business and customer viewers.

The store stays the source of truth: publishing is best effort, never blocks
the writer and never raises into it. A viewer that misses events converges
by polling the query endpoints.
"""
import asyncio
from typing import Any, Dict, List, Literal, Optional, Protocol

from pydantic import BaseModel, Field

from app.core.logging import get_logger

logger = get_logger(__name__)

ViewerRole = Literal["business", "customer"]


class RealtimeEvent(BaseModel):
    """Server -> client envelope."""

    type: str  # message.created | message.status | messages.read | conversation.updated
    wa_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class Notifier(Protocol):
    async def publish(self, event: RealtimeEvent) -> None: ...


class NullNotifier:
    """Poll-only deployments: events are discarded."""

    async def publish(self, event: RealtimeEvent) -> None:
        return None


class Subscription:
    """One connected viewer with its own bounded, ordered event buffer."""

    def __init__(self, role: ViewerRole, wa_id: Optional[str], queue_size: int):
        self.role = role
        self.wa_id = wa_id
        self.queue: "asyncio.Queue[RealtimeEvent]" = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def accepts(self, event: RealtimeEvent) -> bool:
        # The business sees every conversation, a customer only their own
        if self.role == "business":
            return True
        return event.wa_id is not None and event.wa_id == self.wa_id

    async def get(self) -> RealtimeEvent:
        return await self.queue.get()


class BroadcastNotifier:
    """In-process publish/subscribe broadcaster."""

    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._subscriptions: List[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, role: ViewerRole, wa_id: Optional[str] = None) -> Subscription:
        if role == "customer" and not wa_id:
            raise ValueError("customer subscriptions need a wa_id")
        subscription = Subscription(role, wa_id, self._queue_size)
        self._subscriptions.append(subscription)
        logger.debug(
            "Viewer subscribed",
            extra={"extra_data": {"role": role, "wa_id": wa_id, "subscribers": self.subscriber_count}}
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, event: RealtimeEvent) -> None:
        for subscription in list(self._subscriptions):
            if not subscription.accepts(event):
                continue
            try:
                subscription.queue.put_nowait(event)
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.warning(
                    "Dropping event for slow subscriber",
                    extra={
                        "extra_data": {
                            "event_type": event.type,
                            "role": subscription.role,
                            "wa_id": subscription.wa_id,
                            "dropped": subscription.dropped,
                        }
                    }
                )


async def publish_safely(notifier: Notifier, event: RealtimeEvent) -> None:
    """Publish without letting a notifier failure reach the caller."""
    try:
        await notifier.publish(event)
    except Exception:
        logger.exception("Notifier publish failed", extra={"extra_data": {"event_type": event.type}})


def create_notifier(backend: str, queue_size: int = 100):
    normalized = backend.strip().lower()
    if normalized == "broadcast":
        return BroadcastNotifier(queue_size=queue_size)
    if normalized == "none":
        return NullNotifier()
    raise RuntimeError(f"unsupported notifier backend: {backend}")
