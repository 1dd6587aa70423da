"""
Status transition engine.

Statuses only move forward (sent -> delivered -> read). The ordering is
enforced by the store's conditional UPDATE, so duplicate and out-of-order
status events are harmless no-ops.
"""
import asyncio
from typing import Dict, List, Optional

from app.core.errors import ChatServiceError
from app.core.logging import get_logger
from app.core.metrics import record_status_transition
from app.models.message import MessageStatus
from app.services.notifier import Notifier, NullNotifier, RealtimeEvent, publish_safely
from app.services.store import MessageStore

logger = get_logger(__name__)


class StatusTransitionEngine:
    def __init__(self, store: MessageStore, notifier: Optional[Notifier] = None):
        self.store = store
        self.notifier = notifier or NullNotifier()
        self._pending: Dict[str, asyncio.Task] = {}

    async def apply_status(self, message_id: str, status: MessageStatus, source: str = "webhook") -> int:
        """
        Advance a message to status if that is a forward move.

        Returns the number of messages changed. Unknown ids and stale events
        return 0 and are only logged.
        """
        status = MessageStatus(status)
        if source != "simulated" and status.rank >= MessageStatus.DELIVERED.rank:
            # A real status makes the simulated delivery redundant
            self.cancel_delivery(message_id)

        updated = await self.store.update_message_status(message_id, status.value)
        if updated == 0:
            await self._log_noop(message_id, status, source)
            return 0

        record_status_transition(status.value, source)
        logger.info(
            "Message status advanced",
            extra={"extra_data": {"message_id": message_id, "status": status.value, "source": source}}
        )
        message = await self.store.get_message(message_id)
        await publish_safely(self.notifier, RealtimeEvent(
            type="message.status",
            wa_id=message.wa_id if message else None,
            data={"meta_msg_id": message_id, "status": status.value},
        ))
        return updated

    async def _log_noop(self, message_id: str, status: MessageStatus, source: str) -> None:
        message = await self.store.get_message(message_id)
        if message is None:
            # Providers report statuses for messages never stored here
            logger.warning(
                "Message not found for status update",
                extra={"extra_data": {"message_id": message_id, "status": status.value, "source": source}}
            )
        else:
            logger.info(
                "Stale status ignored",
                extra={
                    "extra_data": {
                        "message_id": message_id,
                        "status": status.value,
                        "current_status": message.status,
                        "source": source,
                    }
                }
            )

    # ------------------------------------------------------------------
    # Simulated delivery
    # ------------------------------------------------------------------

    def schedule_delivery(self, message_id: str, delay: float) -> asyncio.Task:
        """Mark a locally sent message delivered after delay seconds, without blocking."""
        self.cancel_delivery(message_id)
        task = asyncio.create_task(self._deliver_later(message_id, delay))
        self._pending[message_id] = task
        task.add_done_callback(lambda done: self._forget(message_id, done))
        return task

    def cancel_delivery(self, message_id: str) -> bool:
        task = self._pending.pop(message_id, None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.debug("Simulated delivery cancelled", extra={"extra_data": {"message_id": message_id}})
        return True

    def pending_deliveries(self) -> List[str]:
        return [message_id for message_id, task in self._pending.items() if not task.done()]

    async def shutdown(self) -> None:
        tasks = list(self._pending.values())
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _forget(self, message_id: str, task: asyncio.Task) -> None:
        if self._pending.get(message_id) is task:
            del self._pending[message_id]

    async def _deliver_later(self, message_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past this point a real status no longer cancels the in-flight update
        self._forget(message_id, asyncio.current_task())
        try:
            await self.apply_status(message_id, MessageStatus.DELIVERED, source="simulated")
        except ChatServiceError:
            logger.exception(
                "Simulated delivery failed",
                extra={"extra_data": {"message_id": message_id}}
            )
