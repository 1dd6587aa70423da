"""
Unread counts and directional read receipts.

Each side only acknowledges messages addressed to itself: the business marks
customer -> business traffic read, a customer marks traffic to them read.
"""
from typing import Dict, Optional

from app.core.logging import get_logger
from app.models.message import MessageStatus
from app.services.notifier import Notifier, NullNotifier, RealtimeEvent, publish_safely
from app.services.store import MessageFilter, MessageStore

logger = get_logger(__name__)


class ReadReceiptCounter:
    def __init__(self, store: MessageStore, business_wa_id: str, notifier: Optional[Notifier] = None):
        self.store = store
        self.business_wa_id = business_wa_id
        self.notifier = notifier or NullNotifier()

    async def unread_count(self, wa_id: str) -> int:
        """Messages from the participant the business has not read yet."""
        conversation = await self.store.find_conversation_by_participant(wa_id)
        if conversation is None:
            return 0
        return await self.store.count_messages(
            conversation.id,
            MessageFilter(
                sender=wa_id,
                recipient=self.business_wa_id,
                exclude_status=MessageStatus.READ.value,
            ),
        )

    async def unread_counts(self) -> Dict[str, int]:
        """Unread count of every conversation that has any."""
        return await self.store.count_unread_by_participant(self.business_wa_id)

    async def mark_customer_messages_read(self, wa_id: str) -> int:
        """The business has read everything the customer sent it."""
        updated = await self.store.mark_read(recipient=self.business_wa_id, sender=wa_id)
        await self._announce(wa_id, reader="business", updated=updated)
        return updated

    async def mark_business_messages_read(self, wa_id: str) -> int:
        """The customer has read everything sent to them."""
        updated = await self.store.mark_read(recipient=wa_id)
        await self._announce(wa_id, reader="customer", updated=updated)
        return updated

    async def _announce(self, wa_id: str, reader: str, updated: int) -> None:
        logger.info(
            "Messages marked read",
            extra={"extra_data": {"wa_id": wa_id, "reader": reader, "updated": updated}}
        )
        if updated:
            await publish_safely(self.notifier, RealtimeEvent(
                type="messages.read",
                wa_id=wa_id,
                data={"wa_id": wa_id, "reader": reader, "updated": updated},
            ))
