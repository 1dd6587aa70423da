"""
Direct sends from the business and customer viewers.
"""
from typing import Optional

from app.core.logging import get_logger
from app.models.message import MessageType
from app.services.reconciler import ConversationReconciler, InboundMessage, ReconcileResult
from app.services.status import StatusTransitionEngine

logger = get_logger(__name__)


class MessageSender:
    def __init__(
        self,
        reconciler: ConversationReconciler,
        status_engine: StatusTransitionEngine,
        delivery_delay: Optional[float] = None,
    ):
        self.reconciler = reconciler
        self.status_engine = status_engine
        # None disables simulated delivery
        self.delivery_delay = delivery_delay

    async def send(
        self,
        sender: str,
        recipient: str,
        text: str,
        contact_name: Optional[str] = None,
        message_type: MessageType = MessageType.TEXT,
    ) -> ReconcileResult:
        """Store a message posted by a viewer; the id is generated locally."""
        result = await self.reconciler.reconcile(InboundMessage(
            sender=sender,
            recipient=recipient,
            type=message_type,
            text=text,
            contact_name=contact_name,
        ))

        from_business = sender == self.reconciler.business_wa_id
        if from_business and self.delivery_delay is not None and not result.duplicate:
            self.status_engine.schedule_delivery(result.message.message_id, self.delivery_delay)
            logger.debug(
                "Simulated delivery scheduled",
                extra={"extra_data": {"message_id": result.message.message_id, "delay": self.delivery_delay}}
            )
        return result
