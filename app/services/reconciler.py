"""
Conversation reconciler: maps any inbound message onto the store.

Every write path (provider webhook, direct send, socket send, sample import)
goes through ConversationReconciler.reconcile so that a bidirectional message
always lands in the conversation of its non-business participant.
"""
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from app.core.errors import (
    ConversationConflictError,
    DuplicateMessageError,
    StoreError,
    ValidationError,
)
from app.core.logging import get_logger
from app.models.conversation import Conversation
from app.models.message import Message, MessageType, utcnow
from app.schemas.message import MessageOut
from app.services.notifier import Notifier, NullNotifier, RealtimeEvent, publish_safely
from app.services.store import MessageStore, NewMessage

logger = get_logger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    recipient: str
    type: MessageType = MessageType.TEXT
    text: Optional[str] = None
    caption: Optional[str] = None
    message_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    contact_name: Optional[str] = None
    profile_name: Optional[str] = None


@dataclass(frozen=True)
class ReconcileResult:
    conversation: Conversation
    message: Message
    created_conversation: bool = False
    duplicate: bool = False


def generate_message_id() -> str:
    """Id for messages that originate here rather than at the provider."""
    return f"msg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def placeholder_name(wa_id: str) -> str:
    return f"User {wa_id[-4:]}"


def body_text(message_type: MessageType, text: Optional[str], caption: Optional[str] = None) -> str:
    """Text shown for a message: its body, a media caption, or a type placeholder."""
    if text:
        return text
    if caption:
        return caption
    return f"{message_type.value} message"


class ConversationReconciler:
    def __init__(
        self,
        store: MessageStore,
        business_wa_id: str,
        notifier: Optional[Notifier] = None,
        max_attempts: int = 3,
    ):
        self.store = store
        self.business_wa_id = business_wa_id
        self.notifier = notifier or NullNotifier()
        self.max_attempts = max_attempts

    def owner_of(self, sender: str, recipient: str) -> str:
        """The participant whose conversation a message belongs to."""
        owner = recipient if sender == self.business_wa_id else sender
        if not owner or owner == self.business_wa_id:
            raise ValidationError("Message does not involve a non-business participant")
        return owner

    def resolve_name(
        self,
        owner: str,
        contact_name: Optional[str] = None,
        profile_name: Optional[str] = None,
    ) -> str:
        for candidate in (contact_name, profile_name):
            if candidate and candidate.strip():
                return candidate.strip()
        return placeholder_name(owner)

    async def reconcile(self, inbound: InboundMessage) -> ReconcileResult:
        """
        Store an inbound message in its owner's conversation.

        Idempotent per participant and per message id: a lost creation race
        falls back to the conversation the winner created, and a replayed
        message id returns the stored message flagged as duplicate.
        """
        owner = self.owner_of(inbound.sender, inbound.recipient)
        name = self.resolve_name(owner, inbound.contact_name, inbound.profile_name)
        summary = body_text(inbound.type, inbound.text, inbound.caption)
        new = NewMessage(
            message_id=inbound.message_id or generate_message_id(),
            sender=inbound.sender,
            recipient=inbound.recipient,
            text=summary,
            type=inbound.type.value,
            timestamp=inbound.timestamp or utcnow(),
            contact_name=name,
        )

        for attempt in range(1, self.max_attempts + 1):
            try:
                conversation, message, created = await self.store.apply_message_event(
                    owner, name, summary, new
                )
                break
            except ConversationConflictError:
                # Someone else created it between our read and insert
                logger.info(
                    "Conversation created concurrently, retrying",
                    extra={"extra_data": {"wa_id": owner, "attempt": attempt}}
                )
            except DuplicateMessageError:
                return await self._duplicate(owner, new.message_id)
        else:
            raise StoreError(f"Could not reconcile conversation for {owner}")

        logger.info(
            "Message reconciled",
            extra={
                "extra_data": {
                    "message_id": message.message_id,
                    "wa_id": owner,
                    "created_conversation": created,
                }
            }
        )

        await publish_safely(self.notifier, RealtimeEvent(
            type="message.created",
            wa_id=owner,
            data=MessageOut.from_model(message).model_dump(mode="json", by_alias=True),
        ))
        await publish_safely(self.notifier, RealtimeEvent(
            type="conversation.updated",
            wa_id=owner,
            data={
                "wa_id": owner,
                "name": conversation.name,
                "last_message": conversation.last_message,
                "updated_at": conversation.updated_at.isoformat(),
            },
        ))
        return ReconcileResult(conversation, message, created_conversation=created)

    async def _duplicate(self, owner: str, message_id: str) -> ReconcileResult:
        logger.info(
            "Duplicate message ignored",
            extra={"extra_data": {"message_id": message_id, "wa_id": owner}}
        )
        message = await self.store.get_message(message_id)
        conversation = await self.store.find_conversation_by_participant(message.wa_id if message else owner)
        if message is None or conversation is None:
            raise StoreError(f"Duplicate message {message_id} vanished")
        return ReconcileResult(conversation, message, duplicate=True)

    async def rename(self, wa_id: str, name: str) -> str:
        """
        Set a participant's display name; an empty name clears it.

        A non-empty name for an unknown participant starts their
        conversation.
        """
        if wa_id == self.business_wa_id:
            raise ValidationError("The business has no conversation to rename")
        cleaned = (name or "").strip()

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.store.rename_participant(wa_id, cleaned, create_if_missing=bool(cleaned))
                break
            except ConversationConflictError:
                logger.info(
                    "Conversation created concurrently, retrying rename",
                    extra={"extra_data": {"wa_id": wa_id, "attempt": attempt}}
                )
        else:
            raise StoreError(f"Could not rename {wa_id}")

        await publish_safely(self.notifier, RealtimeEvent(
            type="conversation.updated",
            wa_id=wa_id,
            data={"wa_id": wa_id, "name": cleaned},
        ))
        return cleaned
