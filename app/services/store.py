"""
Message store: the only owner of persisted conversation and message state.

Every method opens its own session, so a MessageStore can be shared by any
number of concurrent requests. Uniqueness and status ordering are enforced
by the database (unique keys, conditional UPDATEs) rather than in memory.
"""
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.errors import (
    ConversationConflictError,
    DuplicateMessageError,
    StoreError,
    ValidationError,
)
from app.core.logging import get_logger
from app.models.conversation import Conversation
from app.models.message import Message, MessageStatus, utcnow

logger = get_logger(__name__)

UNREAD_STATUSES = (MessageStatus.SENT.value, MessageStatus.DELIVERED.value)


@dataclass(frozen=True)
class MessageFilter:
    """Optional criteria for counting messages inside one conversation."""

    sender: Optional[str] = None
    recipient: Optional[str] = None
    statuses: Optional[Sequence[str]] = None
    exclude_status: Optional[str] = None


@dataclass(frozen=True)
class NewMessage:
    """Column values of a message about to be inserted."""

    message_id: str
    sender: str
    recipient: str
    text: Optional[str]
    type: str
    timestamp: datetime
    contact_name: Optional[str] = None
    status: str = MessageStatus.SENT.value


class MessageStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("Store operation failed", exc_info=e)
            raise StoreError(str(e)) from e

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def find_conversation_by_participant(self, wa_id: str) -> Optional[Conversation]:
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(Conversation.wa_id == wa_id)
            )
            return result.scalar_one_or_none()

    async def create_conversation(self, wa_id: str, name: str, last_message: str) -> Conversation:
        """
        Insert a conversation for a participant.

        Raises:
            ConversationConflictError: another writer already created it.
        """
        now = utcnow()
        conversation = Conversation(
            wa_id=wa_id,
            name=name,
            last_message=last_message,
            created_at=now,
            updated_at=now,
        )
        async with self._session() as session:
            session.add(conversation)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConversationConflictError(wa_id)
        return conversation

    async def update_conversation(self, wa_id: str, /, **fields) -> Optional[Conversation]:
        """Partial update by participant; returns None when it does not exist."""
        if "wa_id" in fields or "id" in fields:
            raise ValueError("Conversation identity cannot be updated")

        async with self._session() as session:
            result = await session.execute(
                update(Conversation)
                .where(Conversation.wa_id == wa_id)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            if result.rowcount == 0:
                return None
            refreshed = await session.execute(
                select(Conversation).where(Conversation.wa_id == wa_id)
            )
            return refreshed.scalar_one_or_none()

    async def list_conversations(self, exclude_wa_id: Optional[str] = None) -> List[Conversation]:
        """All conversations, most recently updated first."""
        query = select(Conversation).order_by(Conversation.updated_at.desc(), Conversation.id.desc())
        if exclude_wa_id is not None:
            query = query.where(Conversation.wa_id != exclude_wa_id)
        async with self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def rename_participant(
        self,
        wa_id: str,
        name: str,
        create_if_missing: bool = False,
    ) -> Optional[Conversation]:
        """
        Set the display name of a participant.

        The conversation name and the contact name copied onto every message
        of the conversation change in the same transaction.

        Raises:
            ConversationConflictError: the conversation was created
                concurrently while this call tried to create it.
        """
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(Conversation.wa_id == wa_id)
            )
            conversation = result.scalar_one_or_none()
            if conversation is None and create_if_missing:
                now = utcnow()
                conversation = Conversation(
                    wa_id=wa_id, name=name, last_message="", created_at=now, updated_at=now
                )
                session.add(conversation)
            elif conversation is not None:
                conversation.name = name

            await session.execute(
                update(Message)
                .where(Message.wa_id == wa_id)
                .values(contact_name=name)
                .execution_options(synchronize_session=False)
            )
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ConversationConflictError(wa_id)
            return conversation

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def get_message(self, message_id: str) -> Optional[Message]:
        async with self._session() as session:
            result = await session.execute(
                select(Message).where(Message.message_id == message_id)
            )
            return result.scalar_one_or_none()

    async def create_message(self, conversation: Conversation, new: NewMessage) -> Message:
        """
        Insert a message into an existing conversation.

        Raises:
            DuplicateMessageError: the message id is already stored.
            ValidationError: the conversation does not exist.
        """
        async with self._session() as session:
            current = await session.get(Conversation, conversation.id)
            if current is None:
                raise ValidationError(f"Conversation {conversation.id} does not exist")
            message = Message(
                **{**asdict(new), "contact_name": current.name},
                wa_id=current.wa_id,
                conversation_id=current.id,
            )
            session.add(message)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                if await self.get_message(new.message_id) is not None:
                    raise DuplicateMessageError(new.message_id)
                raise ValidationError(f"Conversation {conversation.id} does not exist")
        return message

    async def apply_message_event(
        self,
        wa_id: str,
        name: str,
        summary: str,
        new: NewMessage,
    ) -> Tuple[Conversation, Message, bool]:
        """
        Store a message and refresh its conversation summary atomically.

        Finds or creates the participant's conversation, inserts the message
        and sets the conversation's last message and updated-at, all in one
        transaction. Returns (conversation, message, created_conversation).
        name only names a new conversation; the message's contact name is
        always the conversation's current name.

        Raises:
            ConversationConflictError: the conversation insert lost a race.
                Nothing was written; retrying will find the conversation.
            DuplicateMessageError: the message id is already stored.
                Nothing was written.
        """
        async with self._session() as session:
            result = await session.execute(
                select(Conversation).where(Conversation.wa_id == wa_id)
            )
            conversation = result.scalar_one_or_none()
            created = False
            now = utcnow()

            if conversation is None:
                conversation = Conversation(
                    wa_id=wa_id, name=name, last_message=summary, created_at=now, updated_at=now
                )
                session.add(conversation)
                try:
                    await session.flush()
                except IntegrityError:
                    await session.rollback()
                    raise ConversationConflictError(wa_id)
                created = True

            # Messages carry a copy of the conversation display name
            message = Message(
                **{**asdict(new), "contact_name": conversation.name},
                wa_id=wa_id,
                conversation_id=conversation.id,
            )
            session.add(message)
            try:
                await session.flush()
            except IntegrityError:
                await session.rollback()
                raise DuplicateMessageError(new.message_id)

            conversation.last_message = summary
            conversation.updated_at = now
            await session.commit()

        return conversation, message, created

    async def update_message_status(self, message_id: str, new_status: str) -> int:
        """
        Move a message forward to new_status.

        The UPDATE only matches rows whose current status precedes
        new_status, so concurrent delivered/read events cannot regress a
        message. Returns the number of rows changed: 0 when the id is
        unknown or the event is stale.
        """
        status = MessageStatus(new_status)
        predecessors = [s.value for s in status.predecessors()]
        if not predecessors:
            return 0

        async with self._session() as session:
            result = await session.execute(
                update(Message)
                .where(Message.message_id == message_id, Message.status.in_(predecessors))
                .values(status=status.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount

    async def mark_read(self, recipient: str, sender: Optional[str] = None) -> int:
        """Set every unread message addressed to recipient (optionally from sender) to read."""
        conditions = [Message.recipient == recipient, Message.status.in_(UNREAD_STATUSES)]
        if sender is not None:
            conditions.append(Message.sender == sender)

        async with self._session() as session:
            result = await session.execute(
                update(Message)
                .where(*conditions)
                .values(status=MessageStatus.READ.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount

    async def list_messages(self, conversation_id: int) -> List[Message]:
        """Messages of one conversation, oldest first."""
        async with self._session() as session:
            result = await session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.timestamp.asc(), Message.id.asc())
            )
            return list(result.scalars().all())

    async def latest_message(self, conversation_id: int) -> Optional[Message]:
        async with self._session() as session:
            result = await session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.timestamp.desc(), Message.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def count_messages(self, conversation_id: int, criteria: Optional[MessageFilter] = None) -> int:
        criteria = criteria or MessageFilter()
        query = select(func.count(Message.id)).where(Message.conversation_id == conversation_id)
        if criteria.sender is not None:
            query = query.where(Message.sender == criteria.sender)
        if criteria.recipient is not None:
            query = query.where(Message.recipient == criteria.recipient)
        if criteria.statuses is not None:
            query = query.where(Message.status.in_(list(criteria.statuses)))
        if criteria.exclude_status is not None:
            query = query.where(Message.status != criteria.exclude_status)

        async with self._session() as session:
            return (await session.execute(query)).scalar() or 0

    async def count_unread_by_participant(self, business_wa_id: str) -> Dict[str, int]:
        """Participant -> number of their messages to the business not yet read."""
        query = (
            select(Message.wa_id, func.count(Message.id))
            .where(
                Message.sender == Message.wa_id,
                Message.recipient == business_wa_id,
                Message.status != MessageStatus.READ.value,
            )
            .group_by(Message.wa_id)
        )
        async with self._session() as session:
            rows = (await session.execute(query)).all()
        return {wa_id: count for wa_id, count in rows}

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear_all(self) -> Tuple[int, int]:
        """Delete every message and conversation. Used when reseeding."""
        async with self._session() as session:
            messages = await session.execute(delete(Message))
            conversations = await session.execute(delete(Conversation))
            await session.commit()
        logger.info(
            "Store cleared",
            extra={"extra_data": {"messages": messages.rowcount, "conversations": conversations.rowcount}}
        )
        return messages.rowcount, conversations.rowcount
