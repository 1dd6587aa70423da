"""
Message database model.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Tuple

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


class MessageStatus(str, Enum):
    """Delivery status. Only ever moves forward: sent -> delivered -> read."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def predecessors(self) -> Tuple["MessageStatus", ...]:
        """Statuses a message may be in for this status to be a forward move."""
        return _STATUS_ORDER[:self.rank]


_STATUS_ORDER = (MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ)


class Message(Base):
    """A single message, inbound or outbound, owned by one conversation."""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # External idempotency key (provider id or locally generated)
    message_id = Column(String(255), unique=True, nullable=False)

    # 'from' is reserved
    sender = Column(String(32), nullable=False)
    recipient = Column(String(32), nullable=False)

    # Owning participant, denormalized from the conversation
    wa_id = Column(String(32), nullable=False, index=True)

    text = Column(Text, nullable=True)
    type = Column(String(16), nullable=False, default=MessageType.TEXT.value)
    status = Column(String(16), nullable=False, default=MessageStatus.SENT.value)

    # Original send time
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Sender display name at time of send
    contact_name = Column(String(255), nullable=True)

    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False)
    conversation = relationship("Conversation", back_populates="messages")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
        Index("ix_messages_direction_status", "sender", "recipient", "status"),
    )

    def __repr__(self) -> str:
        return f"<Message(message_id={self.message_id}, sender={self.sender}, status={self.status})>"
