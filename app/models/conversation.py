"""
Conversation database model.
"""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from app.core.database import Base
from app.models.message import utcnow


class Conversation(Base):
    """One conversation per non-business participant."""

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Participant identifier, unique across conversations
    wa_id = Column(String(32), unique=True, nullable=False)

    # Display name, empty until known or after being cleared
    name = Column(String(255), nullable=False, default="")

    # Denormalized summary of the latest message
    last_message = Column(Text, nullable=False, default="")

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    messages = relationship("Message", back_populates="conversation", lazy="raise")

    def __repr__(self) -> str:
        return f"<Conversation(wa_id={self.wa_id}, name={self.name!r})>"
