"""
Pydantic schemas for the viewer-facing request/response bodies.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.message import Message, MessageType


class SendMessageRequest(BaseModel):
    """Request schema for POST /api/messages."""

    from_: str = Field(..., alias="from", min_length=1, max_length=32, description="Sender identifier")
    to: str = Field(..., min_length=1, max_length=32, description="Recipient identifier")
    text: str = Field(..., min_length=1, max_length=4096, description="Message text content")
    contact_name: Optional[str] = Field(default=None, alias="contactName", max_length=255)
    type: MessageType = Field(default=MessageType.TEXT)

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "from": "918329446654",
                "to": "919937320320",
                "text": "Hello! Thanks for reaching out.",
                "type": "text",
            }
        },
    )

    @field_validator("from_", "to")
    @classmethod
    def strip_identifier(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be blank")
        return v


class TextContent(BaseModel):
    body: str = ""


class MessageOut(BaseModel):
    """A stored message as the viewers render it."""

    id: str = Field(alias="_id")
    from_: str = Field(alias="from")
    to: str
    text: TextContent
    timestamp: Optional[datetime] = None
    status: str
    type: str
    meta_msg_id: str
    wa_id: str
    contact_name: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_model(cls, message: Message) -> "MessageOut":
        return cls(
            id=str(message.id),
            from_=message.sender,
            to=message.recipient,
            text=TextContent(body=message.text or "No text content"),
            timestamp=message.timestamp,
            status=message.status,
            type=message.type,
            meta_msg_id=message.message_id,
            wa_id=message.wa_id,
            contact_name=message.contact_name,
        )


class LastMessageSnapshot(BaseModel):
    text: TextContent
    timestamp: Optional[datetime] = None
    status: str = "sent"


class ConversationUser(BaseModel):
    wa_id: str
    phone: str
    name: str


class ConversationOut(BaseModel):
    """One row of the operator's conversation list."""

    conversation_id: str
    wa_id: str
    user_wa_id: str
    participants: List[str]
    last_message: LastMessageSnapshot = Field(alias="lastMessage")
    message_count: int = Field(alias="messageCount", ge=0, description="Messages the business has not read")
    user: ConversationUser
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class MarkReadResponse(BaseModel):
    success: bool = True
    updated_count: int = Field(alias="updatedCount", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class UpdateNameRequest(BaseModel):
    """Request schema for PUT /api/customer/{mobile}/update-name. Empty clears."""

    name: str = Field(default="", max_length=255)


class UpdateNameResponse(BaseModel):
    success: bool = True
    name: str


class SocketInbound(BaseModel):
    """Client -> server frame on the realtime socket."""

    type: str  # message.send | ping
    data: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response schema for health endpoints."""
    status: str
    checks: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response schema."""
    detail: str
