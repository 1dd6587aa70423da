"""
Pydantic schemas for provider webhook payloads (WhatsApp Cloud API shape).
"""
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Lenient(BaseModel):
    # Providers add fields over time; unknown keys are ignored
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TextBody(_Lenient):
    body: str = ""


class MediaBody(_Lenient):
    id: Optional[str] = None
    mime_type: Optional[str] = None
    sha256: Optional[str] = None
    filename: Optional[str] = None
    caption: Optional[str] = None


class WebhookProfile(_Lenient):
    name: Optional[str] = None


class WebhookContact(_Lenient):
    wa_id: str
    profile: Optional[WebhookProfile] = None


class WebhookMetadata(_Lenient):
    display_phone_number: str
    phone_number_id: Optional[str] = None


class WebhookMessage(_Lenient):
    """A single inbound message."""

    from_: str = Field(..., alias="from", min_length=1)
    id: str = Field(..., min_length=1, max_length=255)
    timestamp: datetime
    type: str = "text"
    text: Optional[TextBody] = None
    image: Optional[MediaBody] = None
    video: Optional[MediaBody] = None
    audio: Optional[MediaBody] = None
    document: Optional[MediaBody] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_epoch_seconds(cls, v):
        """Timestamps arrive as epoch seconds, usually as a string."""
        if isinstance(v, (int, float)) or (isinstance(v, str) and v.strip().isdigit()):
            return datetime.fromtimestamp(int(v), tz=timezone.utc)
        return v

    @property
    def media(self) -> Optional[MediaBody]:
        if self.type in ("image", "video", "audio", "document"):
            return getattr(self, self.type)
        return None


class WebhookStatus(_Lenient):
    """A delivery/read receipt for a message sent earlier."""

    id: str = Field(..., min_length=1)
    status: str
    timestamp: Optional[str] = None
    recipient_id: Optional[str] = None


class WebhookValue(_Lenient):
    messaging_product: Optional[str] = None
    metadata: Optional[WebhookMetadata] = None
    contacts: List[WebhookContact] = Field(default_factory=list)
    messages: List[WebhookMessage] = Field(default_factory=list)
    statuses: List[WebhookStatus] = Field(default_factory=list)


class WebhookChange(_Lenient):
    field: Optional[str] = None
    value: WebhookValue


class WebhookEntry(_Lenient):
    id: Optional[str] = None
    changes: List[WebhookChange] = Field(default_factory=list)


class WebhookPayload(_Lenient):
    """Request body of every webhook POST."""

    object: Optional[str] = None
    entry: List[WebhookEntry] = Field(default_factory=list)

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "object": "whatsapp_business_account",
                "entry": [{
                    "id": "30164062719905277",
                    "changes": [{
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "918329446654",
                                "phone_number_id": "629305560276479",
                            },
                            "contacts": [{"profile": {"name": "Ravi Kumar"}, "wa_id": "919937320320"}],
                            "messages": [{
                                "from": "919937320320",
                                "id": "wamid.HBgMOTE5OTY3NTc4NzIwFQIAEhggMTIzQURFRjEyMzQ1Njc4OTA=",
                                "timestamp": "1754400000",
                                "text": {"body": "Hi, I'd like to know more about your services."},
                                "type": "text",
                            }],
                        },
                    }],
                }],
            }
        },
    )


class EventOutcome(BaseModel):
    id: str
    kind: str  # message | status
    outcome: str  # created | duplicate | updated | ignored | skipped | failed | timeout
    detail: Optional[str] = None


class WebhookResult(BaseModel):
    """Response body of every webhook POST."""

    success: bool
    processed: int = Field(..., ge=0, description="Events applied or safely ignored")
    failed: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    results: List[EventOutcome] = Field(default_factory=list)
