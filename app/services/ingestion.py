"""
Webhook ingestion: applies every message and status carried by a provider
payload, one event at a time.

Events are independent. A failure or timeout part way through a batch keeps
the events already applied; replaying the batch is safe because message ids
are unique and status updates only move forward.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from app.core.errors import ChatServiceError, StoreError, ValidationError
from app.core.logging import get_logger
from app.core.metrics import record_webhook_event
from app.models.message import MessageStatus, MessageType
from app.schemas.webhook import EventOutcome, WebhookPayload, WebhookResult
from app.services.reconciler import ConversationReconciler, InboundMessage
from app.services.status import StatusTransitionEngine

logger = get_logger(__name__)

FAILED_OUTCOMES = ("failed", "timeout")


@dataclass
class PendingEvent:
    kind: str  # message | status
    event_id: str
    apply: Callable[[], Awaitable[str]]


class WebhookIngestor:
    def __init__(
        self,
        reconciler: ConversationReconciler,
        status_engine: StatusTransitionEngine,
        timeout_seconds: float = 10.0,
    ):
        self.reconciler = reconciler
        self.status_engine = status_engine
        self.timeout_seconds = timeout_seconds

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract_messages(self, payload: WebhookPayload) -> List[PendingEvent]:
        events = []
        for entry in payload.entry:
            for change in entry.changes:
                value = change.value
                if not value.messages:
                    continue
                if value.metadata is None:
                    raise ValidationError("Missing metadata for messages")

                business_number = value.metadata.display_phone_number
                unknown_number = business_number != self.reconciler.business_wa_id
                if unknown_number:
                    logger.warning(
                        "Webhook addressed to a different business number",
                        extra={
                            "extra_data": {
                                "display_phone_number": business_number,
                                "business_wa_id": self.reconciler.business_wa_id,
                            }
                        }
                    )
                profiles = {
                    contact.wa_id: contact.profile.name
                    for contact in value.contacts
                    if contact.profile and contact.profile.name
                }

                for message in value.messages:
                    if unknown_number:
                        apply = self._rejecting_applier(
                            f"Webhook addressed to unknown business number {business_number}"
                        )
                    else:
                        recipient = self._recipient_of(message.from_, business_number, value.contacts)
                        counterpart = message.from_ if recipient == business_number else recipient
                        apply = self._message_applier(message, recipient, profiles.get(counterpart))
                    events.append(PendingEvent(kind="message", event_id=message.id, apply=apply))
        return events

    def _recipient_of(self, sender: str, business_number: str, contacts) -> str:
        """Customer messages go to the business; business echoes go to the listed contact."""
        if sender not in (business_number, self.reconciler.business_wa_id):
            return business_number
        for contact in contacts:
            if contact.wa_id != sender:
                return contact.wa_id
        return business_number

    def extract_statuses(self, payload: WebhookPayload) -> List[PendingEvent]:
        events = []
        for entry in payload.entry:
            for change in entry.changes:
                for status in change.value.statuses:
                    events.append(PendingEvent(
                        kind="status",
                        event_id=status.id,
                        apply=self._status_applier(status.id, status.status),
                    ))
        return events

    def _message_applier(self, message, recipient: str, profile_name: Optional[str]):
        async def apply() -> str:
            try:
                message_type = MessageType(message.type)
            except ValueError:
                raise ValidationError(f"Unsupported message type: {message.type}")

            media = message.media
            result = await self.reconciler.reconcile(InboundMessage(
                sender=message.from_,
                recipient=recipient,
                type=message_type,
                text=message.text.body if message.text else None,
                caption=media.caption if media else None,
                message_id=message.id,
                timestamp=message.timestamp,
                profile_name=profile_name,
            ))
            return "duplicate" if result.duplicate else "created"
        return apply

    @staticmethod
    def _rejecting_applier(reason: str):
        async def apply() -> str:
            raise ValidationError(reason)
        return apply

    def _status_applier(self, message_id: str, raw_status: str):
        async def apply() -> str:
            try:
                status = MessageStatus(raw_status)
            except ValueError:
                raise ValidationError(f"Unsupported status: {raw_status}")
            updated = await self.status_engine.apply_status(message_id, status)
            return "updated" if updated else "ignored"
        return apply

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def ingest(self, payload: WebhookPayload, require: Optional[str] = None) -> WebhookResult:
        """
        Apply a webhook payload.

        Args:
            payload: Parsed webhook body
            require: "messages" or "statuses" to reject payloads without them

        Raises:
            ValidationError: the payload carries nothing to apply (or not
                what `require` asks for), or messages lack metadata.
        """
        messages = self.extract_messages(payload)
        statuses = self.extract_statuses(payload)

        if require == "messages" and not messages:
            raise ValidationError("No messages in payload")
        if require == "statuses" and not statuses:
            raise ValidationError("No statuses in payload")
        if not messages and not statuses:
            raise ValidationError("No messages or statuses in payload")

        # Messages first so statuses in the same payload can find them
        events = messages + statuses
        results: List[EventOutcome] = []
        try:
            await asyncio.wait_for(self._apply_all(events, results), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(
                "Webhook batch timed out",
                extra={
                    "extra_data": {
                        "applied": len(results),
                        "total": len(events),
                        "timeout_seconds": self.timeout_seconds,
                    }
                }
            )
            for event in events[len(results):]:
                results.append(EventOutcome(id=event.event_id, kind=event.kind, outcome="timeout"))
                record_webhook_event(event.kind, "timeout")

        failed = sum(1 for result in results if result.outcome in FAILED_OUTCOMES)
        return WebhookResult(
            success=failed == 0,
            processed=len(results) - failed,
            failed=failed,
            total=len(events),
            results=results,
        )

    async def ingest_messages(self, payload: WebhookPayload) -> WebhookResult:
        return await self.ingest(payload, require="messages")

    async def ingest_statuses(self, payload: WebhookPayload) -> WebhookResult:
        return await self.ingest(payload, require="statuses")

    async def _apply_all(self, events: List[PendingEvent], results: List[EventOutcome]) -> None:
        for event in events:
            detail = None
            try:
                outcome = await event.apply()
            except StoreError as e:
                outcome, detail = "failed", str(e)
            except ValidationError as e:
                outcome, detail = "skipped", str(e)
            except ChatServiceError as e:
                outcome, detail = "failed", str(e)

            log = logger.warning if outcome in ("failed", "skipped") else logger.info
            log(
                "Webhook event processed",
                extra={"extra_data": {"kind": event.kind, "id": event.event_id, "outcome": outcome, "detail": detail}}
            )
            record_webhook_event(event.kind, outcome)
            results.append(EventOutcome(id=event.event_id, kind=event.kind, outcome=outcome, detail=detail))
