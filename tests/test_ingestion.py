"""
Tests for webhook payload ingestion at the service level.
"""
import asyncio

import pytest

from app.core.errors import StoreError, ValidationError
from app.schemas.webhook import WebhookPayload

BUSINESS = "918329446654"
CUSTOMER = "919937320320"


def parse(payload) -> WebhookPayload:
    return WebhookPayload.model_validate(payload)


class TestExtraction:
    """Tests for walking entries and changes."""

    def test_messages_need_metadata(self, run_services, message_payload):
        payload = message_payload()
        del payload["entry"][0]["changes"][0]["value"]["metadata"]

        async def scenario(services):
            with pytest.raises(ValidationError, match="Missing metadata for messages"):
                services.ingestor.extract_messages(parse(payload))

        run_services(scenario)

    def test_empty_payload_rejected(self, run_services):
        async def scenario(services):
            with pytest.raises(ValidationError):
                await services.ingestor.ingest(parse({"object": "whatsapp_business_account", "entry": []}))
            with pytest.raises(ValidationError, match="No statuses in payload"):
                await services.ingestor.ingest_statuses(parse({"entry": []}))

        run_services(scenario)

    def test_business_echo_goes_to_contact(self, run_services, message_payload):
        payload = message_payload(
            sender=BUSINESS,
            message_id="wamid.business.1",
            body="Thanks for reaching out!",
            contact_wa_id=CUSTOMER,
        )

        async def scenario(services):
            result = await services.ingestor.ingest_messages(parse(payload))
            conversation = await services.store.find_conversation_by_participant(CUSTOMER)
            message = await services.store.get_message("wamid.business.1")
            return result, conversation, message

        result, conversation, message = run_services(scenario)
        assert result.success is True
        assert conversation.name == "Ravi Kumar"
        assert message.recipient == CUSTOMER
        assert message.wa_id == CUSTOMER

    def test_unknown_business_number_is_skipped(self, run_services, message_payload):
        other_number = "15550001111"
        echo = message_payload(
            sender=other_number,
            message_id="wamid.echo.1",
            display_number=other_number,
            contact_wa_id=CUSTOMER,
        )
        inbound = message_payload(message_id="wamid.customer.9", display_number=other_number)

        async def scenario(services):
            results = [
                await services.ingestor.ingest_messages(parse(echo)),
                await services.ingestor.ingest_messages(parse(inbound)),
            ]
            return results, await services.store.list_conversations()

        results, conversations = run_services(scenario)
        for result in results:
            assert result.success is True
            assert [r.outcome for r in result.results] == ["skipped"]
            assert other_number in result.results[0].detail
        assert conversations == []


class TestBatchProcessing:
    """Partial failures and timeouts are reported per event."""

    def test_statuses_in_same_payload_apply_after_messages(self, run_services, message_payload):
        payload = message_payload()
        payload["entry"][0]["changes"][0]["value"]["statuses"] = [
            {"id": "wamid.customer.1", "status": "read", "timestamp": "1754400100"},
        ]

        async def scenario(services):
            result = await services.ingestor.ingest(parse(payload))
            return result, await services.store.get_message("wamid.customer.1")

        result, message = run_services(scenario)
        assert [r.outcome for r in result.results] == ["created", "updated"]
        assert message.status == "read"

    def test_unsupported_events_are_skipped(self, run_services, message_payload, status_payload):
        async def scenario(services):
            sticker = await services.ingestor.ingest(parse(message_payload(message_type="sticker")))
            failed_status = await services.ingestor.ingest(parse(status_payload(("wamid.x", "failed"))))
            return sticker, failed_status

        sticker, failed_status = run_services(scenario)
        assert sticker.results[0].outcome == "skipped"
        assert sticker.success is True
        assert failed_status.results[0].outcome == "skipped"

    def test_store_failure_reported_and_others_kept(self, run_services, message_payload, monkeypatch):
        extra = [
            {"from": CUSTOMER, "id": "wamid.bad", "timestamp": "1754400001", "type": "text", "text": {"body": "x"}},
            {"from": CUSTOMER, "id": "wamid.3", "timestamp": "1754400002", "type": "text", "text": {"body": "y"}},
        ]
        payload = message_payload(extra_messages=extra)

        async def scenario(services):
            original = services.reconciler.reconcile

            async def flaky(inbound):
                if inbound.message_id == "wamid.bad":
                    raise StoreError("disk I/O error")
                return await original(inbound)

            monkeypatch.setattr(services.reconciler, "reconcile", flaky)
            result = await services.ingestor.ingest(parse(payload))
            conversation = await services.store.find_conversation_by_participant(CUSTOMER)
            return result, await services.store.list_messages(conversation.id)

        result, messages = run_services(scenario)
        assert result.success is False
        assert (result.processed, result.failed, result.total) == (2, 1, 3)
        assert [r.outcome for r in result.results] == ["created", "failed", "created"]
        assert {m.message_id for m in messages} == {"wamid.customer.1", "wamid.3"}

    def test_timeout_marks_unreached_events(self, run_services, message_payload, monkeypatch):
        extra = [
            {"from": CUSTOMER, "id": "wamid.slow", "timestamp": "1754400001", "type": "text", "text": {"body": "x"}},
            {"from": CUSTOMER, "id": "wamid.late", "timestamp": "1754400002", "type": "text", "text": {"body": "y"}},
        ]
        payload = message_payload(extra_messages=extra)

        async def scenario(services):
            original = services.reconciler.reconcile

            async def slow(inbound):
                if inbound.message_id == "wamid.slow":
                    await asyncio.sleep(5)
                return await original(inbound)

            monkeypatch.setattr(services.reconciler, "reconcile", slow)
            result = await services.ingestor.ingest(parse(payload))
            return result, await services.store.get_message("wamid.customer.1")

        result, first = run_services(scenario, webhook_batch_timeout_seconds=0.5)
        assert [r.outcome for r in result.results] == ["created", "timeout", "timeout"]
        assert result.failed == 2
        assert first is not None
