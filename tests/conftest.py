"""
Shared fixtures: a temporary SQLite file per test, the app and raw services.
"""
import asyncio

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.core.metrics import reset_metrics
from app.main import create_app
from app.services.container import build_services

BUSINESS_WA_ID = "918329446654"
CUSTOMER_WA_ID = "919937320320"
OTHER_CUSTOMER_WA_ID = "929967673820"
VERIFY_TOKEN = "verify-token-12345"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Isolated settings; simulated delivery is off unless a test turns it on."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'chat.db'}",
        business_wa_id=BUSINESS_WA_ID,
        webhook_secret=None,
        webhook_verify_token=VERIFY_TOKEN,
        simulated_delivery_enabled=False,
        notifier_backend="broadcast",
        log_level="DEBUG",
        log_format="text",
    )


@pytest.fixture
def client(settings):
    """Test client with the lifespan running, so services share one event loop."""
    reset_metrics()
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def run_services(settings):
    """
    Run an async scenario against freshly built services.

    Usage: run_services(lambda services: some_coroutine(services))
    """
    def run(scenario, **overrides):
        effective = settings.model_copy(update=overrides) if overrides else settings

        async def main():
            services = build_services(effective)
            await services.start()
            try:
                return await scenario(services)
            finally:
                await services.close()

        return asyncio.run(main())

    return run


def build_message_payload(
    sender=CUSTOMER_WA_ID,
    message_id="wamid.customer.1",
    body="Hi, I'd like to know more about your services.",
    timestamp="1754400000",
    profile_name="Ravi Kumar",
    contact_wa_id=None,
    display_number=BUSINESS_WA_ID,
    message_type="text",
    extra_messages=(),
):
    message = {
        "from": sender,
        "id": message_id,
        "timestamp": timestamp,
        "type": message_type,
    }
    if message_type == "text":
        message["text"] = {"body": body}
    else:
        message[message_type] = {"id": "media-1", "caption": body}

    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "30164062719905277",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {
                        "display_phone_number": display_number,
                        "phone_number_id": "629305560276479",
                    },
                    "contacts": [{
                        "profile": {"name": profile_name},
                        "wa_id": contact_wa_id or sender,
                    }],
                    "messages": [message, *extra_messages],
                },
            }],
        }],
    }


def build_status_payload(*statuses):
    """statuses: (message_id, status) pairs."""
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "30164062719905277",
            "changes": [{
                "field": "messages",
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {
                        "display_phone_number": BUSINESS_WA_ID,
                        "phone_number_id": "629305560276479",
                    },
                    "statuses": [
                        {
                            "id": message_id,
                            "status": status,
                            "timestamp": "1754400100",
                            "recipient_id": CUSTOMER_WA_ID,
                        }
                        for message_id, status in statuses
                    ],
                },
            }],
        }],
    }


@pytest.fixture
def message_payload():
    return build_message_payload


@pytest.fixture
def status_payload():
    return build_status_payload
