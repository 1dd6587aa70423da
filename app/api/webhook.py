"""
Webhook endpoints for the provider's message and status callbacks.
"""
import json
from typing import Annotated, Awaitable, Callable, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError as PayloadValidationError

from app.api.deps import get_services
from app.core.security import get_validated_body
from app.core.logging import get_logger
from app.schemas.message import ErrorResponse
from app.schemas.webhook import WebhookPayload, WebhookResult
from app.services.container import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["Webhook"])

INGEST_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Nothing to apply in payload"},
    401: {"model": ErrorResponse, "description": "Invalid signature"},
    422: {"model": ErrorResponse, "description": "Malformed payload"},
    500: {"model": WebhookResult, "description": "One or more events failed"},
}


def parse_payload(validated_body: bytes) -> WebhookPayload:
    """Decode and validate a provider body, 422 on anything malformed."""
    try:
        data = json.loads(validated_body)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in webhook request: {e}")
        raise HTTPException(status_code=422, detail="Invalid JSON")

    try:
        return WebhookPayload.model_validate(data)
    except PayloadValidationError as e:
        logger.warning(f"Validation error in webhook request: {e}")
        raise HTTPException(status_code=422, detail=str(e))


async def _ingest(validated_body: bytes, apply: Callable[[WebhookPayload], Awaitable[WebhookResult]]) -> JSONResponse:
    payload = parse_payload(validated_body)
    result = await apply(payload)

    logger.info(
        "Webhook processed",
        extra={
            "extra_data": {
                "processed": result.processed,
                "failed": result.failed,
                "total": result.total,
            }
        }
    )
    # Applied events stay applied even when the batch reports failure
    status_code = 200 if result.success else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.get(
    "",
    response_class=PlainTextResponse,
    summary="Webhook verification handshake",
)
async def verify_webhook(
    services: Annotated[Services, Depends(get_services)],
    mode: Annotated[Optional[str], Query(alias="hub.mode")] = None,
    token: Annotated[Optional[str], Query(alias="hub.verify_token")] = None,
    challenge: Annotated[Optional[str], Query(alias="hub.challenge")] = None,
) -> PlainTextResponse:
    """Echo the challenge when the provider presents the configured verify token."""
    if mode == "subscribe" and token is not None and token == services.settings.webhook_verify_token:
        logger.info("Webhook verification succeeded")
        return PlainTextResponse(challenge or "")

    logger.warning("Webhook verification rejected", extra={"extra_data": {"mode": mode}})
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post(
    "",
    response_model=WebhookResult,
    responses=INGEST_RESPONSES,
    summary="Ingest provider webhook",
    description="Apply every message and status carried by the payload."
)
async def ingest_webhook(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    services: Annotated[Services, Depends(get_services)],
) -> JSONResponse:
    return await _ingest(validated_body, services.ingestor.ingest)


@router.post(
    "/messages",
    response_model=WebhookResult,
    responses=INGEST_RESPONSES,
    summary="Ingest inbound messages",
)
async def ingest_messages(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    services: Annotated[Services, Depends(get_services)],
) -> JSONResponse:
    return await _ingest(validated_body, services.ingestor.ingest_messages)


@router.post(
    "/status",
    response_model=WebhookResult,
    responses=INGEST_RESPONSES,
    summary="Ingest delivery statuses",
)
async def ingest_statuses(
    validated_body: Annotated[bytes, Depends(get_validated_body)],
    services: Annotated[Services, Depends(get_services)],
) -> JSONResponse:
    return await _ingest(validated_body, services.ingestor.ingest_statuses)
