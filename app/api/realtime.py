"""
WebSocket stream of conversation events for the business and customer viewers.
"""
import asyncio
import json
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadValidationError

from app.core.errors import ChatServiceError
from app.core.logging import get_logger
from app.schemas.message import MessageOut, SendMessageRequest, SocketInbound
from app.services.container import Services
from app.services.notifier import Subscription

logger = get_logger(__name__)

router = APIRouter(tags=["Realtime"])

# RFC 6455 "try again later" and "policy violation"
CLOSE_TRY_AGAIN_LATER = 1013
CLOSE_POLICY_VIOLATION = 1008


async def _error(websocket: WebSocket, detail: str) -> None:
    await websocket.send_json({"type": "error", "data": {"detail": detail}})


async def forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.get()
        await websocket.send_json(event.model_dump(mode="json"))


async def handle_frame(
    websocket: WebSocket,
    services: Services,
    role: str,
    wa_id: Optional[str],
    raw: str,
) -> None:
    try:
        frame = SocketInbound.model_validate(json.loads(raw))
    except (json.JSONDecodeError, PayloadValidationError):
        await _error(websocket, "Malformed frame")
        return

    if frame.type == "ping":
        await websocket.send_json({"type": "pong"})
        return
    if frame.type != "message.send":
        await _error(websocket, f"Unsupported frame type: {frame.type}")
        return

    try:
        request = SendMessageRequest.model_validate(frame.data)
    except PayloadValidationError as e:
        await _error(websocket, str(e))
        return
    if role == "customer" and request.from_ != wa_id:
        await _error(websocket, "Customers can only send as themselves")
        return

    try:
        result = await services.sender.send(
            sender=request.from_,
            recipient=request.to,
            text=request.text,
            contact_name=request.contact_name,
            message_type=request.type,
        )
    except ChatServiceError as e:
        await _error(websocket, str(e))
        return
    await websocket.send_json({
        "type": "message.sent",
        "wa_id": result.message.wa_id,
        "data": MessageOut.from_model(result.message).model_dump(mode="json", by_alias=True),
    })


@router.websocket("/ws")
async def realtime(
    websocket: WebSocket,
    role: str = Query(default="business"),
    wa_id: Optional[str] = Query(default=None),
) -> None:
    services: Services = websocket.app.state.services
    await websocket.accept()

    broadcaster = services.broadcaster
    if broadcaster is None:
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Realtime disabled, poll instead")
        return
    if role not in ("business", "customer") or (role == "customer" and not wa_id):
        await _error(websocket, "role must be business, or customer with a wa_id")
        await websocket.close(code=CLOSE_POLICY_VIOLATION)
        return

    subscription = broadcaster.subscribe(role, wa_id)
    forwarder = asyncio.create_task(forward_events(websocket, subscription))
    logger.info("Viewer connected", extra={"extra_data": {"role": role, "wa_id": wa_id}})
    try:
        while True:
            raw = await websocket.receive_text()
            await handle_frame(websocket, services, role, wa_id, raw)
    except WebSocketDisconnect:
        logger.info("Viewer disconnected", extra={"extra_data": {"role": role, "wa_id": wa_id}})
    finally:
        broadcaster.unsubscribe(subscription)
        forwarder.cancel()
        await asyncio.gather(forwarder, return_exceptions=True)
