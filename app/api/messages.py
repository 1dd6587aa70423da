"""
Messages endpoint for viewer sends.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import get_services
from app.core.logging import get_logger
from app.schemas.message import ErrorResponse, MessageOut, SendMessageRequest
from app.services.container import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/api/messages", tags=["Messages"])


@router.post(
    "",
    response_model=MessageOut,
    response_model_by_alias=True,
    status_code=201,
    responses={400: {"model": ErrorResponse, "description": "Message has no customer participant"}},
    summary="Send a message",
    description="Store a message written in the business or customer viewer."
)
async def send_message(
    request: SendMessageRequest,
    services: Annotated[Services, Depends(get_services)],
) -> MessageOut:
    """
    Send a message.

    - **from** / **to**: one side must be the business number
    - **contactName**: optional display name for the customer
    - Business sends are marked delivered shortly after when simulated delivery is on
    """
    result = await services.sender.send(
        sender=request.from_,
        recipient=request.to,
        text=request.text,
        contact_name=request.contact_name,
        message_type=request.type,
    )
    return MessageOut.from_model(result.message)
