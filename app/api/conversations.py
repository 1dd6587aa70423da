"""
Conversation list, history and read-receipt endpoints for the viewers.
"""
from typing import Annotated, List

from fastapi import APIRouter, Depends

from app.api.deps import get_services
from app.core.logging import get_logger
from app.models.conversation import Conversation
from app.schemas.message import (
    ConversationOut,
    ConversationUser,
    LastMessageSnapshot,
    MarkReadResponse,
    MessageOut,
    TextContent,
)
from app.services.container import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["Conversations"])


async def conversation_row(services: Services, conversation: Conversation, unread: int) -> ConversationOut:
    business_wa_id = services.settings.business_wa_id
    latest = await services.store.latest_message(conversation.id)
    return ConversationOut(
        conversation_id=conversation.wa_id,
        wa_id=conversation.wa_id,
        user_wa_id=conversation.wa_id,
        participants=[conversation.wa_id, business_wa_id],
        last_message=LastMessageSnapshot(
            text=TextContent(body=conversation.last_message),
            timestamp=latest.timestamp if latest else conversation.updated_at,
            status=latest.status if latest else "sent",
        ),
        message_count=unread,
        user=ConversationUser(
            wa_id=conversation.wa_id,
            phone=conversation.wa_id,
            name=conversation.name,
        ),
        updated_at=conversation.updated_at,
    )


@router.get(
    "",
    response_model=List[ConversationOut],
    response_model_by_alias=True,
    summary="List conversations",
    description="Every customer conversation, most recently active first, with unread counts."
)
async def list_conversations(
    services: Annotated[Services, Depends(get_services)],
) -> List[ConversationOut]:
    conversations = await services.store.list_conversations(exclude_wa_id=services.settings.business_wa_id)
    unread = await services.read_receipts.unread_counts()

    rows = [
        await conversation_row(services, conversation, unread.get(conversation.wa_id, 0))
        for conversation in conversations
    ]
    logger.debug("Listed conversations", extra={"extra_data": {"total": len(rows)}})
    return rows


@router.get(
    "/{wa_id}",
    response_model=List[MessageOut],
    response_model_by_alias=True,
    summary="Conversation history",
    description="Messages exchanged with one participant, oldest first. Unknown participants have none."
)
async def conversation_messages(
    wa_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> List[MessageOut]:
    conversation = await services.store.find_conversation_by_participant(wa_id)
    if conversation is None:
        return []
    messages = await services.store.list_messages(conversation.id)
    return [MessageOut.from_model(message) for message in messages]


@router.post(
    "/{wa_id}/mark-read",
    response_model=MarkReadResponse,
    response_model_by_alias=True,
    summary="Customer read the business's messages",
)
async def mark_read(
    wa_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> MarkReadResponse:
    updated = await services.read_receipts.mark_business_messages_read(wa_id)
    return MarkReadResponse(updated_count=updated)


@router.post(
    "/{wa_id}/mark-customer-read",
    response_model=MarkReadResponse,
    response_model_by_alias=True,
    summary="Business read the customer's messages",
)
async def mark_customer_read(
    wa_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> MarkReadResponse:
    updated = await services.read_receipts.mark_customer_messages_read(wa_id)
    return MarkReadResponse(updated_count=updated)
