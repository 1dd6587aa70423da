"""
Error taxonomy shared by the store, the services and the HTTP layer.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

logger = get_logger(__name__)


class ChatServiceError(Exception):
    """Base class for all service errors."""


class ValidationError(ChatServiceError):
    """Malformed or incomplete inbound payload. Rejected before any write."""


class ConflictError(ChatServiceError):
    """A unique key already exists."""


class ConversationConflictError(ConflictError):
    """Another writer created the conversation first."""

    def __init__(self, wa_id: str):
        super().__init__(f"Conversation already exists for {wa_id}")
        self.wa_id = wa_id


class DuplicateMessageError(ConflictError, ValidationError):
    """A message with the same external message id is already stored."""

    def __init__(self, message_id: str):
        super().__init__(f"Message {message_id} already exists")
        self.message_id = message_id


class StoreError(ChatServiceError):
    """The underlying storage failed or is unavailable."""


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.warning(
        "Rejected payload",
        extra={"extra_data": {"path": request.url.path, "error": str(exc)}}
    )
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error(
        "Store failure",
        exc_info=exc,
        extra={"extra_data": {"path": request.url.path}}
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    """Map service errors onto 4xx/5xx responses."""
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(StoreError, store_error_handler)
