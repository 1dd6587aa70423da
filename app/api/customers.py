"""
Customer profile endpoints.
"""
from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.deps import get_services
from app.schemas.message import ErrorResponse, UpdateNameRequest, UpdateNameResponse
from app.services.container import Services

router = APIRouter(prefix="/api/customer", tags=["Customers"])


@router.put(
    "/{mobile}/update-name",
    response_model=UpdateNameResponse,
    responses={400: {"model": ErrorResponse, "description": "Cannot rename the business"}},
    summary="Set a customer's display name",
)
async def update_name(
    mobile: str,
    request: UpdateNameRequest,
    services: Annotated[Services, Depends(get_services)],
) -> UpdateNameResponse:
    name = await services.reconciler.rename(mobile, request.name)
    return UpdateNameResponse(name=name)
