"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Response

from app.api.deps import get_services
from app.core.logging import get_logger
from app.schemas.message import HealthResponse
from app.services.container import Services

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive."
)
async def liveness() -> HealthResponse:
    """
    Liveness probe - always returns 200.
    
    Used by orchestrators to check if the service is running.
    """
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the service is ready to handle traffic."
)
async def readiness(
    response: Response,
    services: Annotated[Services, Depends(get_services)],
) -> HealthResponse:
    """
    Readiness probe - checks if the service can handle traffic.
    
    Checks:
    - SQLite database is reachable and schema is applied
    - Which notifier backend serves realtime viewers
    - Whether webhook signatures are enforced
    """
    settings = services.settings
    checks = {}

    db_ok = await services.is_healthy()
    checks["database"] = "ok" if db_ok else "failed"
    if not db_ok:
        logger.warning("Readiness check failed: database not reachable")

    checks["notifier"] = settings.notifier_backend
    checks["webhook_signature"] = "enforced" if settings.is_webhook_secret_configured else "disabled"

    if db_ok:
        return HealthResponse(status="ok", checks=checks)
    response.status_code = 503
    return HealthResponse(status="not ready", checks=checks)
