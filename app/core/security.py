"""
HMAC-SHA256 signature validation for provider webhooks.
"""
import hmac
import hashlib
from typing import Optional

from fastapi import Depends, HTTPException, Request

from app.api.deps import get_services
from app.core.logging import get_logger
from app.services.container import Services

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, body: bytes) -> str:
    """
    Compute HMAC-SHA256 signature for the given body.

    Args:
        secret: The webhook secret key
        body: Raw request body bytes

    Returns:
        Hex-encoded HMAC-SHA256 signature
    """
    return hmac.new(
        key=secret.encode("utf-8"),
        msg=body,
        digestmod=hashlib.sha256
    ).hexdigest()


def verify_signature(secret: str, body: bytes, signature: str) -> bool:
    """
    Verify a "sha256=<hex>" signature using constant-time comparison.

    The bare hex digest is accepted as well.
    """
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]
    expected_signature = compute_signature(secret, body)
    return hmac.compare_digest(expected_signature, signature)


class SignatureValidator:
    """
    Dependency class for validating webhook signatures.

    Signatures are only enforced when a webhook secret is configured.
    """

    async def __call__(self, request: Request, services: Services = Depends(get_services)) -> bytes:
        """
        Return the raw request body once its signature checks out.

        Raises:
            HTTPException: 401 if signature is missing or invalid
        """
        settings = services.settings
        body = await request.body()

        if not settings.is_webhook_secret_configured:
            logger.debug("Webhook secret not configured, signature not checked")
            return body

        signature: Optional[str] = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            logger.warning(f"Webhook request missing {SIGNATURE_HEADER} header")
            raise HTTPException(
                status_code=401,
                detail="invalid signature"
            )

        if not verify_signature(settings.webhook_secret, body, signature):
            logger.warning(
                "Webhook signature verification failed",
                extra={
                    "extra_data": {
                        "received_signature": signature[:16] + "...",  # Log partial for debugging
                    }
                }
            )
            raise HTTPException(
                status_code=401,
                detail="invalid signature"
            )

        logger.debug("Webhook signature verified successfully")
        return body


# Dependency instance
validate_signature = SignatureValidator()


async def get_validated_body(
    body: bytes = Depends(validate_signature)
) -> bytes:
    """FastAPI dependency to get validated request body."""
    return body
