"""
Clerk webhook endpoint for identity synchronization.

SECURITY: All webhooks MUST verify the Svix signature before processing.
Clerk uses Svix for webhook delivery and signature verification.

Documentation: https://clerk.com/docs/webhooks

Status codes:
- 200: processed, skipped, or an unhandled event type acknowledged
- 400: invalid JSON or a payload that fails validation
- 401: missing Svix headers or failed signature/timestamp verification
- 500: handler failure (Svix retries the delivery)
- 503: CLERK_WEBHOOK_SECRET not configured
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session
from svix.webhooks import Webhook, WebhookVerificationError

from jnx_os.api.dependencies import get_app_settings
from jnx_os.config.settings import Settings
from jnx_os.database.session import get_db_session
from jnx_os.services.clerk_webhook_handler import ClerkWebhookHandler
from jnx_os.services.errors import ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


class WebhookResponse(BaseModel):
    """Standard webhook response."""
    received: bool = True
    status: str = "processed"
    message: Optional[str] = None


class WebhookSignatureError(Exception):
    """Svix verification failed or headers were missing."""


def verify_clerk_webhook(
    payload: bytes,
    svix_id: Optional[str],
    svix_timestamp: Optional[str],
    svix_signature: Optional[str],
    webhook_secret: str,
) -> None:
    """
    Verify a Clerk webhook signature using Svix.

    Svix checks the HMAC over "{svix_id}.{svix_timestamp}.{payload}" and
    rejects timestamps outside its tolerance window.

    Raises:
        WebhookSignatureError: Missing headers or failed verification
    """
    if not (svix_id and svix_timestamp and svix_signature):
        raise WebhookSignatureError("Missing Svix headers")

    try:
        Webhook(webhook_secret).verify(
            payload,
            {
                "svix-id": svix_id,
                "svix-timestamp": svix_timestamp,
                "svix-signature": svix_signature,
            },
        )
    except WebhookVerificationError as e:
        raise WebhookSignatureError(str(e))


@router.post("/clerk", response_model=WebhookResponse)
async def handle_clerk_webhook(
    request: Request,
    svix_id: Optional[str] = Header(None, alias="svix-id"),
    svix_timestamp: Optional[str] = Header(None, alias="svix-timestamp"),
    svix_signature: Optional[str] = Header(None, alias="svix-signature"),
    settings: Settings = Depends(get_app_settings),
    db: Session = Depends(get_db_session),
):
    """
    Handle incoming Clerk webhooks.

    Security:
    - Verifies Svix signature using CLERK_WEBHOOK_SECRET
    - Rejects requests with invalid or missing signatures
    - Does not require session authentication (webhooks are server-to-server)
    """
    webhook_secret = settings.clerk_webhook_secret
    if not webhook_secret:
        logger.error("CLERK_WEBHOOK_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook handler not configured",
        )

    body = await request.body()

    try:
        verify_clerk_webhook(body, svix_id, svix_timestamp, svix_signature, webhook_secret)
    except WebhookSignatureError as e:
        logger.warning(
            "Clerk webhook signature verification failed",
            extra={
                "svix_id": svix_id,
                "has_timestamp": bool(svix_timestamp),
                "has_signature": bool(svix_signature),
                "error": str(e),
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook signature",
        )

    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON in webhook payload", extra={"svix_id": svix_id})
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid JSON payload",
        )

    event_type = payload.get("type") if isinstance(payload, dict) else None
    logger.info(
        "Received Clerk webhook",
        extra={"event_type": event_type, "svix_id": svix_id},
    )

    handler = ClerkWebhookHandler(db)
    try:
        result = handler.process(payload, delivery_id=svix_id)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message,
        )
    except Exception:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )

    return WebhookResponse(
        received=True,
        status=result["status"],
        message=f"Event {event_type} {result['status']}",
    )


@router.get("/clerk/health")
async def clerk_webhook_health(settings: Settings = Depends(get_app_settings)):
    """
    Health check for the Clerk webhook endpoint.

    Does not require authentication.
    """
    return {
        "status": "healthy",
        "webhook_secret_configured": bool(settings.clerk_webhook_secret),
    }
