"""Payment webhook receiver.

Provides:
- POST /api/webhooks/stripe - receive payment provider events

The signature covers the raw body, so the body is read as bytes and only
decoded after verification.
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from bakery_api.api.schemas import ErrorResponse, WebhookResponse
from bakery_api.application.webhook_service import (
    WebhookEvent,
    WebhookService,
    get_webhook_service,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


# ============================================================================
# Dependencies
# ============================================================================


def get_service() -> WebhookService:
    """Get webhook service."""
    return get_webhook_service()


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/stripe",
    response_model=WebhookResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    summary="Receive payment webhook",
    description="Verify and process a payment provider event.",
)
async def receive_stripe_webhook(
    request: Request,
    service: Annotated[WebhookService, Depends(get_service)],
    stripe_signature: Annotated[str | None, Header()] = None,
) -> WebhookResponse:
    """Receive and process a payment provider webhook.

    Args:
        request: The incoming request.
        service: Webhook service.
        stripe_signature: ``Stripe-Signature`` header.

    Returns:
        Acknowledgement, flagged as duplicate for redelivered events.

    Raises:
        HTTPException: 400 on missing/invalid signature, 500 if a handler fails.
    """
    correlation_id = getattr(request.state, "request_id", None)
    body = await request.body()

    if not stripe_signature:
        logger.warning("Missing stripe-signature header")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "MISSING_SIGNATURE",
                "message": "Missing stripe-signature header",
            },
        )

    if not service.verify_signature(body, stripe_signature):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "INVALID_SIGNATURE",
                "message": "Invalid signature",
            },
        )

    try:
        event = WebhookEvent.from_payload(body)
    except ValueError as e:
        logger.warning("Invalid webhook payload", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error_code": "INVALID_PAYLOAD",
                "message": "Invalid payload",
            },
        ) from e

    result = await service.process_event(event, correlation_id=correlation_id)

    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error_code": "WEBHOOK_PROCESSING_FAILED",
                "message": "Webhook processing failed",
                "details": {"event_id": event.event_id},
            },
        )

    return WebhookResponse(received=True, duplicate=True if result.duplicate else None)
