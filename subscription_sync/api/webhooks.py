"""Billing provider webhook endpoint.

Implements:
- POST /api/stripe/webhook - Receive a signed provider event
- GET /api/stripe/webhook - Readiness probe for the provider dashboard
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from subscription_sync.api.deps import provide_webhook_receiver
from subscription_sync.logging_config import get_logger
from subscription_sync.models import WebhookAck
from subscription_sync.services.webhook_receiver import WebhookReceiver

logger = get_logger(__name__)
router = APIRouter(tags=["Webhooks"], prefix="/api/stripe")


@router.post("/webhook", response_model=WebhookAck, summary="Receive provider event")
async def receive_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    receiver: WebhookReceiver = Depends(provide_webhook_receiver),
) -> WebhookAck:
    """Verify and apply one provider event.

    The raw body is passed through untouched; signature verification needs
    the exact bytes the provider signed.

    Returns:
        {"received": true} once the event is applied, ignored or recognised as a duplicate

    Raises:
        400: Signature invalid
        5xx: Processing failed; the provider will redeliver
    """
    payload = await request.body()
    return await run_in_threadpool(receiver.handle, payload, stripe_signature)


@router.get("/webhook", summary="Webhook readiness")
def webhook_ready() -> dict[str, str]:
    return {"message": "Stripe webhook endpoint is ready"}
