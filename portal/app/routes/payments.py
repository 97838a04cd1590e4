"""API routes for quote checkout, payment verification, and provider webhooks."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ..payments import NotFound
from ..schemas.payments import (
    CreatePaymentIntentRequest,
    CreatePaymentIntentResponse,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WebhookAcknowledgement,
)
from ..services.payments import get_payment_service
from .dependencies import require_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/client/create-payment-intent", response_model=CreatePaymentIntentResponse)
def create_payment_intent(
    payload: CreatePaymentIntentRequest,
    *,
    current_user=Depends(require_client),
) -> CreatePaymentIntentResponse:
    service = get_payment_service()
    result = service.create_checkout(
        quote_id=payload.quote_id,
        requester_id=str(current_user.id),
        amount_cents=payload.amount,
        customer_email=getattr(current_user, "email", None),
    )
    return CreatePaymentIntentResponse.from_checkout(result)


@router.post("/client/verify-payment", response_model=VerifyPaymentResponse)
def verify_payment(
    payload: VerifyPaymentRequest,
    *,
    current_user=Depends(require_client),
) -> VerifyPaymentResponse:
    service = get_payment_service()
    confirmation = service.verify_payment(
        session_id=payload.session_id,
        quote_id=payload.quote_id,
        requester_id=str(current_user.id),
    )
    return VerifyPaymentResponse.from_confirmation(confirmation)


@router.post("/webhooks/stripe", response_model=WebhookAcknowledgement)
async def receive_stripe_webhook(request: Request):
    """Verify and apply a Stripe webhook delivery.

    The body is read raw because the signature covers the exact bytes sent.
    """

    raw_body = await request.body()
    signature = request.headers.get("stripe-signature")
    service = get_payment_service()
    try:
        result = await run_in_threadpool(service.handle_webhook, raw_body, signature)
    except NotFound as exc:
        # Stripe redelivers on 5xx until the local checkout record is visible.
        logger.error("Webhook references an unknown checkout session: %s", exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook handler failed"},
        )

    logger.info(
        "Processed webhook %s action=%s session=%s",
        result.event_type,
        result.action,
        result.session_id,
    )
    return WebhookAcknowledgement(received=True)
