"""Stripe integration for hosted checkout sessions and webhook verification."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

import stripe

from .config import PaymentsConfig
from .errors import InvalidSignature, ProviderError
from .models import ProviderSession

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_DESCRIPTION = "Legal consultation and services"


def _optional_id(value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, Mapping):
        return _optional_id(value.get("id"))
    return str(value)


def _from_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def session_from_stripe(session: Mapping[str, Any]) -> ProviderSession:
    """Normalize a Stripe checkout session object."""

    metadata = session.get("metadata") or {}
    return ProviderSession(
        session_id=str(session["id"]),
        url=session.get("url"),
        status=session.get("status"),
        payment_status=session.get("payment_status"),
        payment_intent_id=_optional_id(session.get("payment_intent")),
        metadata={str(k): str(v) for k, v in dict(metadata).items()},
        expires_at=_from_timestamp(session.get("expires_at")),
    )


class StripePaymentProvider:
    """Payment provider backed by Stripe Checkout.

    The Stripe client is built from the passed-in :class:`PaymentsConfig`
    with a bounded request timeout and SDK retries disabled; retries belong
    to the caller (the client UI or Stripe's own webhook redelivery).
    """

    def __init__(self, config: PaymentsConfig, *, client: Optional[Any] = None) -> None:
        self._config = config
        if client is None and config.stripe_secret_key:
            client = stripe.StripeClient(
                config.stripe_secret_key,
                http_client=stripe.RequestsClient(timeout=config.provider_timeout_seconds),
                max_network_retries=0,
            )
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def _require_client(self) -> Any:
        if self._client is None:
            raise ProviderError("Stripe is not configured. Set STRIPE_SECRET_KEY.")
        return self._client

    def create_checkout_session(
        self,
        *,
        amount_cents: int,
        currency: str,
        product_name: str,
        description: Optional[str],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ProviderSession:
        client = self._require_client()
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": product_name,
                            "description": description or DEFAULT_PRODUCT_DESCRIPTION,
                        },
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
        }
        if customer_email:
            params["customer_email"] = customer_email
        options = {"idempotency_key": idempotency_key} if idempotency_key else None

        logger.info(
            "Creating Stripe checkout session quote=%s amount=%s %s",
            metadata.get("quoteId"),
            amount_cents,
            currency,
        )
        try:
            session = client.checkout.sessions.create(params=params, options=options)
        except stripe.StripeError as exc:
            logger.warning("Stripe rejected checkout session creation: %s", exc)
            raise ProviderError("Unable to create checkout session") from exc
        return session_from_stripe(session)

    def retrieve_session(self, session_id: str) -> ProviderSession:
        client = self._require_client()
        try:
            session = client.checkout.sessions.retrieve(session_id)
        except stripe.StripeError as exc:
            logger.warning("Stripe session lookup failed session=%s: %s", session_id, exc)
            raise ProviderError("Unable to confirm payment status with the provider") from exc
        return session_from_stripe(session)

    def expire_session(self, session_id: str) -> None:
        client = self._require_client()
        try:
            client.checkout.sessions.expire(session_id)
        except stripe.StripeError as exc:
            raise ProviderError("Unable to expire checkout session") from exc

    def construct_event(self, payload: bytes, signature: Optional[str], secret: Optional[str]) -> Mapping[str, Any]:
        """Verify a webhook signature and return the decoded event."""

        if not secret:
            raise ProviderError("STRIPE_WEBHOOK_SECRET not configured")
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as exc:
            raise InvalidSignature("Malformed webhook payload") from exc
        try:
            stripe.WebhookSignature.verify_header(body, signature, secret, stripe.Webhook.DEFAULT_TOLERANCE)
        except stripe.SignatureVerificationError as exc:
            raise InvalidSignature("Invalid signature") from exc
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise InvalidSignature("Malformed webhook payload") from exc
        if not isinstance(event, dict):
            raise InvalidSignature("Malformed webhook payload")
        return event


__all__ = ["StripePaymentProvider", "session_from_stripe"]
