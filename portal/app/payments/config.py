"""Payments configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class PaymentsConfig:
    """Configuration for checkout creation and provider webhooks."""

    stripe_secret_key: Optional[str]
    webhook_secret: Optional[str]
    app_base_url: str
    currency: str
    provider_timeout_seconds: float
    notification_retry_after_seconds: int

    @property
    def cancel_url(self) -> str:
        return f"{self.app_base_url}/client/payments?canceled=true"

    def success_url(self, quote_id: str) -> str:
        # {CHECKOUT_SESSION_ID} is substituted by the provider on redirect.
        return f"{self.app_base_url}/client/payments/success?session_id={{CHECKOUT_SESSION_ID}}&quote_id={quote_id}"


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_payments_config(env: Optional[Mapping[str, str]] = None) -> PaymentsConfig:
    """Load :class:`PaymentsConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    app_base_url = env_mapping.get("APP_BASE_URL") or env_mapping.get("NEXTAUTH_URL") or "http://localhost:3000"
    currency = (env_mapping.get("PAYMENTS_CURRENCY") or "usd").strip().lower()
    if len(currency) != 3:
        raise ValueError(f"PAYMENTS_CURRENCY must be a 3-letter code, got {currency!r}")

    timeout = _to_float(env_mapping.get("STRIPE_TIMEOUT_SECONDS"), default=10.0)
    if timeout <= 0:
        raise ValueError("STRIPE_TIMEOUT_SECONDS must be positive")

    retry_after = max(0, _to_int(env_mapping.get("PAYMENT_NOTIFICATION_RETRY_AFTER"), default=300))

    return PaymentsConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        app_base_url=app_base_url.rstrip("/"),
        currency=currency,
        provider_timeout_seconds=timeout,
        notification_retry_after_seconds=retry_after,
    )


__all__ = ["PaymentsConfig", "load_payments_config"]
