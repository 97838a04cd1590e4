"""Application wiring for the quote and payment services."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..payments import (
    NotificationKind,
    NotificationRequest,
    PaymentAuditEvent,
    PaymentEventLogger,
    PaymentNotifier,
    PaymentService,
    QuoteService,
    load_payments_config,
)
from ..payments.provider import StripePaymentProvider
from ..payments.repository import PostgresPaymentRepository
from ..schemas.notifications import NotificationCreate, NotificationType
from . import notifications as notifications_service


logger = logging.getLogger("payments")

_NOTIFICATION_TYPES = {
    NotificationKind.PAYMENT_RECEIVED: NotificationType.PAYMENT_RECEIVED,
    NotificationKind.GENERAL: NotificationType.GENERAL,
}


class NotificationPaymentNotifier(PaymentNotifier):
    """Delivers payment notifications into the in-app notification table."""

    def deliver(self, request: NotificationRequest) -> None:
        created = notifications_service.create_notification(
            NotificationCreate(
                user_id=request.target_user_id,
                type=_NOTIFICATION_TYPES[request.kind],
                title=request.title,
                message=request.message,
                reference_id=request.quote_id,
            )
        )
        if created is None:
            logger.debug(
                "Notification already delivered user=%s quote=%s kind=%s",
                request.target_user_id,
                request.quote_id,
                request.kind.value,
            )


class LoggingPaymentEventLogger(PaymentEventLogger):
    """Forwards payment audit events to the ``payments`` logger."""

    def log(self, event: PaymentAuditEvent) -> None:
        logger.info(
            "Payment event %s quote=%s session=%s actor=%s metadata=%s",
            event.event_type.value,
            event.quote_id,
            event.session_id,
            event.actor_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_payment_service() -> PaymentService:
    config = load_payments_config()
    provider = StripePaymentProvider(config)
    if not provider.is_configured:
        logger.warning("STRIPE_SECRET_KEY is not set; checkout and verification will fail")
    return PaymentService(
        repository=PostgresPaymentRepository(),
        provider=provider,
        notifier=NotificationPaymentNotifier(),
        event_logger=LoggingPaymentEventLogger(),
        config=config,
    )


@lru_cache(maxsize=1)
def get_quote_service() -> QuoteService:
    return QuoteService(
        repository=PostgresPaymentRepository(),
        notifier=NotificationPaymentNotifier(),
        event_logger=LoggingPaymentEventLogger(),
        config=load_payments_config(),
    )


__all__ = [
    "LoggingPaymentEventLogger",
    "NotificationPaymentNotifier",
    "get_payment_service",
    "get_quote_service",
]
