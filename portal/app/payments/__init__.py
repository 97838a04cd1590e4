"""Payments domain package: quotes, checkout sessions, and reconciliation."""

from .config import PaymentsConfig, load_payments_config
from .errors import (
    Forbidden,
    InvalidSignature,
    InvalidState,
    NotFound,
    PaymentError,
    PaymentNotCompleted,
    ProviderError,
    StorageError,
    Unauthorized,
)
from .models import (
    CheckoutResult,
    NotificationKind,
    NotificationRequest,
    PaymentAuditEvent,
    PaymentAuditEventType,
    PaymentConfirmation,
    PaymentIntentRecord,
    PaymentIntentStatus,
    PricingQuote,
    ProviderSession,
    QuoteStatus,
    ReconciliationOutcome,
    StatusPredicate,
    WebhookResult,
)
from .quotes import QuoteService
from .service import (
    PaymentEventLogger,
    PaymentNotifier,
    PaymentProvider,
    PaymentRepository,
    PaymentService,
)

__all__ = [
    "CheckoutResult",
    "Forbidden",
    "InvalidSignature",
    "InvalidState",
    "NotFound",
    "NotificationKind",
    "NotificationRequest",
    "PaymentAuditEvent",
    "PaymentAuditEventType",
    "PaymentConfirmation",
    "PaymentError",
    "PaymentEventLogger",
    "PaymentIntentRecord",
    "PaymentIntentStatus",
    "PaymentNotCompleted",
    "PaymentNotifier",
    "PaymentProvider",
    "PaymentRepository",
    "PaymentService",
    "PaymentsConfig",
    "PricingQuote",
    "ProviderError",
    "ProviderSession",
    "QuoteService",
    "QuoteStatus",
    "ReconciliationOutcome",
    "StatusPredicate",
    "StorageError",
    "Unauthorized",
    "WebhookResult",
    "load_payments_config",
]
