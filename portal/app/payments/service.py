"""Checkout creation and payment reconciliation.

Two entry points confirm a payment: the client's synchronous verification
after the provider redirect, and the provider's asynchronous webhook. Both
funnel into :meth:`PaymentService.reconcile`, which moves the intent and the
quote with conditional updates so that however many times, and in whatever
order, the entry points fire, the quote is marked paid once and the
payment notifications go out once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence
from uuid import uuid4

from .config import PaymentsConfig
from .errors import Forbidden, InvalidState, NotFound, PaymentError, PaymentNotCompleted
from .events import (
    CheckoutSessionAsyncPaymentSucceeded,
    CheckoutSessionCompleted,
    CheckoutSessionExpired,
    parse_provider_event,
)
from .models import (
    CaseParties,
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
    to_minor_units,
)

logger = logging.getLogger(__name__)


class PaymentProvider(Protocol):
    """External payment processor integration."""

    def create_checkout_session(
        self,
        *,
        amount_cents: int,
        currency: str,
        product_name: str,
        description: Optional[str],
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> ProviderSession:
        """Create a hosted checkout session."""

    def retrieve_session(self, session_id: str) -> ProviderSession:
        """Fetch the authoritative state of a checkout session."""

    def expire_session(self, session_id: str) -> None:
        """Expire a checkout session so it can no longer be paid."""

    def construct_event(self, payload: bytes, signature: Optional[str], secret: Optional[str]) -> Mapping[str, Any]:
        """Verify a webhook signature and decode the event."""


class PaymentNotifier(Protocol):
    """Notification sink; delivery must be idempotent per target user and quote."""

    def deliver(self, request: NotificationRequest) -> None:
        ...


class PaymentEventLogger(Protocol):
    """Captures structured payment audit events."""

    def log(self, event: PaymentAuditEvent) -> None:
        ...


class PaymentRepository(Protocol):
    """Persistence operations required by the quote and payment services."""

    def get_case(self, case_id: str) -> Optional[CaseParties]:
        ...

    def create_quote(self, quote: PricingQuote) -> PricingQuote:
        ...

    def get_quote(self, quote_id: str) -> Optional[PricingQuote]:
        ...

    def list_quotes_for_client(self, client_id: str, *, statuses: Iterable[QuoteStatus]) -> Sequence[PricingQuote]:
        ...

    def list_quotes_for_lawyer(self, lawyer_id: str) -> Sequence[PricingQuote]:
        ...

    def update_quote_if(
        self,
        quote_id: str,
        *,
        predicate: StatusPredicate,
        changes: Mapping[str, Any],
    ) -> Optional[PricingQuote]:
        ...

    def mark_payment_notified(self, quote_id: str, notified_at: datetime) -> bool:
        ...

    def create_intent(self, intent: PaymentIntentRecord) -> PaymentIntentRecord:
        ...

    def get_intent_by_session(self, session_id: str) -> Optional[PaymentIntentRecord]:
        ...

    def update_intent_if(
        self,
        session_id: str,
        *,
        predicate: StatusPredicate,
        changes: Mapping[str, Any],
    ) -> Optional[PaymentIntentRecord]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_amount(quote: PricingQuote) -> str:
    if quote.currency == "USD":
        return f"${quote.total_estimate:,.2f}"
    return f"{quote.total_estimate:,.2f} {quote.currency}"


@dataclass(slots=True)
class PaymentService:
    """Session bridge and reconciliation engine for quote payments."""

    repository: PaymentRepository
    provider: PaymentProvider
    notifier: PaymentNotifier
    event_logger: PaymentEventLogger
    config: PaymentsConfig
    clock: Callable[[], datetime] = _utcnow

    def create_checkout(
        self,
        *,
        quote_id: str,
        requester_id: str,
        amount_cents: Optional[int] = None,
        customer_email: Optional[str] = None,
    ) -> CheckoutResult:
        """Open a provider checkout session for an accepted quote.

        The provider session is created first and the local intent is only
        written once it exists, so a provider failure leaves nothing behind.
        The quote's status is not touched here.
        """

        quote = self.repository.get_quote(quote_id)
        if quote is None or quote.client_id != requester_id:
            raise NotFound("Quote not found or not accepted")
        if quote.status != QuoteStatus.ACCEPTED:
            raise InvalidState(
                "Quote must be accepted before checkout",
                detail={"status": quote.status.value},
            )

        total_cents = to_minor_units(quote.total_estimate)
        if total_cents <= 0:
            raise InvalidState("Quote total must be greater than zero")
        if amount_cents is not None and amount_cents != total_cents:
            raise InvalidState(
                "Checkout amount does not match the quote total",
                detail={"expectedAmount": total_cents},
            )

        intent_id = f"pi_{uuid4().hex}"
        session = self.provider.create_checkout_session(
            amount_cents=total_cents,
            currency=quote.currency,
            product_name=f"Legal Services - {quote.case_title or quote.case_id}",
            description=quote.description,
            metadata={
                "quoteId": quote.quote_id,
                "clientId": quote.client_id,
                "lawyerId": quote.lawyer_id,
            },
            success_url=self.config.success_url(quote.quote_id),
            cancel_url=self.config.cancel_url,
            customer_email=customer_email,
            idempotency_key=intent_id,
        )

        now = self.clock()
        intent = PaymentIntentRecord(
            intent_id=intent_id,
            session_id=session.session_id,
            quote_id=quote.quote_id,
            client_id=quote.client_id,
            amount=quote.total_estimate,
            currency=quote.currency,
            status=PaymentIntentStatus.PENDING,
            checkout_url=session.url,
            created_at=now,
            updated_at=now,
        )
        try:
            stored = self.repository.create_intent(intent)
        except Exception:
            self._discard_remote_session(session.session_id)
            raise

        self.event_logger.log(
            PaymentAuditEvent(
                event_type=PaymentAuditEventType.CHECKOUT_CREATED,
                quote_id=quote.quote_id,
                session_id=stored.session_id,
                actor_id=requester_id,
                metadata={"amount": str(stored.amount), "currency": stored.currency},
            )
        )
        return CheckoutResult(
            checkout_url=stored.checkout_url or "",
            session_id=stored.session_id,
            intent=stored,
        )

    def verify_payment(
        self,
        *,
        session_id: str,
        quote_id: str,
        requester_id: str,
    ) -> PaymentConfirmation:
        """Confirm a payment on behalf of the client returning from checkout."""

        intent = self.repository.get_intent_by_session(session_id)
        if intent is None:
            raise NotFound("Checkout session not found")
        if intent.client_id != requester_id or intent.quote_id != quote_id:
            raise Forbidden("Checkout session does not belong to this quote")

        provider_session = self.provider.retrieve_session(session_id)
        if not provider_session.is_paid:
            logger.info(
                "Verification found unpaid session %s status=%s",
                session_id,
                provider_session.payment_status,
            )
            raise PaymentNotCompleted(
                "Payment not completed",
                detail={"paymentStatus": provider_session.payment_status or "unknown"},
            )

        outcome = self.reconcile(session_id, source="verify")
        quote = outcome.quote
        if outcome.intent.status != PaymentIntentStatus.COMPLETED or quote is None or not quote.is_paid:
            raise InvalidState("Checkout session can no longer be completed")

        return PaymentConfirmation(
            case_title=quote.case_title,
            amount=quote.total_estimate,
            paid_at=quote.paid_at,
            transaction_id=provider_session.payment_intent_id or session_id,
        )

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        """Verify and apply a provider webhook delivery."""

        verified = self.provider.construct_event(raw_body, signature, self.config.webhook_secret)
        try:
            event = parse_provider_event(verified)
        except ValueError as exc:
            raise InvalidState(str(exc)) from exc

        if isinstance(event, (CheckoutSessionCompleted, CheckoutSessionAsyncPaymentSucceeded)):
            return self._handle_checkout_paid(event)
        if isinstance(event, CheckoutSessionExpired):
            return self._handle_checkout_expired(event)

        logger.info("Unhandled event type: %s", event.event_type)
        self.event_logger.log(
            PaymentAuditEvent(
                event_type=PaymentAuditEventType.WEBHOOK_IGNORED,
                metadata={"event_type": event.event_type, "event_id": event.event_id},
            )
        )
        return WebhookResult(event_type=event.event_type, action="ignored")

    def reconcile(self, session_id: str, *, source: str = "manual") -> ReconciliationOutcome:
        """Apply the paid transition for ``session_id`` at most once.

        Intent first (PENDING -> COMPLETED), then quote (any -> PAID unless
        already PAID). Only the caller whose quote update matched a row fans
        out notifications. A completed intent whose quote is still unpaid is
        repaired by the next arrival.
        """

        now = self.clock()
        intent = self.repository.update_intent_if(
            session_id,
            predicate=StatusPredicate.only(PaymentIntentStatus.PENDING),
            changes={"status": PaymentIntentStatus.COMPLETED, "paid_at": now},
        )
        if intent is None:
            intent = self.repository.get_intent_by_session(session_id)
            if intent is None:
                raise NotFound("Checkout session not found")
            if intent.status != PaymentIntentStatus.COMPLETED:
                logger.warning(
                    "Payment for session %s not recorded; intent is %s",
                    session_id,
                    intent.status.value,
                )
                self.event_logger.log(
                    PaymentAuditEvent(
                        event_type=PaymentAuditEventType.RECONCILIATION_SKIPPED,
                        quote_id=intent.quote_id,
                        session_id=session_id,
                        metadata={"intent_status": intent.status.value, "source": source},
                    )
                )
                return ReconciliationOutcome(
                    applied=False,
                    intent=intent,
                    quote=self.repository.get_quote(intent.quote_id),
                )

        quote = self.repository.update_quote_if(
            intent.quote_id,
            predicate=StatusPredicate.excluding(QuoteStatus.PAID),
            changes={"status": QuoteStatus.PAID, "paid_at": intent.paid_at or now},
        )
        if quote is not None:
            logger.info(
                "Payment completed for quote %s session=%s source=%s",
                quote.quote_id,
                session_id,
                source,
            )
            self.event_logger.log(
                PaymentAuditEvent(
                    event_type=PaymentAuditEventType.PAYMENT_RECONCILED,
                    quote_id=quote.quote_id,
                    session_id=session_id,
                    actor_id=quote.client_id,
                    metadata={"amount": str(quote.total_estimate), "source": source},
                )
            )
            self._fan_out(quote)
            return ReconciliationOutcome(applied=True, intent=intent, quote=quote)

        quote = self.repository.get_quote(intent.quote_id)
        if quote is not None and self._notifications_overdue(quote):
            logger.warning("Redelivering payment notifications for quote %s", quote.quote_id)
            self.event_logger.log(
                PaymentAuditEvent(
                    event_type=PaymentAuditEventType.NOTIFICATIONS_REDELIVERED,
                    quote_id=quote.quote_id,
                    session_id=session_id,
                    metadata={"source": source},
                )
            )
            self._fan_out(quote)
        return ReconciliationOutcome(applied=False, intent=intent, quote=quote)

    def expire_checkout(self, session_id: str) -> Optional[PaymentIntentRecord]:
        """Cancel a pending intent; the quote is left as it is."""

        return self.repository.update_intent_if(
            session_id,
            predicate=StatusPredicate.only(PaymentIntentStatus.PENDING),
            changes={"status": PaymentIntentStatus.CANCELED, "canceled_at": self.clock()},
        )

    def _handle_checkout_paid(
        self,
        event: CheckoutSessionCompleted | CheckoutSessionAsyncPaymentSucceeded,
    ) -> WebhookResult:
        if isinstance(event, CheckoutSessionCompleted) and event.reports_unpaid:
            # Delayed payment methods confirm later via async_payment_succeeded.
            logger.info("Deferring completed but unpaid session %s", event.session_id)
            return WebhookResult(event_type=event.kind, action="deferred", session_id=event.session_id)

        outcome = self.reconcile(event.session_id, source="webhook")
        if event.quote_id and event.quote_id != outcome.intent.quote_id:
            logger.warning(
                "Webhook metadata quote %s differs from recorded quote %s for session %s",
                event.quote_id,
                outcome.intent.quote_id,
                event.session_id,
            )
        action = "reconciled" if outcome.applied else "duplicate"
        return WebhookResult(event_type=event.kind, action=action, session_id=event.session_id)

    def _handle_checkout_expired(self, event: CheckoutSessionExpired) -> WebhookResult:
        intent = self.expire_checkout(event.session_id)
        if intent is None:
            if self.repository.get_intent_by_session(event.session_id) is None:
                logger.warning("Expiry received for unknown checkout session %s", event.session_id)
                action = "unknown_session"
            else:
                action = "noop"
            return WebhookResult(event_type=event.kind, action=action, session_id=event.session_id)

        logger.info("Payment session expired: %s", event.session_id)
        self.event_logger.log(
            PaymentAuditEvent(
                event_type=PaymentAuditEventType.CHECKOUT_EXPIRED,
                quote_id=intent.quote_id,
                session_id=intent.session_id,
                actor_id=intent.client_id,
            )
        )
        return WebhookResult(event_type=event.kind, action="canceled", session_id=event.session_id)

    def _notifications_overdue(self, quote: PricingQuote) -> bool:
        if not quote.is_paid or quote.paid_at is None or quote.payment_notified_at is not None:
            return False
        elapsed = (self.clock() - quote.paid_at).total_seconds()
        return elapsed >= self.config.notification_retry_after_seconds

    def _fan_out(self, quote: PricingQuote) -> None:
        amount = format_amount(quote)
        case_title = quote.case_title or "your case"
        requests = (
            NotificationRequest(
                target_user_id=quote.lawyer_id,
                kind=NotificationKind.PAYMENT_RECEIVED,
                quote_id=quote.quote_id,
                amount=quote.total_estimate,
                title="Payment Received",
                message=f'Payment of {amount} received for case "{case_title}"',
            ),
            NotificationRequest(
                target_user_id=quote.client_id,
                kind=NotificationKind.PAYMENT_RECEIVED,
                quote_id=quote.quote_id,
                amount=quote.total_estimate,
                title="Payment Confirmed",
                message=f'Your payment of {amount} for case "{case_title}" has been confirmed',
            ),
        )
        for request in requests:
            self.notifier.deliver(request)
        self.repository.mark_payment_notified(quote.quote_id, self.clock())

    def _discard_remote_session(self, session_id: str) -> None:
        try:
            self.provider.expire_session(session_id)
        except PaymentError:
            logger.exception("Failed to expire orphaned checkout session %s", session_id)


__all__ = [
    "PaymentEventLogger",
    "PaymentNotifier",
    "PaymentProvider",
    "PaymentRepository",
    "PaymentService",
    "format_amount",
]
