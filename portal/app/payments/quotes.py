"""Lawyer quote authoring and client acceptance."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Sequence
from uuid import uuid4

from .config import PaymentsConfig
from .errors import InvalidState, NotFound
from .models import (
    NotificationKind,
    NotificationRequest,
    PaymentAuditEvent,
    PaymentAuditEventType,
    PricingQuote,
    QuoteStatus,
    StatusPredicate,
    compute_total,
    quantize_amount,
)
from .service import PaymentEventLogger, PaymentNotifier, PaymentRepository, format_amount

logger = logging.getLogger(__name__)

CLIENT_VISIBLE_STATUSES = (QuoteStatus.SENT, QuoteStatus.ACCEPTED, QuoteStatus.PAID)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _non_negative(name: str, value: Decimal) -> Decimal:
    amount = Decimal(value)
    if amount < 0:
        raise InvalidState(f"{name} must not be negative")
    return quantize_amount(amount)


@dataclass(slots=True)
class QuoteService:
    """Moves quotes through DRAFT -> SENT -> ACCEPTED.

    The PAID transition belongs to :class:`~.service.PaymentService` alone.
    """

    repository: PaymentRepository
    notifier: PaymentNotifier
    event_logger: PaymentEventLogger
    config: PaymentsConfig
    clock: Callable[[], datetime] = _utcnow

    def create_quote(
        self,
        *,
        lawyer_id: str,
        case_id: str,
        base_price: Decimal,
        hourly_rate: Decimal,
        estimated_hours: Decimal,
        description: Optional[str] = None,
    ) -> PricingQuote:
        case = self.repository.get_case(case_id)
        if case is None or case.lawyer_id != lawyer_id:
            raise NotFound("Case not found")

        base = _non_negative("basePrice", base_price)
        rate = _non_negative("hourlyRate", hourly_rate)
        hours = _non_negative("estimatedHours", estimated_hours)
        now = self.clock()
        quote = PricingQuote(
            quote_id=f"quote_{uuid4().hex}",
            case_id=case.case_id,
            lawyer_id=case.lawyer_id,
            client_id=case.client_id,
            case_title=case.title,
            base_price=base,
            hourly_rate=rate,
            estimated_hours=hours,
            total_estimate=compute_total(base, rate, hours),
            currency=self.config.currency,
            description=(description or "").strip() or None,
            status=QuoteStatus.DRAFT,
            created_at=now,
            updated_at=now,
        )
        stored = self.repository.create_quote(quote)
        self.event_logger.log(
            PaymentAuditEvent(
                event_type=PaymentAuditEventType.QUOTE_CREATED,
                quote_id=stored.quote_id,
                actor_id=lawyer_id,
                metadata={"case_id": stored.case_id, "total": str(stored.total_estimate)},
            )
        )
        return stored

    def send_quote(self, *, quote_id: str, lawyer_id: str) -> PricingQuote:
        quote = self.repository.get_quote(quote_id)
        if quote is None or quote.lawyer_id != lawyer_id:
            raise NotFound("Quote not found")

        updated = self.repository.update_quote_if(
            quote_id,
            predicate=StatusPredicate.only(QuoteStatus.DRAFT),
            changes={"status": QuoteStatus.SENT, "sent_at": self.clock()},
        )
        if updated is None:
            raise InvalidState("Only draft quotes can be sent", detail={"status": self._status_of(quote_id)})

        self.notifier.deliver(
            NotificationRequest(
                target_user_id=updated.client_id,
                kind=NotificationKind.GENERAL,
                quote_id=updated.quote_id,
                amount=updated.total_estimate,
                title="New Price Quote",
                message=(
                    f'You received a quote of {format_amount(updated)} for case '
                    f'"{updated.case_title or updated.case_id}"'
                ),
            )
        )
        self.event_logger.log(
            PaymentAuditEvent(
                event_type=PaymentAuditEventType.QUOTE_SENT,
                quote_id=updated.quote_id,
                actor_id=lawyer_id,
            )
        )
        return updated

    def accept_quote(self, *, quote_id: str, client_id: str) -> PricingQuote:
        quote = self.repository.get_quote(quote_id)
        if quote is None or quote.client_id != client_id:
            raise NotFound("Quote not found")

        updated = self.repository.update_quote_if(
            quote_id,
            predicate=StatusPredicate.only(QuoteStatus.SENT),
            changes={"status": QuoteStatus.ACCEPTED, "accepted_at": self.clock()},
        )
        if updated is None:
            raise InvalidState(
                "Quote cannot be accepted in its current state",
                detail={"status": self._status_of(quote_id)},
            )

        logger.info("Quote %s accepted by client %s", quote_id, client_id)
        self.notifier.deliver(
            NotificationRequest(
                target_user_id=updated.lawyer_id,
                kind=NotificationKind.GENERAL,
                quote_id=updated.quote_id,
                amount=updated.total_estimate,
                title="Quote Accepted",
                message=f'Your quote for case "{updated.case_title or updated.case_id}" was accepted',
            )
        )
        self.event_logger.log(
            PaymentAuditEvent(
                event_type=PaymentAuditEventType.QUOTE_ACCEPTED,
                quote_id=updated.quote_id,
                actor_id=client_id,
            )
        )
        return updated

    def list_client_quotes(self, client_id: str) -> Sequence[PricingQuote]:
        return self.repository.list_quotes_for_client(client_id, statuses=CLIENT_VISIBLE_STATUSES)

    def list_lawyer_quotes(self, lawyer_id: str) -> Sequence[PricingQuote]:
        return self.repository.list_quotes_for_lawyer(lawyer_id)

    def _status_of(self, quote_id: str) -> str:
        current = self.repository.get_quote(quote_id)
        return current.status.value if current else "missing"


__all__ = ["CLIENT_VISIBLE_STATUSES", "QuoteService"]
