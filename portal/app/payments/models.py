"""Domain models for quotes, checkout intents, and payment reconciliation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_CENTS = Decimal("0.01")


def quantize_amount(value: Decimal) -> Decimal:
    """Round a monetary amount to two decimal places."""
    return Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)


def to_minor_units(value: Decimal) -> int:
    """Convert a two-decimal amount into integer minor units (cents)."""
    return int((quantize_amount(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def compute_total(base_price: Decimal, hourly_rate: Decimal, estimated_hours: Decimal) -> Decimal:
    return quantize_amount(Decimal(base_price) + Decimal(hourly_rate) * Decimal(estimated_hours))


class QuoteStatus(str, Enum):
    """Lifecycle of a lawyer's pricing quote."""

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    PAID = "paid"
    EXPIRED = "expired"
    CANCELED = "canceled"


class PaymentIntentStatus(str, Enum):
    """Lifecycle status for a single checkout attempt."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELED = "canceled"


class NotificationKind(str, Enum):
    """Notification categories handed to the notification sink."""

    PAYMENT_RECEIVED = "payment_received"
    GENERAL = "general"


@dataclass(frozen=True)
class StatusPredicate:
    """Precondition on the current status of a row for a conditional update.

    ``include`` lists the statuses the row must currently have; ``exclude``
    lists statuses it must not have. Exactly one of the two is populated.
    """

    include: FrozenSet[str] = frozenset()
    exclude: FrozenSet[str] = frozenset()

    @classmethod
    def only(cls, *statuses: Enum) -> "StatusPredicate":
        return cls(include=frozenset(status.value for status in statuses))

    @classmethod
    def excluding(cls, *statuses: Enum) -> "StatusPredicate":
        return cls(exclude=frozenset(status.value for status in statuses))

    def __post_init__(self) -> None:
        if bool(self.include) == bool(self.exclude):
            raise ValueError("StatusPredicate needs either include or exclude statuses")

    def matches(self, status: Enum | str) -> bool:
        value = status.value if isinstance(status, Enum) else status
        if self.include:
            return value in self.include
        return value not in self.exclude

    def sql(self, column: str = "status") -> tuple[str, list[str]]:
        """Render the predicate as a SQL fragment and its parameters."""
        if self.include:
            return f"{column} = ANY(%s)", [sorted(self.include)]
        return f"NOT ({column} = ANY(%s))", [sorted(self.exclude)]


class CaseParties(BaseModel):
    """Read-only projection of a case owned by the case management module."""

    case_id: str
    title: str
    lawyer_id: str
    client_id: str

    model_config = ConfigDict(frozen=True)


class PricingQuote(BaseModel):
    """A lawyer-authored price proposal for a case."""

    quote_id: str
    case_id: str
    lawyer_id: str
    client_id: str
    case_title: Optional[str] = None
    base_price: Decimal = Field(ge=0)
    hourly_rate: Decimal = Field(ge=0)
    estimated_hours: Decimal = Field(ge=0)
    total_estimate: Decimal = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    description: Optional[str] = None
    status: QuoteStatus = QuoteStatus.DRAFT
    sent_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    payment_notified_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def is_paid(self) -> bool:
        return self.status == QuoteStatus.PAID


class PaymentIntentRecord(BaseModel):
    """Local record of one provider checkout session for a quote."""

    intent_id: str
    session_id: str = Field(description="Provider checkout session identifier")
    quote_id: str
    client_id: str
    amount: Decimal = Field(ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: PaymentIntentStatus = PaymentIntentStatus.PENDING
    checkout_url: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    paid_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class ProviderSession(BaseModel):
    """Provider-side view of a hosted checkout session."""

    session_id: str
    url: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_intent_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


class CheckoutResult(BaseModel):
    """Return value of the checkout creation flow."""

    checkout_url: str
    session_id: str
    intent: PaymentIntentRecord

    model_config = ConfigDict(frozen=True)


class PaymentConfirmation(BaseModel):
    """Confirmation returned to the client after a verified payment."""

    case_title: Optional[str] = None
    amount: Decimal
    paid_at: datetime
    transaction_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ReconciliationOutcome(BaseModel):
    """Result of one attempt at the paid transition."""

    applied: bool
    intent: PaymentIntentRecord
    quote: Optional[PricingQuote] = None

    model_config = ConfigDict(frozen=True)


class WebhookResult(BaseModel):
    """Summary of how a webhook delivery was handled."""

    event_type: str
    action: str
    session_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class NotificationRequest(BaseModel):
    """Payload handed to the notification sink."""

    target_user_id: str
    kind: NotificationKind
    quote_id: str
    amount: Optional[Decimal] = None
    title: str
    message: str

    model_config = ConfigDict(frozen=True)


class PaymentAuditEventType(str, Enum):
    """Audit event categories emitted by the payments subsystem."""

    QUOTE_CREATED = "quote_created"
    QUOTE_SENT = "quote_sent"
    QUOTE_ACCEPTED = "quote_accepted"
    CHECKOUT_CREATED = "checkout_created"
    CHECKOUT_EXPIRED = "checkout_expired"
    PAYMENT_RECONCILED = "payment_reconciled"
    RECONCILIATION_SKIPPED = "reconciliation_skipped"
    NOTIFICATIONS_REDELIVERED = "notifications_redelivered"
    WEBHOOK_IGNORED = "webhook_ignored"


class PaymentAuditEvent(BaseModel):
    """Structured audit event for the payments trail."""

    event_type: PaymentAuditEventType
    quote_id: Optional[str] = None
    session_id: Optional[str] = None
    actor_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)
