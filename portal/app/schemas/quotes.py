"""API schemas for lawyer case pricing and client quote endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import PricingQuote, QuoteStatus


class CreateQuoteRequest(BaseModel):
    case_id: str = Field(alias="caseId", min_length=1)
    base_price: Decimal = Field(alias="basePrice", ge=0)
    hourly_rate: Decimal = Field(default=Decimal("0"), alias="hourlyRate", ge=0)
    estimated_hours: Decimal = Field(default=Decimal("0"), alias="estimatedHours", ge=0)
    description: Optional[str] = Field(default=None, max_length=2000)

    model_config = ConfigDict(populate_by_name=True)


class QuoteOut(BaseModel):
    id: str
    case_id: str = Field(alias="caseId")
    case_title: Optional[str] = Field(default=None, alias="caseTitle")
    lawyer_id: str = Field(alias="lawyerId")
    client_id: str = Field(alias="clientId")
    base_price: Decimal = Field(alias="basePrice")
    hourly_rate: Decimal = Field(alias="hourlyRate")
    estimated_hours: Decimal = Field(alias="estimatedHours")
    total_estimate: Decimal = Field(alias="totalEstimate")
    currency: str
    description: Optional[str] = None
    status: QuoteStatus
    sent_at: Optional[datetime] = Field(default=None, alias="sentAt")
    accepted_at: Optional[datetime] = Field(default=None, alias="acceptedAt")
    paid_at: Optional[datetime] = Field(default=None, alias="paidAt")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_quote(cls, quote: PricingQuote) -> "QuoteOut":
        return cls(
            id=quote.quote_id,
            case_id=quote.case_id,
            case_title=quote.case_title,
            lawyer_id=quote.lawyer_id,
            client_id=quote.client_id,
            base_price=quote.base_price,
            hourly_rate=quote.hourly_rate,
            estimated_hours=quote.estimated_hours,
            total_estimate=quote.total_estimate,
            currency=quote.currency,
            description=quote.description,
            status=quote.status,
            sent_at=quote.sent_at,
            accepted_at=quote.accepted_at,
            paid_at=quote.paid_at,
            created_at=quote.created_at,
        )


class QuoteResponse(BaseModel):
    quote: QuoteOut


class QuoteListResponse(BaseModel):
    quotes: List[QuoteOut]
