"""API schemas for checkout and payment verification endpoints."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import CheckoutResult, PaymentConfirmation


class CreatePaymentIntentRequest(BaseModel):
    quote_id: str = Field(alias="quoteId", min_length=1)
    amount: Optional[int] = Field(default=None, ge=0, description="Expected total in minor units")

    model_config = ConfigDict(populate_by_name=True)


class CreatePaymentIntentResponse(BaseModel):
    checkout_url: str = Field(alias="checkoutUrl")
    session_id: str = Field(alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, result: CheckoutResult) -> "CreatePaymentIntentResponse":
        return cls(checkout_url=result.checkout_url, session_id=result.session_id)


class VerifyPaymentRequest(BaseModel):
    session_id: str = Field(alias="sessionId", min_length=1)
    quote_id: str = Field(alias="quoteId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class VerifyPaymentResponse(BaseModel):
    case_title: Optional[str] = Field(default=None, alias="caseTitle")
    amount: Decimal
    paid_at: datetime = Field(alias="paidAt")
    transaction_id: Optional[str] = Field(default=None, alias="transactionId")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_confirmation(cls, confirmation: PaymentConfirmation) -> "VerifyPaymentResponse":
        return cls(
            case_title=confirmation.case_title,
            amount=confirmation.amount,
            paid_at=confirmation.paid_at,
            transaction_id=confirmation.transaction_id,
        )


class WebhookAcknowledgement(BaseModel):
    received: bool = True
