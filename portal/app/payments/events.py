"""Normalized provider webhook events.

Only the checkout session events that move payment state are modelled; every
other event type is carried as :class:`UnhandledEvent` so callers acknowledge
it without touching state.
"""
from __future__ import annotations

from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
CHECKOUT_SESSION_EXPIRED = "checkout.session.expired"


class _CheckoutPaymentEvent(BaseModel):
    event_id: str
    session_id: str
    payment_status: Optional[str] = None
    payment_intent_id: Optional[str] = None
    quote_id: Optional[str] = None
    client_id: Optional[str] = None
    lawyer_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @property
    def reports_unpaid(self) -> bool:
        return self.payment_status == "unpaid"


class CheckoutSessionCompleted(_CheckoutPaymentEvent):
    kind: Literal["checkout.session.completed"] = CHECKOUT_SESSION_COMPLETED


class CheckoutSessionAsyncPaymentSucceeded(_CheckoutPaymentEvent):
    kind: Literal["checkout.session.async_payment_succeeded"] = CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED


class CheckoutSessionExpired(BaseModel):
    kind: Literal["checkout.session.expired"] = CHECKOUT_SESSION_EXPIRED
    event_id: str
    session_id: str

    model_config = ConfigDict(frozen=True)


class UnhandledEvent(BaseModel):
    kind: Literal["unhandled"] = "unhandled"
    event_id: str
    event_type: str

    model_config = ConfigDict(frozen=True)


ProviderEvent = Annotated[
    Union[
        CheckoutSessionCompleted,
        CheckoutSessionAsyncPaymentSucceeded,
        CheckoutSessionExpired,
        UnhandledEvent,
    ],
    Field(discriminator="kind"),
]

_provider_event_adapter: TypeAdapter[Any] = TypeAdapter(ProviderEvent)

_SESSION_EVENT_TYPES = {
    CHECKOUT_SESSION_COMPLETED,
    CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_SESSION_EXPIRED,
}


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, Mapping):
        value = value.get("id")
        return str(value) if value else None
    return str(value)


def parse_provider_event(event: Mapping[str, Any]) -> ProviderEvent:
    """Convert a verified provider event payload into a :data:`ProviderEvent`."""

    event_type = str(event.get("type") or "")
    event_id = str(event.get("id") or "")
    if event_type not in _SESSION_EVENT_TYPES:
        return UnhandledEvent(event_id=event_id, event_type=event_type or "unknown")

    data = event.get("data") or {}
    session = data.get("object") if isinstance(data, Mapping) else None
    if not isinstance(session, Mapping) or not session.get("id"):
        raise ValueError(f"{event_type} event is missing its checkout session")

    payload: dict[str, Any] = {"kind": event_type, "event_id": event_id, "session_id": str(session["id"])}
    if event_type != CHECKOUT_SESSION_EXPIRED:
        metadata = session.get("metadata") or {}
        payload.update(
            payment_status=_optional_str(session.get("payment_status")),
            payment_intent_id=_optional_str(session.get("payment_intent")),
            quote_id=_optional_str(metadata.get("quoteId")),
            client_id=_optional_str(metadata.get("clientId")),
            lawyer_id=_optional_str(metadata.get("lawyerId")),
        )
    return _provider_event_adapter.validate_python(payload)


__all__ = [
    "CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED",
    "CHECKOUT_SESSION_COMPLETED",
    "CHECKOUT_SESSION_EXPIRED",
    "CheckoutSessionAsyncPaymentSucceeded",
    "CheckoutSessionCompleted",
    "CheckoutSessionExpired",
    "ProviderEvent",
    "UnhandledEvent",
    "parse_provider_event",
]
