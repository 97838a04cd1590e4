from __future__ import annotations

import pytest

from portal.app.payments.events import (
    CheckoutSessionAsyncPaymentSucceeded,
    CheckoutSessionCompleted,
    CheckoutSessionExpired,
    UnhandledEvent,
    parse_provider_event,
)


def _event(event_type, session):
    return {"id": "evt_1", "type": event_type, "data": {"object": session}}


def test_completed_event_carries_metadata():
    event = parse_provider_event(
        _event(
            "checkout.session.completed",
            {
                "id": "cs_1",
                "payment_status": "paid",
                "payment_intent": {"id": "pi_1"},
                "metadata": {"quoteId": "Q1", "clientId": "c1", "lawyerId": "l1"},
            },
        )
    )

    assert isinstance(event, CheckoutSessionCompleted)
    assert event.session_id == "cs_1"
    assert event.payment_intent_id == "pi_1"
    assert (event.quote_id, event.client_id, event.lawyer_id) == ("Q1", "c1", "l1")
    assert event.reports_unpaid is False


def test_async_success_and_expiry_are_distinct_kinds():
    succeeded = parse_provider_event(
        _event("checkout.session.async_payment_succeeded", {"id": "cs_2", "payment_status": "paid"})
    )
    expired = parse_provider_event(_event("checkout.session.expired", {"id": "cs_3"}))

    assert isinstance(succeeded, CheckoutSessionAsyncPaymentSucceeded)
    assert isinstance(expired, CheckoutSessionExpired)
    assert expired.session_id == "cs_3"


def test_unpaid_completion_is_flagged():
    event = parse_provider_event(
        _event("checkout.session.completed", {"id": "cs_4", "payment_status": "unpaid"})
    )

    assert event.reports_unpaid is True


def test_other_event_types_are_unhandled():
    event = parse_provider_event({"id": "evt_9", "type": "charge.refunded", "data": {"object": {}}})

    assert isinstance(event, UnhandledEvent)
    assert event.event_type == "charge.refunded"


def test_session_event_without_session_id_is_rejected():
    with pytest.raises(ValueError):
        parse_provider_event(_event("checkout.session.completed", {"payment_status": "paid"}))
