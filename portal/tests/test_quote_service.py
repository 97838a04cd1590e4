from __future__ import annotations

from decimal import Decimal

import pytest

from portal.app.payments import (
    InvalidState,
    NotFound,
    NotificationKind,
    PaymentAuditEventType,
    QuoteService,
    QuoteStatus,
)
from portal.tests.payment_fakes import (
    Clock,
    InMemoryPaymentRepository,
    RecordingEventLogger,
    RecordingNotifier,
    make_config,
)


@pytest.fixture
def quote_components():
    repository = InMemoryPaymentRepository()
    repository.add_case("case-1", lawyer_id="lawyer-1", client_id="client-1", title="Estate Planning")
    notifier = RecordingNotifier()
    event_logger = RecordingEventLogger()
    clock = Clock()
    service = QuoteService(
        repository=repository,
        notifier=notifier,
        event_logger=event_logger,
        config=make_config(),
        clock=clock,
    )
    return repository, notifier, event_logger, clock, service


def _create(service, **overrides):
    values = dict(
        lawyer_id="lawyer-1",
        case_id="case-1",
        base_price=Decimal("500"),
        hourly_rate=Decimal("250"),
        estimated_hours=Decimal("4"),
        description="  Drafting and review  ",
    )
    values.update(overrides)
    return service.create_quote(**values)


def test_create_quote_computes_total_as_draft(quote_components):
    repository, notifier, event_logger, _, service = quote_components

    quote = _create(service)

    assert quote.quote_id.startswith("quote_")
    assert quote.total_estimate == Decimal("1500.00")
    assert quote.status == QuoteStatus.DRAFT
    assert quote.client_id == "client-1"
    assert quote.currency == "USD"
    assert quote.description == "Drafting and review"
    assert repository.get_quote(quote.quote_id) == quote
    assert notifier.delivered == []
    assert event_logger.events[-1].event_type == PaymentAuditEventType.QUOTE_CREATED


def test_create_quote_requires_lawyers_own_case(quote_components):
    _, _, _, _, service = quote_components

    with pytest.raises(NotFound):
        _create(service, lawyer_id="lawyer-2")
    with pytest.raises(NotFound):
        _create(service, case_id="case-missing")


def test_create_quote_rejects_negative_amounts(quote_components):
    _, _, _, _, service = quote_components

    with pytest.raises(InvalidState):
        _create(service, hourly_rate=Decimal("-1"))


def test_send_then_accept_notifies_counterparties(quote_components):
    repository, notifier, event_logger, clock, service = quote_components
    quote = _create(service)

    sent = service.send_quote(quote_id=quote.quote_id, lawyer_id="lawyer-1")
    assert sent.status == QuoteStatus.SENT
    assert sent.sent_at == clock.now

    accepted = service.accept_quote(quote_id=quote.quote_id, client_id="client-1")
    assert accepted.status == QuoteStatus.ACCEPTED
    assert accepted.accepted_at == clock.now

    assert [(n.target_user_id, n.kind, n.title) for n in notifier.delivered] == [
        ("client-1", NotificationKind.GENERAL, "New Price Quote"),
        ("lawyer-1", NotificationKind.GENERAL, "Quote Accepted"),
    ]
    assert [e.event_type for e in event_logger.events][-2:] == [
        PaymentAuditEventType.QUOTE_SENT,
        PaymentAuditEventType.QUOTE_ACCEPTED,
    ]


def test_send_quote_twice_is_rejected(quote_components):
    _, _, _, _, service = quote_components
    quote = _create(service)
    service.send_quote(quote_id=quote.quote_id, lawyer_id="lawyer-1")

    with pytest.raises(InvalidState) as excinfo:
        service.send_quote(quote_id=quote.quote_id, lawyer_id="lawyer-1")
    assert excinfo.value.detail == {"status": "sent"}


def test_accept_requires_sent_quote_owned_by_client(quote_components):
    _, _, _, _, service = quote_components
    quote = _create(service)

    with pytest.raises(InvalidState):
        service.accept_quote(quote_id=quote.quote_id, client_id="client-1")

    service.send_quote(quote_id=quote.quote_id, lawyer_id="lawyer-1")
    with pytest.raises(NotFound):
        service.accept_quote(quote_id=quote.quote_id, client_id="client-2")


def test_accept_does_not_reopen_paid_quote(quote_components):
    repository, _, _, _, service = quote_components
    repository.add_quote("Q-paid", status=QuoteStatus.PAID)

    with pytest.raises(InvalidState):
        service.accept_quote(quote_id="Q-paid", client_id="client-1")
    assert repository.get_quote("Q-paid").status == QuoteStatus.PAID


def test_client_listing_hides_drafts(quote_components):
    repository, _, _, _, service = quote_components
    draft = _create(service)
    repository.add_quote("Q-sent", status=QuoteStatus.SENT)
    repository.add_quote("Q-paid", status=QuoteStatus.PAID)
    repository.add_quote("Q-other", status=QuoteStatus.SENT, client_id="client-9")

    client_ids = {q.quote_id for q in service.list_client_quotes("client-1")}
    lawyer_ids = {q.quote_id for q in service.list_lawyer_quotes("lawyer-1")}

    assert client_ids == {"Q-sent", "Q-paid"}
    assert draft.quote_id in lawyer_ids
