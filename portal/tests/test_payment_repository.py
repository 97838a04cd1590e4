from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import psycopg2
import psycopg2.errors
import pytest

from portal.app.payments import PaymentIntentStatus, QuoteStatus, StatusPredicate, StorageError
from portal.app.payments.repository import PostgresPaymentRepository


class FakeCursor:
    def __init__(self, *, fetchone_result=None, fetchall_result=None, rowcount=0, error=None):
        self.fetchone_result = fetchone_result
        self.fetchall_result = list(fetchall_result or [])
        self.rowcount = rowcount
        self.error = error
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))
        if self.error is not None:
            raise self.error

    def fetchone(self):
        return self.fetchone_result

    def fetchall(self):
        return list(self.fetchall_result)

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, cursor):
        self._cursor = cursor

    def cursor(self, *args, **kwargs):
        return self._cursor


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _quote_row(**overrides):
    row = {
        "quote_id": "Q1",
        "case_id": "case-1",
        "lawyer_id": "lawyer-1",
        "client_id": "client-1",
        "case_title": "Smith v. Jones",
        "base_price": Decimal("1500.00"),
        "hourly_rate": Decimal("0.00"),
        "estimated_hours": Decimal("0.00"),
        "total_estimate": Decimal("1500.00"),
        "currency": "USD",
        "description": None,
        "status": "accepted",
        "sent_at": NOW,
        "accepted_at": NOW,
        "paid_at": None,
        "payment_notified_at": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _intent_row(**overrides):
    row = {
        "intent_id": "pi_local_1",
        "session_id": "cs_1",
        "quote_id": "Q1",
        "client_id": "client-1",
        "amount": Decimal("1500.00"),
        "currency": "USD",
        "status": "completed",
        "checkout_url": "https://checkout.test/cs_1",
        "created_at": NOW,
        "updated_at": NOW,
        "paid_at": NOW,
        "canceled_at": None,
    }
    row.update(overrides)
    return row


def test_update_quote_if_is_single_conditional_statement():
    cursor = FakeCursor(fetchone_result=_quote_row(status="paid", paid_at=NOW))
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    quote = repository.update_quote_if(
        "Q1",
        predicate=StatusPredicate.excluding(QuoteStatus.PAID),
        changes={"status": QuoteStatus.PAID, "paid_at": NOW},
    )

    assert quote is not None
    assert quote.status == QuoteStatus.PAID
    assert quote.case_title == "Smith v. Jones"
    (query, params), = cursor.execute_calls
    assert "UPDATE pricing_quotes SET paid_at = %s, status = %s, updated_at = NOW()" in query
    assert "WHERE quote_id = %s AND NOT (status = ANY(%s)) RETURNING *" in query
    assert params == (NOW, "paid", "Q1", ["paid"])
    assert cursor.closed


def test_update_quote_if_returns_none_when_no_row_matches():
    cursor = FakeCursor(fetchone_result=None)
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    result = repository.update_quote_if(
        "Q1",
        predicate=StatusPredicate.only(QuoteStatus.DRAFT),
        changes={"status": QuoteStatus.SENT, "sent_at": NOW},
    )

    assert result is None


def test_update_quote_if_rejects_unknown_columns():
    repository = PostgresPaymentRepository(conn=FakeConnection(FakeCursor()))

    with pytest.raises(ValueError):
        repository.update_quote_if(
            "Q1",
            predicate=StatusPredicate.only(QuoteStatus.DRAFT),
            changes={"total_estimate": Decimal("1")},
        )


def test_update_intent_if_maps_row():
    cursor = FakeCursor(fetchone_result=_intent_row())
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    intent = repository.update_intent_if(
        "cs_1",
        predicate=StatusPredicate.only(PaymentIntentStatus.PENDING),
        changes={"status": PaymentIntentStatus.COMPLETED, "paid_at": NOW},
    )

    assert intent is not None
    assert intent.status == PaymentIntentStatus.COMPLETED
    (query, params), = cursor.execute_calls
    assert "WHERE session_id = %s AND status = ANY(%s)" in query
    assert params == (NOW, "completed", "cs_1", ["pending"])


def test_update_intent_if_treats_second_completion_as_noop():
    cursor = FakeCursor(error=psycopg2.errors.UniqueViolation())
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    result = repository.update_intent_if(
        "cs_2",
        predicate=StatusPredicate.only(PaymentIntentStatus.PENDING),
        changes={"status": PaymentIntentStatus.COMPLETED, "paid_at": NOW},
    )

    assert result is None


def test_connection_failures_become_storage_errors():
    cursor = FakeCursor(error=psycopg2.OperationalError("server closed the connection"))
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    with pytest.raises(StorageError):
        repository.get_intent_by_session("cs_1")


def test_mark_payment_notified_only_once():
    cursor = FakeCursor(rowcount=1)
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    assert repository.mark_payment_notified("Q1", NOW) is True
    (query, params), = cursor.execute_calls
    assert "payment_notified_at IS NULL" in query
    assert params == (NOW, "Q1", "paid")

    assert PostgresPaymentRepository(conn=FakeConnection(FakeCursor(rowcount=0))).mark_payment_notified("Q1", NOW) is False


def test_list_quotes_for_client_filters_statuses():
    cursor = FakeCursor(fetchall_result=[_quote_row(status="sent")])
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    quotes = repository.list_quotes_for_client("client-1", statuses=[QuoteStatus.SENT, QuoteStatus.PAID])

    assert [q.status for q in quotes] == [QuoteStatus.SENT]
    (_, params), = cursor.execute_calls
    assert params == ("client-1", ["sent", "paid"])


def test_get_case_projects_parties():
    cursor = FakeCursor(fetchone_result={"id": 12, "title": "Estate", "lawyer_id": 3, "client_id": 4})
    repository = PostgresPaymentRepository(conn=FakeConnection(cursor))

    case = repository.get_case("12")

    assert (case.case_id, case.lawyer_id, case.client_id) == ("12", "3", "4")
