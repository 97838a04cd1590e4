"""Persistence layer for quotes and checkout intents."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

import psycopg2
import psycopg2.errors
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .errors import StorageError
from .models import (
    CaseParties,
    PaymentIntentRecord,
    PaymentIntentStatus,
    PricingQuote,
    QuoteStatus,
    StatusPredicate,
)

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from portal.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "portal":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]

logger = logging.getLogger(__name__)

QUOTE_MUTABLE_COLUMNS = frozenset({"status", "sent_at", "accepted_at", "paid_at"})
INTENT_MUTABLE_COLUMNS = frozenset({"status", "paid_at", "canceled_at"})

_QUOTE_SELECT = """
    SELECT q.*, c.title AS case_title
    FROM pricing_quotes AS q
    LEFT JOIN cases AS c ON c.id = q.case_id
"""


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_quote(row: Mapping[str, Any]) -> PricingQuote:
    return PricingQuote(
        quote_id=row["quote_id"],
        case_id=str(row["case_id"]),
        lawyer_id=str(row["lawyer_id"]),
        client_id=str(row["client_id"]),
        case_title=row.get("case_title"),
        base_price=row["base_price"],
        hourly_rate=row["hourly_rate"],
        estimated_hours=row["estimated_hours"],
        total_estimate=row["total_estimate"],
        currency=row.get("currency") or "USD",
        description=row.get("description"),
        status=QuoteStatus(row["status"]),
        sent_at=row.get("sent_at"),
        accepted_at=row.get("accepted_at"),
        paid_at=row.get("paid_at"),
        payment_notified_at=row.get("payment_notified_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_intent(row: Mapping[str, Any]) -> PaymentIntentRecord:
    return PaymentIntentRecord(
        intent_id=row["intent_id"],
        session_id=row["session_id"],
        quote_id=row["quote_id"],
        client_id=str(row["client_id"]),
        amount=row["amount"],
        currency=row.get("currency") or "USD",
        status=PaymentIntentStatus(row["status"]),
        checkout_url=row.get("checkout_url"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        paid_at=row.get("paid_at"),
        canceled_at=row.get("canceled_at"),
    )


def _set_clause(changes: Mapping[str, Any], allowed: frozenset) -> tuple[str, list[Any]]:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Columns cannot be updated conditionally: {sorted(unknown)}")
    if not changes:
        raise ValueError("A conditional update needs at least one change")

    assignments = []
    params: list[Any] = []
    for column in sorted(changes):
        value = changes[column]
        assignments.append(f"{column} = %s")
        params.append(value.value if isinstance(value, Enum) else value)
    assignments.append("updated_at = NOW()")
    return ", ".join(assignments), params


class PostgresPaymentRepository:
    """Concrete repository persisting quotes and checkout intents in PostgreSQL."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterator[PgCursor]:
        try:
            with managed_connection(self._conn) as (connection, _managed):
                cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
                try:
                    yield cursor
                finally:
                    cursor.close()
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as exc:
            raise StorageError("Payment storage is unavailable") from exc

    # Cases are owned by the case management module; only read here.
    def get_case(self, case_id: str) -> Optional[CaseParties]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT id, title, lawyer_id, client_id
                FROM cases
                WHERE id = %s
                LIMIT 1
                """,
                (case_id,),
            )
            row = cursor.fetchone()
        if not row:
            return None
        return CaseParties(
            case_id=str(row["id"]),
            title=row.get("title") or "",
            lawyer_id=str(row["lawyer_id"]),
            client_id=str(row["client_id"]),
        )

    def create_quote(self, quote: PricingQuote) -> PricingQuote:
        with self._cursor() as cursor:
            cursor.execute(
                """
                WITH inserted AS (
                    INSERT INTO pricing_quotes (
                        quote_id,
                        case_id,
                        lawyer_id,
                        client_id,
                        base_price,
                        hourly_rate,
                        estimated_hours,
                        total_estimate,
                        currency,
                        description,
                        status
                    )
                    VALUES (%(quote_id)s, %(case_id)s, %(lawyer_id)s, %(client_id)s,
                            %(base_price)s, %(hourly_rate)s, %(estimated_hours)s,
                            %(total_estimate)s, %(currency)s, %(description)s, %(status)s)
                    RETURNING *
                )
                SELECT inserted.*, c.title AS case_title
                FROM inserted
                LEFT JOIN cases AS c ON c.id = inserted.case_id
                """,
                {
                    "quote_id": quote.quote_id,
                    "case_id": quote.case_id,
                    "lawyer_id": quote.lawyer_id,
                    "client_id": quote.client_id,
                    "base_price": quote.base_price,
                    "hourly_rate": quote.hourly_rate,
                    "estimated_hours": quote.estimated_hours,
                    "total_estimate": quote.total_estimate,
                    "currency": quote.currency,
                    "description": quote.description,
                    "status": quote.status.value,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist pricing quote")
            return _row_to_quote(row)

    def get_quote(self, quote_id: str) -> Optional[PricingQuote]:
        with self._cursor() as cursor:
            cursor.execute(_QUOTE_SELECT + " WHERE q.quote_id = %s LIMIT 1", (quote_id,))
            row = cursor.fetchone()
            return _row_to_quote(row) if row else None

    def list_quotes_for_client(
        self,
        client_id: str,
        *,
        statuses: Iterable[QuoteStatus],
    ) -> list[PricingQuote]:
        with self._cursor() as cursor:
            cursor.execute(
                _QUOTE_SELECT
                + """
                WHERE q.client_id = %s AND q.status = ANY(%s)
                ORDER BY q.sent_at DESC NULLS LAST, q.created_at DESC
                """,
                (client_id, [status.value for status in statuses]),
            )
            rows = cursor.fetchall() or []
            return [_row_to_quote(row) for row in rows]

    def list_quotes_for_lawyer(self, lawyer_id: str) -> list[PricingQuote]:
        with self._cursor() as cursor:
            cursor.execute(
                _QUOTE_SELECT + " WHERE q.lawyer_id = %s ORDER BY q.created_at DESC",
                (lawyer_id,),
            )
            rows = cursor.fetchall() or []
            return [_row_to_quote(row) for row in rows]

    def update_quote_if(
        self,
        quote_id: str,
        *,
        predicate: StatusPredicate,
        changes: Mapping[str, Any],
    ) -> Optional[PricingQuote]:
        """Apply ``changes`` only when the quote's status satisfies ``predicate``.

        The check and the write are one ``UPDATE`` statement, so concurrent
        callers racing on the same quote see exactly one winner. Returns the
        updated quote, or ``None`` when no row matched.
        """

        set_sql, set_params = _set_clause(changes, QUOTE_MUTABLE_COLUMNS)
        where_sql, where_params = predicate.sql("status")
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                WITH updated AS (
                    UPDATE pricing_quotes
                    SET {set_sql}
                    WHERE quote_id = %s AND {where_sql}
                    RETURNING *
                )
                SELECT updated.*, c.title AS case_title
                FROM updated
                LEFT JOIN cases AS c ON c.id = updated.case_id
                """,
                (*set_params, quote_id, *where_params),
            )
            row = cursor.fetchone()
            return _row_to_quote(row) if row else None

    def mark_payment_notified(self, quote_id: str, notified_at: datetime) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE pricing_quotes
                SET payment_notified_at = %s, updated_at = NOW()
                WHERE quote_id = %s
                  AND status = %s
                  AND payment_notified_at IS NULL
                """,
                (notified_at, quote_id, QuoteStatus.PAID.value),
            )
            return cursor.rowcount > 0

    def create_intent(self, intent: PaymentIntentRecord) -> PaymentIntentRecord:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO payment_intents (
                    intent_id,
                    session_id,
                    quote_id,
                    client_id,
                    amount,
                    currency,
                    status,
                    checkout_url
                )
                VALUES (%(intent_id)s, %(session_id)s, %(quote_id)s, %(client_id)s,
                        %(amount)s, %(currency)s, %(status)s, %(checkout_url)s)
                RETURNING *
                """,
                {
                    "intent_id": intent.intent_id,
                    "session_id": intent.session_id,
                    "quote_id": intent.quote_id,
                    "client_id": intent.client_id,
                    "amount": intent.amount,
                    "currency": intent.currency,
                    "status": intent.status.value,
                    "checkout_url": intent.checkout_url,
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist payment intent")
            return _row_to_intent(row)

    def get_intent_by_session(self, session_id: str) -> Optional[PaymentIntentRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM payment_intents
                WHERE session_id = %s
                LIMIT 1
                """,
                (session_id,),
            )
            row = cursor.fetchone()
            return _row_to_intent(row) if row else None

    def update_intent_if(
        self,
        session_id: str,
        *,
        predicate: StatusPredicate,
        changes: Mapping[str, Any],
    ) -> Optional[PaymentIntentRecord]:
        """Conditionally update the intent keyed by its provider session id."""

        set_sql, set_params = _set_clause(changes, INTENT_MUTABLE_COLUMNS)
        where_sql, where_params = predicate.sql("status")
        try:
            with self._cursor() as cursor:
                cursor.execute(
                    f"""
                    UPDATE payment_intents
                    SET {set_sql}
                    WHERE session_id = %s AND {where_sql}
                    RETURNING *
                    """,
                    (*set_params, session_id, *where_params),
                )
                row = cursor.fetchone()
                return _row_to_intent(row) if row else None
        except psycopg2.errors.UniqueViolation:
            # Another checkout attempt already completed this quote.
            logger.error(
                "Refusing to complete a second checkout session for the same quote",
                extra={"session_id": session_id},
            )
            return None


__all__ = ["PostgresPaymentRepository", "managed_connection"]
