"""In-app notification storage.

Payment notifications are keyed by ``(user_id, type, reference_id)`` so that
redelivering the same event to the same user is a no-op. ``reference_id``
holds the quote id, which lets the portal show and clear everything said
about one quote.
"""
from __future__ import annotations

import base64
import binascii
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection

try:
    from portal.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover - fallback for local execution
    if exc.name != "portal":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]

from ..schemas.notifications import (
    Notification,
    NotificationCreate,
    NotificationListResponse,
    NotificationType,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_CURSOR_SEPARATOR = "|"


@dataclass
class NotificationFilter:
    """Row filter shared by listing, counting, and bulk mark-read."""

    user_id: str
    reference_id: Optional[str] = None
    unread_only: bool = False
    clauses: List[str] = field(default_factory=list)
    params: List[Any] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.clauses.append("user_id = %s")
        self.params.append(self.user_id)
        if self.reference_id is not None:
            self.clauses.append("reference_id = %s")
            self.params.append(self.reference_id)
        if self.unread_only:
            self.clauses.append("is_read = FALSE")

    def after(self, created_at: datetime, notification_id: int) -> None:
        self.clauses.append("(created_at, id) < (%s, %s)")
        self.params.extend([created_at, notification_id])

    @property
    def where(self) -> str:
        return " AND ".join(self.clauses)


@contextmanager
def _ensure_connection(conn: Optional[PgConnection]):
    if conn is not None:
        yield conn
        return
    with get_conn() as owned_conn:
        yield owned_conn


def encode_cursor(created_at: datetime, notification_id: int) -> str:
    raw = f"{created_at.isoformat()}{_CURSOR_SEPARATOR}{notification_id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str) -> Tuple[datetime, int]:
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        created_part, id_part = raw.rsplit(_CURSOR_SEPARATOR, 1)
        return datetime.fromisoformat(created_part), int(id_part)
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise ValueError("Invalid cursor") from exc


def _row_to_notification(row: Mapping[str, Any]) -> Notification:
    return Notification(
        id=row["id"],
        user_id=str(row["user_id"]),
        type=NotificationType(row["type"]),
        title=row["title"],
        message=row["message"],
        reference_id=row.get("reference_id"),
        is_read=bool(row.get("is_read", False)),
        created_at=row["created_at"],
    )


def create_notification(
    event: NotificationCreate | Mapping[str, Any],
    *,
    conn: Optional[PgConnection] = None,
) -> Optional[Notification]:
    """Insert a notification; returns ``None`` when it was already delivered."""

    if not isinstance(event, NotificationCreate):
        event = NotificationCreate.model_validate(event)

    with _ensure_connection(conn) as connection:
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO notifications (user_id, type, title, message, reference_id)
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (user_id, type, reference_id) DO NOTHING
                RETURNING *
                """,
                (
                    event.user_id,
                    event.type.value,
                    event.title,
                    event.message,
                    event.reference_id,
                ),
            )
            row = cur.fetchone()

    if row is None:
        logger.info(
            "Skipping duplicate notification",
            extra={"user_id": event.user_id, "type": event.type.value, "reference_id": event.reference_id},
        )
        return None
    return _row_to_notification(row)


def list_notifications(
    user_id: str,
    *,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: Optional[str] = None,
    reference_id: Optional[str] = None,
    unread_only: bool = False,
    conn: Optional[PgConnection] = None,
) -> NotificationListResponse:
    """Newest-first page of a user's notifications, optionally for one quote."""

    page_size = max(1, min(int(limit), MAX_PAGE_SIZE))
    filters = NotificationFilter(user_id, reference_id=reference_id, unread_only=unread_only)
    if cursor:
        filters.after(*decode_cursor(cursor))

    with _ensure_connection(conn) as connection:
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
            cur.execute(
                f"""
                SELECT *
                FROM notifications
                WHERE {filters.where}
                ORDER BY created_at DESC, id DESC
                LIMIT %s
                """,
                (*filters.params, page_size + 1),
            )
            rows = cur.fetchall()

    page = [_row_to_notification(row) for row in rows[:page_size]]
    next_cursor = None
    if len(rows) > page_size:
        last = page[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return NotificationListResponse(items=page, next_cursor=next_cursor)


def unread_counts(
    user_id: str,
    *,
    conn: Optional[PgConnection] = None,
) -> Dict[NotificationType, int]:
    """Unread notifications per type; types with none are omitted."""

    with _ensure_connection(conn) as connection:
        with connection.cursor() as cur:
            cur.execute(
                """
                SELECT type, COUNT(*)
                FROM notifications
                WHERE user_id = %s AND is_read = FALSE
                GROUP BY type
                """,
                (user_id,),
            )
            rows = cur.fetchall()
    return {NotificationType(kind): int(count) for kind, count in rows}


def unread_count(user_id: str, *, conn: Optional[PgConnection] = None) -> int:
    return sum(unread_counts(user_id, conn=conn).values())


def mark_read(
    user_id: str,
    *,
    notification_ids: Sequence[int] = (),
    reference_id: Optional[str] = None,
    conn: Optional[PgConnection] = None,
) -> List[int]:
    """Mark the given notifications, or everything about one quote, as read.

    Only unread rows owned by ``user_id`` are touched; the ids actually
    flipped are returned.
    """

    ids = sorted({int(notification_id) for notification_id in notification_ids})
    if not ids and reference_id is None:
        return []

    filters = NotificationFilter(user_id, reference_id=reference_id, unread_only=True)
    if ids:
        filters.clauses.append("id = ANY(%s)")
        filters.params.append(ids)

    with _ensure_connection(conn) as connection:
        with connection.cursor() as cur:
            cur.execute(
                f"""
                UPDATE notifications
                SET is_read = TRUE
                WHERE {filters.where}
                RETURNING id
                """,
                filters.params,
            )
            rows = cur.fetchall()
    return sorted(row[0] for row in rows)


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "NotificationFilter",
    "create_notification",
    "decode_cursor",
    "encode_cursor",
    "list_notifications",
    "mark_read",
    "unread_count",
    "unread_counts",
]
