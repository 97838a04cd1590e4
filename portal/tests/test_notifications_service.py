import base64
from datetime import datetime, timedelta, timezone

import pytest

from portal.app.schemas.notifications import NotificationCreate, NotificationType
from portal.app.services import notifications


class FakeCursor:
    def __init__(self, *, fetchone_result=None, fetchall_result=None):
        self.fetchone_result = fetchone_result
        self.fetchall_result = list(fetchall_result or [])
        self.execute_calls = []
        self.closed = False

    def execute(self, query, params=None):
        self.execute_calls.append((" ".join(query.split()), params))

    def fetchone(self):
        return self.fetchone_result

    def fetchall(self):
        return list(self.fetchall_result)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False


class FakeConnection:
    def __init__(self, *cursors):
        self._cursors = list(cursors)
        self.cursor_calls = []

    def cursor(self, *args, **kwargs):
        self.cursor_calls.append((args, kwargs))
        if not self._cursors:
            raise AssertionError("No cursors configured")
        return self._cursors.pop(0)


def _row(notification_id, created_at, **overrides):
    row = {
        "id": notification_id,
        "user_id": "lawyer-1",
        "type": NotificationType.PAYMENT_RECEIVED.value,
        "title": "Payment Received",
        "message": 'Payment of $1,500.00 received for case "Smith v. Jones"',
        "reference_id": "Q1",
        "is_read": False,
        "created_at": created_at,
    }
    row.update(overrides)
    return row


def test_cursor_round_trip_without_padding():
    created_at = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    encoded = notifications.encode_cursor(created_at, 42)

    assert "=" not in encoded
    assert notifications.decode_cursor(encoded) == (created_at, 42)


@pytest.mark.parametrize("garbage", ["not-a-cursor", "@@@", base64.urlsafe_b64encode(b"2024-05-01|x").decode()])
def test_decode_cursor_rejects_garbage(garbage):
    with pytest.raises(ValueError, match="Invalid cursor"):
        notifications.decode_cursor(garbage)


def test_create_notification_inserts_row_with_dedupe_key():
    row = _row(1, datetime.now(timezone.utc))
    cursor = FakeCursor(fetchone_result=row)
    conn = FakeConnection(cursor)

    event = NotificationCreate(
        userId="lawyer-1",
        type=NotificationType.PAYMENT_RECEIVED,
        title=row["title"],
        message=row["message"],
        referenceId="Q1",
    )

    created = notifications.create_notification(event, conn=conn)

    assert created is not None
    assert created.id == 1
    assert created.user_id == "lawyer-1"
    assert created.reference_id == "Q1"
    (query, params), = cursor.execute_calls
    assert "ON CONFLICT (user_id, type, reference_id) DO NOTHING" in query
    assert params == ("lawyer-1", "payment_received", row["title"], row["message"], "Q1")


def test_create_notification_returns_none_for_duplicate():
    cursor = FakeCursor(fetchone_result=None)
    conn = FakeConnection(cursor)

    created = notifications.create_notification(
        {
            "userId": "client-1",
            "type": "payment_received",
            "title": "Payment Confirmed",
            "message": "confirmed",
            "referenceId": "Q1",
        },
        conn=conn,
    )

    assert created is None


def test_list_notifications_paginates_results():
    now = datetime.now(timezone.utc)
    rows = [
        _row(3, now),
        _row(2, now - timedelta(minutes=1), type=NotificationType.GENERAL.value, is_read=True),
        _row(1, now - timedelta(minutes=2)),
    ]
    cursor = FakeCursor(fetchall_result=rows)
    conn = FakeConnection(cursor)

    response = notifications.list_notifications("lawyer-1", limit=2, conn=conn)

    assert [item.id for item in response.items] == [3, 2]
    assert response.items[1].type == NotificationType.GENERAL
    assert notifications.decode_cursor(response.next_cursor) == (rows[1]["created_at"], 2)
    (query, params), = cursor.execute_calls
    assert "WHERE user_id = %s ORDER BY created_at DESC, id DESC" in query
    assert params == ("lawyer-1", 3)


def test_list_notifications_for_one_quote_after_cursor():
    created_at = datetime(2024, 5, 1, tzinfo=timezone.utc)
    cursor = FakeCursor(fetchall_result=[_row(6, created_at - timedelta(hours=1))])
    conn = FakeConnection(cursor)

    response = notifications.list_notifications(
        "lawyer-1",
        limit=5,
        cursor=notifications.encode_cursor(created_at, 7),
        reference_id="Q1",
        unread_only=True,
        conn=conn,
    )

    assert [item.id for item in response.items] == [6]
    assert response.next_cursor is None
    (query, params), = cursor.execute_calls
    assert "reference_id = %s AND is_read = FALSE AND (created_at, id) < (%s, %s)" in query
    assert params == ("lawyer-1", "Q1", created_at, 7, 6)


def test_unread_counts_group_by_type():
    cursor = FakeCursor(fetchall_result=[("payment_received", 2), ("general", 3)])
    conn = FakeConnection(cursor)

    counts = notifications.unread_counts("client-1", conn=conn)

    assert counts == {NotificationType.PAYMENT_RECEIVED: 2, NotificationType.GENERAL: 3}


def test_unread_count_sums_types():
    cursor = FakeCursor(fetchall_result=[("payment_received", 2), ("general", 3)])

    assert notifications.unread_count("client-1", conn=FakeConnection(cursor)) == 5


def test_mark_read_dedupes_ids_and_returns_updated():
    cursor = FakeCursor(fetchall_result=[(3,), (2,)])
    conn = FakeConnection(cursor)

    updated = notifications.mark_read("client-1", notification_ids=[3, 2, 2], conn=conn)

    assert updated == [2, 3]
    (query, params), = cursor.execute_calls
    assert "WHERE user_id = %s AND is_read = FALSE AND id = ANY(%s)" in query
    assert params == ["client-1", [2, 3]]


def test_mark_read_for_quote_reference():
    cursor = FakeCursor(fetchall_result=[(9,)])
    conn = FakeConnection(cursor)

    assert notifications.mark_read("client-1", reference_id="Q1", conn=conn) == [9]
    (_, params), = cursor.execute_calls
    assert params == ["client-1", "Q1"]


def test_mark_read_without_target_skips_database():
    assert notifications.mark_read("client-1", conn=FakeConnection()) == []
