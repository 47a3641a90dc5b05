import logging

import pytest
from postgrest.exceptions import APIError

from peertrack.core.errors import NotFoundError
from peertrack.models.notification import MESSAGE_MAX_LENGTH
from peertrack.services.notification_service import NotificationService


def _fk_error() -> APIError:
    return APIError(
        {
            "message": 'insert or update on table "notifications" violates foreign key constraint',
            "code": "23503",
            "details": "Key (user_id)=(ghost) is not present in table user_profiles.",
            "hint": None,
        }
    )


def test_notify_inserts_unread_row(fake_db):
    svc = NotificationService(fake_db)
    row = svc.notify("u1", "hello", manuscript_id="m1", type="submission")

    assert row is not None
    assert row["user_id"] == "u1"
    assert row["manuscript_id"] == "m1"
    assert row["type"] == "submission"
    assert row["is_read"] is False
    assert len(fake_db.rows("notifications")) == 1


def test_notify_clips_long_messages(fake_db):
    svc = NotificationService(fake_db)
    row = svc.notify("u1", "x" * (MESSAGE_MAX_LENGTH + 50))
    assert len(row["message"]) == MESSAGE_MAX_LENGTH
    assert row["message"].endswith("...")


def test_notify_swallows_dangling_target_quietly(fake_db, caplog):
    fake_db.fail_when("notifications", "insert", _fk_error())
    svc = NotificationService(fake_db)

    with caplog.at_level(logging.DEBUG, logger="peertrack.services.notification_service"):
        assert svc.notify("ghost", "hi") is None

    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_notify_swallows_other_failures_with_warning(fake_db, caplog):
    fake_db.fail_when("notifications", "insert", RuntimeError("db down"))
    svc = NotificationService(fake_db)

    with caplog.at_level(logging.WARNING, logger="peertrack.services.notification_service"):
        assert svc.notify("u1", "hi") is None

    assert any("create failed" in r.getMessage() for r in caplog.records)


def test_notify_all_partial_failure_keeps_successes(fake_db):
    fake_db.fail_when(
        "notifications",
        "insert",
        RuntimeError("boom"),
        predicate=lambda payload: payload["user_id"] == "bad",
    )
    svc = NotificationService(fake_db, max_workers=3)

    delivered = svc.notify_all(["a", "bad", "b", ""], "assigned", manuscript_id="m1", type="assignment")

    assert sorted(r["user_id"] for r in delivered) == ["a", "b"]
    assert sorted(r["user_id"] for r in fake_db.rows("notifications")) == ["a", "b"]


def test_notify_all_empty_targets(fake_db):
    assert NotificationService(fake_db).notify_all([], "nothing") == []
    assert fake_db.rows("notifications") == []


def test_list_for_user_is_scoped_and_counts_unread(fake_db):
    svc = NotificationService(fake_db)
    first = svc.notify("u1", "first")
    svc.notify("u1", "second")
    svc.notify("u2", "other user")
    svc.mark_read(first["id"], "u1")

    data = svc.list_for_user("u1")
    assert data["total"] == 2
    assert data["unreadCount"] == 1
    assert [n["message"] for n in data["notifications"]] == ["second", "first"]

    unread = svc.list_for_user("u1", unread_only=True)
    assert [n["message"] for n in unread["notifications"]] == ["second"]
    assert unread["total"] == 1


def test_list_for_user_paginates(fake_db):
    svc = NotificationService(fake_db)
    for i in range(5):
        svc.notify("u1", f"n{i}")

    page = svc.list_for_user("u1", limit=2, offset=2)
    assert page["total"] == 5
    assert [n["message"] for n in page["notifications"]] == ["n2", "n1"]


def test_mark_read_rejects_other_users_notification(fake_db):
    svc = NotificationService(fake_db)
    row = svc.notify("u1", "private")

    with pytest.raises(NotFoundError):
        svc.mark_read(row["id"], "u2")
    with pytest.raises(NotFoundError):
        svc.mark_read("missing", "u1")

    assert fake_db.rows("notifications")[0]["is_read"] is False


def test_mark_all_read_only_touches_unread_rows(fake_db):
    svc = NotificationService(fake_db)
    a = svc.notify("u1", "a")
    svc.notify("u1", "b")
    svc.notify("u2", "c")
    svc.mark_read(a["id"], "u1")

    assert svc.mark_all_read("u1") == 1
    assert svc.list_for_user("u1")["unreadCount"] == 0
    assert svc.list_for_user("u2")["unreadCount"] == 1


def test_delete_and_delete_all_are_scoped(fake_db):
    svc = NotificationService(fake_db)
    a = svc.notify("u1", "a")
    svc.notify("u1", "b")
    c = svc.notify("u2", "c")

    with pytest.raises(NotFoundError):
        svc.delete(c["id"], "u1")

    svc.delete(a["id"], "u1")
    assert svc.delete_all("u1") == 1
    assert [r["id"] for r in fake_db.rows("notifications")] == [c["id"]]
