"""
Tests for the SQLAlchemy backed local store, on in-memory SQLite.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from davsync.lib import error
from davsync.store import DEFAULT_COLOR, EventStore, ExternalEvent

utc = timezone.utc


def _account(store, user_id="u1"):
    return store.add_account(
        user_id=user_id,
        name="Work",
        server_url="https://cal.example.com/",
        username="alice",
        password="secret",
    )


def _event(account_id, external_id, start, hours=1, **kwargs):
    record = {
        "account_id": account_id,
        "external_id": external_id,
        "title": kwargs.pop("title", external_id),
        "start_at": start,
        "end_at": start + timedelta(hours=hours),
        "is_all_day": False,
    }
    record.update(kwargs)
    return record


class TestAccounts:
    def test_add_and_get(self, store):
        account = _account(store)
        assert account.id is not None
        assert account.color == DEFAULT_COLOR
        assert account.last_synced is None
        assert account.created_at.tzinfo is not None

        fetched = store.get_account(account.id)
        assert fetched.username == "alice"
        assert store.get_account_for_user("u1").id == account.id
        assert store.get_account_for_user("nobody") is None
        assert store.get_account(12345) is None

    def test_one_account_per_user(self, store):
        _account(store)
        with pytest.raises(error.PersistenceError):
            _account(store)

    def test_update(self, store):
        account = _account(store)
        now = datetime(2026, 1, 14, 9, 0, tzinfo=utc)

        store.update_account(account.id, last_synced=now)
        fetched = store.get_account(account.id)
        assert fetched.last_synced == now
        assert fetched.server_url == "https://cal.example.com/"

        store.update_account(
            account.id, server_url="https://cal.example.com/dav/alice/", last_synced=now
        )
        assert store.get_account(account.id).server_url == "https://cal.example.com/dav/alice/"

    def test_update_missing(self, store):
        with pytest.raises(error.NotFoundError):
            store.update_account(42, last_synced=datetime.now(utc))

    def test_delete_cascades(self, store):
        account = _account(store)
        store.insert_external_event(_event(account.id, "a", datetime(2026, 1, 1, tzinfo=utc)))
        store.delete_account(account.id)
        assert store.get_account(account.id) is None
        assert store.list_events(account.id) == []

    def test_delete_missing(self, store):
        with pytest.raises(error.NotFoundError):
            store.delete_account(42)


class TestEvents:
    def test_insert_find_update(self, store):
        account = _account(store)
        start = datetime(2026, 1, 14, 9, 0, tzinfo=utc)
        inserted = store.insert_external_event(_event(account.id, "abc", start, title="Standup"))

        found = store.find_external_event(account.id, "abc")
        assert found.id == inserted.id
        assert found.title == "Standup"
        assert found.start_at == start
        assert found.end_at == start + timedelta(hours=1)
        assert store.find_external_event(account.id, "nope") is None

        store.update_external_event(
            found.id, {"title": "Daily standup", "end_at": start + timedelta(minutes=15)}
        )
        found = store.find_external_event(account.id, "abc")
        assert found.title == "Daily standup"
        assert found.end_at == start + timedelta(minutes=15)

    def test_non_utc_is_stored_as_utc(self, store):
        account = _account(store)
        start = datetime(2026, 1, 14, 10, 0, tzinfo=timezone(timedelta(hours=1)))
        store.insert_external_event(_event(account.id, "x", start))
        found = store.find_external_event(account.id, "x")
        assert found.start_at == start
        assert found.start_at.tzinfo == utc

    def test_unique_per_account(self, store):
        account = _account(store)
        start = datetime(2026, 1, 14, 9, 0, tzinfo=utc)
        store.insert_external_event(_event(account.id, "abc", start))
        with pytest.raises(error.PersistenceError):
            store.insert_external_event(_event(account.id, "abc", start))

    def test_same_uid_in_other_account(self, store):
        a = _account(store, "u1")
        b = _account(store, "u2")
        start = datetime(2026, 1, 14, 9, 0, tzinfo=utc)
        store.insert_external_event(_event(a.id, "abc", start))
        store.insert_external_event(_event(b.id, "abc", start))
        assert len(store.list_events(a.id)) == len(store.list_events(b.id)) == 1

    def test_update_missing(self, store):
        with pytest.raises(error.NotFoundError):
            store.update_external_event(42, {"title": "x"})

    def test_list_ordered_by_start(self, store):
        account = _account(store)
        base = datetime(2026, 1, 14, 9, 0, tzinfo=utc)
        for uid, offset in (("c", 2), ("a", 0), ("b", 1)):
            store.insert_external_event(_event(account.id, uid, base + timedelta(days=offset)))
        assert [e.external_id for e in store.list_events(account.id)] == ["a", "b", "c"]

    def test_delete_stale(self, store):
        account = _account(store)
        base = datetime(2026, 1, 14, 9, 0, tzinfo=utc)
        store.insert_external_event(_event(account.id, "keep", base))
        store.insert_external_event(_event(account.id, "stale", base + timedelta(days=1)))
        store.insert_external_event(_event(account.id, "old", base - timedelta(days=30)))

        deleted = store.delete_stale_events(
            account.id, ["keep"], base - timedelta(days=1), base + timedelta(days=10)
        )

        assert deleted == 1
        assert [e.external_id for e in store.list_events(account.id)] == ["old", "keep"]


class TestSessionScope:
    def test_sqlalchemy_errors_are_wrapped(self, store):
        with pytest.raises(error.PersistenceError) as excinfo:
            with store.session_scope():
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        assert "disk I/O error" in excinfo.value.reason

    def test_other_errors_roll_back(self, store):
        account = _account(store)
        with pytest.raises(RuntimeError):
            with store.session_scope() as session:
                session.add(
                    ExternalEvent(
                        **_event(account.id, "x", datetime(2026, 1, 1, tzinfo=utc))
                    )
                )
                raise RuntimeError("boom")
        assert store.list_events(account.id) == []

    def test_separate_stores_on_memory_sqlite(self):
        store = EventStore("sqlite://")
        store.create_all()
        _account(store)
        assert store.get_account_for_user("u1") is not None
