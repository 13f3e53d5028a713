"""Tests for reconciling fetched pages into the store."""

import threading
from datetime import timedelta

from github_inbox_agent.models import NotificationPage

from conftest import BASE_TIME


def _page(notifications, first=True, last_modified=None, poll_interval=None, was_modified=True):
    return NotificationPage(
        notifications=notifications,
        is_first_page=first,
        has_more_pages=False,
        last_modified=last_modified,
        poll_interval=poll_interval,
        was_modified=was_modified,
    )


class TestUpsert:
    def test_inserts_new_threads(self, reconciler, store, notification):
        result = reconciler.upsert([notification(thread_id="1"), notification(thread_id="2")], "acct")

        assert result.inserted == 2
        assert set(store.notifications) == {"1", "2"}
        cached = store.notifications["1"]
        assert cached.account_id == "acct"
        assert cached.repository_full_name == "octo-org/octo-repo"
        assert cached.archived is False and cached.snoozed is False

    def test_idempotent(self, reconciler, store, notification):
        batch = [notification(thread_id="1"), notification(thread_id="2")]
        reconciler.upsert(batch, "acct")
        writes = store.write_count

        result = reconciler.upsert(batch, "acct")

        assert result.unchanged == 2
        assert result.changed == 0
        assert store.write_count == writes

    def test_updates_remote_fields(self, reconciler, store, notification, clock):
        reconciler.upsert([notification(thread_id="1", title="Old")], "acct")
        clock.advance(60)

        result = reconciler.upsert(
            [notification(thread_id="1", title="New", updated_at=BASE_TIME + timedelta(minutes=5))],
            "acct",
        )

        assert result.updated == 1
        cached = store.notifications["1"]
        assert cached.subject_title == "New"
        assert cached.updated_at == BASE_TIME + timedelta(minutes=5)
        assert cached.fetched_at == clock.now

    def test_preserves_local_state(self, reconciler, store, notification, clock):
        reconciler.upsert([notification(thread_id="1")], "acct")
        reconciler.archive("1")
        reconciler.snooze("1", clock.now + timedelta(hours=2))

        reconciler.upsert(
            [notification(thread_id="1", title="Renamed", updated_at=BASE_TIME + timedelta(hours=3))],
            "acct",
        )

        cached = store.notifications["1"]
        assert cached.subject_title == "Renamed"
        assert cached.archived is True
        assert cached.snoozed is True
        assert cached.snooze_until == clock.now + timedelta(hours=2)

    def test_duplicate_ids_in_page(self, reconciler, store, notification):
        result = reconciler.upsert(
            [notification(thread_id="1", title="First"), notification(thread_id="1", title="Second")],
            "acct",
        )

        assert result.inserted == 1
        assert result.duplicates == 1
        assert store.notifications["1"].subject_title == "First"


class TestMarkAsReadRace:
    def test_stale_remote_unread_does_not_revert_local_read(self, reconciler, store, notification, clock):
        reconciler.upsert([notification(thread_id="1", unread=True)], "acct")
        reconciler.mark_as_read("1")

        # A poll that started before the local change still reports it unread
        reconciler.upsert([notification(thread_id="1", unread=True)], "acct")

        assert store.notifications["1"].unread is False

    def test_newer_remote_activity_marks_unread_again(self, reconciler, store, notification, clock):
        reconciler.upsert([notification(thread_id="1", unread=True)], "acct")
        reconciler.mark_as_read("1")

        newer = clock.now + timedelta(minutes=1)
        reconciler.upsert([notification(thread_id="1", unread=True, updated_at=newer)], "acct")

        assert store.notifications["1"].unread is True
        assert store.notifications["1"].updated_at == newer

    def test_remote_read_is_applied(self, reconciler, store, notification):
        reconciler.upsert([notification(thread_id="1", unread=True)], "acct")
        reconciler.upsert([notification(thread_id="1", unread=False)], "acct")

        assert store.notifications["1"].unread is False


class TestApplyPage:
    def test_first_page_saves_cursor_after_records(self, reconciler, store, notification, clock):
        reconciler.apply_page(
            _page([notification(thread_id="1")], last_modified="LM1", poll_interval=90), "acct"
        )

        cursor = store.get_cursor("acct")
        assert cursor.last_modified == "LM1"
        assert cursor.poll_interval == 90
        assert cursor.last_polled_at == clock.now
        assert "1" in store.notifications

    def test_later_page_leaves_cursor(self, reconciler, store, notification):
        reconciler.apply_page(_page([notification(thread_id="1")], last_modified="LM1"), "acct")

        reconciler.apply_page(_page([notification(thread_id="2")], first=False, last_modified="LM9"), "acct")

        assert store.get_cursor("acct").last_modified == "LM1"
        assert "2" in store.notifications

    def test_not_modified_page_writes_nothing(self, reconciler, store, notification):
        reconciler.apply_page(_page([notification(thread_id="1")], last_modified="LM1"), "acct")
        writes = store.write_count

        result = reconciler.apply_page(_page([], last_modified="LM2", was_modified=False), "acct")

        assert result.changed == 0
        assert store.write_count == writes
        assert store.get_cursor("acct").last_modified == "LM1"

    def test_empty_first_page_still_advances_cursor(self, reconciler, store):
        reconciler.apply_page(_page([], last_modified="LM1"), "acct")

        assert store.get_cursor("acct").last_modified == "LM1"
        assert store.notifications == {}


class TestLocalActions:
    def test_mark_unknown_thread(self, reconciler):
        assert reconciler.mark_as_read("missing") is False
        assert reconciler.archive("missing") is False

    def test_mark_all_as_read(self, reconciler, store, notification, clock):
        reconciler.upsert([notification(thread_id=str(i)) for i in range(3)], "acct")
        reconciler.upsert([notification(thread_id="other")], "other-acct")

        assert reconciler.mark_all_as_read("acct") == 3
        assert all(not store.notifications[str(i)].unread for i in range(3))
        assert store.notifications["0"].locally_modified_at == clock.now
        assert store.notifications["other"].unread is True

    def test_unarchive(self, reconciler, store, notification):
        reconciler.upsert([notification(thread_id="1")], "acct")
        reconciler.archive("1")
        reconciler.unarchive("1")

        assert store.notifications["1"].archived is False

    def test_unsnooze_expired(self, reconciler, store, notification, clock):
        reconciler.upsert([notification(thread_id="1"), notification(thread_id="2")], "acct")
        reconciler.snooze("1", clock.now + timedelta(minutes=5))
        reconciler.snooze("2", clock.now + timedelta(hours=5))

        woken = reconciler.unsnooze_expired(clock.now + timedelta(minutes=10))

        assert woken == 1
        assert store.notifications["1"].snoozed is False
        assert store.notifications["1"].snooze_until is None
        assert store.notifications["2"].snoozed is True

    def test_delete(self, reconciler, store, notification):
        reconciler.upsert([notification(thread_id="1")], "acct")

        assert reconciler.delete("1") is True
        assert reconciler.delete("1") is False
        assert store.notifications == {}

    def test_list_hides_archived_and_snoozed(self, reconciler, notification, clock):
        reconciler.upsert(
            [
                notification(thread_id="old", updated_at=BASE_TIME),
                notification(thread_id="new", updated_at=BASE_TIME + timedelta(minutes=1)),
                notification(thread_id="archived"),
                notification(thread_id="snoozed"),
            ],
            "acct",
        )
        reconciler.archive("archived")
        reconciler.snooze("snoozed", clock.now + timedelta(hours=1))

        visible = [n.thread_id for n in reconciler.list_notifications("acct")]
        everything = reconciler.list_notifications("acct", include_archived=True, include_snoozed=True)

        assert visible[0] == "new"
        assert set(visible) == {"old", "new"}
        assert len(everything) == 4

    def test_expired_snooze_is_visible(self, reconciler, notification, clock):
        reconciler.upsert([notification(thread_id="1")], "acct")
        reconciler.snooze("1", clock.now + timedelta(minutes=1))

        later = clock.now + timedelta(minutes=2)

        assert [n.thread_id for n in reconciler.list_notifications("acct", now=later)] == ["1"]


class TestNewUnread:
    def test_reports_inserted_unread_only(self, reconciler, notification):
        result = reconciler.upsert(
            [notification(thread_id="1"), notification(thread_id="2", unread=False)], "acct"
        )

        assert result.new_unread_ids == ["1"]

    def test_known_unread_not_reported_again(self, reconciler, notification):
        reconciler.upsert([notification(thread_id="1")], "acct")

        result = reconciler.upsert(
            [notification(thread_id="1", title="Renamed", updated_at=BASE_TIME + timedelta(minutes=5)),
             notification(thread_id="2")],
            "acct",
        )

        assert result.updated == 1
        assert result.new_unread_ids == ["2"]

    def test_read_to_unread_is_reported(self, reconciler, notification, clock):
        reconciler.upsert([notification(thread_id="1")], "acct")
        reconciler.mark_as_read("1")

        stale = reconciler.upsert([notification(thread_id="1")], "acct")
        assert stale.new_unread_ids == []

        newer = clock.now + timedelta(minutes=1)
        result = reconciler.upsert([notification(thread_id="1", updated_at=newer)], "acct")
        assert result.new_unread_ids == ["1"]


class TestReads:
    def test_reads_wait_for_writer(self, reconciler, notification):
        reconciler.upsert([notification(thread_id="1")], "acct")
        results = []
        reader = threading.Thread(
            target=lambda: results.append(reconciler.get_notifications(["1"]))
        )

        with reconciler.lock:
            reader.start()
            reader.join(0.2)
            assert reader.is_alive()
            assert results == []
        reader.join(5)

        assert list(results[0]) == ["1"]
        assert reconciler.get_notification("1").thread_id == "1"
        assert reconciler.get_notification("missing") is None
