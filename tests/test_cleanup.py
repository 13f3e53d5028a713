"""Tests for removing signed-out account data."""

from github_inbox_agent.cleanup import cleanup_account, cleanup_orphans


class TestCleanup:
    def test_cleanup_account(self, reconciler, store, notification):
        reconciler.upsert([notification(thread_id="1"), notification(thread_id="2")], "gone")
        reconciler.upsert([notification(thread_id="3")], "kept")
        reconciler.cursor_store.save("gone", "LM1")

        assert cleanup_account(reconciler, "gone") == 2
        assert set(store.notifications) == {"3"}
        assert store.get_cursor("gone") is None

    def test_cleanup_orphans(self, reconciler, store, notification):
        reconciler.upsert([notification(thread_id="1")], "gone")
        reconciler.upsert([notification(thread_id="2")], "kept")
        reconciler.cursor_store.save("stale-cursor", "LM1")

        removed = cleanup_orphans(reconciler, ["kept"])

        assert removed == ["gone", "stale-cursor"]
        assert set(store.notifications) == {"2"}
        assert store.account_ids() == {"kept"}

    def test_no_signed_in_accounts_keeps_everything(self, reconciler, store, notification):
        reconciler.upsert([notification(thread_id="1")], "someone")

        assert cleanup_orphans(reconciler, []) == []
        assert set(store.notifications) == {"1"}
