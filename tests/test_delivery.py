"""Tests for alert content and delivery selection."""

from datetime import datetime

from github_inbox_agent.delivery import NotificationCategory, notification_content, select_for_delivery
from github_inbox_agent.models import CachedNotification, Scope, ScopeRule


def _cached(notification, **kwargs):
    return CachedNotification.from_remote(notification(**kwargs), "acct")


class TestNotificationContent:
    def test_mention(self, notification):
        content = notification_content(_cached(notification, reason="mention", title="Ping"), "octocat")

        assert content.title == "@octocat mentioned in octo-org/octo-repo"
        assert content.body == "Ping"
        assert content.subtitle == "Pull Request"
        assert content.category == NotificationCategory.MENTION
        assert content.thread_group == "github-octo-org/octo-repo"
        assert content.user_info["thread_id"] == "1"

    def test_mention_without_login(self, notification):
        content = notification_content(_cached(notification, reason="team_mention"))

        assert content.title == "Mentioned in octo-org/octo-repo"
        assert content.category == NotificationCategory.MENTION

    def test_review_request(self, notification):
        content = notification_content(_cached(notification, reason="review_requested"), "octocat")

        assert content.title == "Review requested in octo-org/octo-repo"
        assert content.category == NotificationCategory.REVIEW_REQUEST

    def test_other_reasons_use_repository(self, notification):
        content = notification_content(_cached(notification, reason="subscribed"), "octocat")

        assert content.title == "octo-org/octo-repo"
        assert content.category == NotificationCategory.NOTIFICATION


class TestSelectForDelivery:
    def test_filters_by_scope(self, notification):
        scope = Scope(name="Work", rules=[ScopeRule(organization_pattern="octo-org")])
        records = [
            _cached(notification, thread_id="1", repo="octo-org/api"),
            _cached(notification, thread_id="2", repo="someone/else"),
            _cached(notification, thread_id="3", repo="octo-org/web", unread=False),
        ]

        selected = select_for_delivery(records, scope, datetime(2024, 5, 5, 12, 0))

        assert [n.thread_id for n in selected] == ["1"]
