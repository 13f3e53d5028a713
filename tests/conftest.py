"""Shared fixtures for the inbox agent tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from github_inbox_agent.db import MemoryStore
from github_inbox_agent.models import GitHubNotification
from github_inbox_agent.reconciler import Reconciler

BASE_TIME = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


@pytest.fixture
def api_record():
    """Factory for one element of a ``GET /notifications`` response."""

    def make(
        thread_id="1",
        unread=True,
        reason="mention",
        updated_at=BASE_TIME,
        title="Fix the flaky test",
        subject_type="PullRequest",
        repo="octo-org/octo-repo",
        last_read_at=None,
    ):
        owner, name = repo.split("/")
        return {
            "id": str(thread_id),
            "unread": unread,
            "reason": reason,
            "updated_at": _iso(updated_at),
            "last_read_at": _iso(last_read_at) if last_read_at else None,
            "subject": {
                "title": title,
                "type": subject_type,
                "url": f"https://api.github.com/repos/{repo}/pulls/{thread_id}",
                "latest_comment_url": None,
            },
            "repository": {
                "id": sum(ord(c) for c in repo),
                "name": name,
                "full_name": repo,
                "private": False,
                "owner": {"login": owner, "avatar_url": f"https://avatars.example/{owner}"},
            },
            "url": f"https://api.github.com/notifications/threads/{thread_id}",
        }

    return make


@pytest.fixture
def notification(api_record):
    """Factory for parsed ``GitHubNotification`` objects."""

    def make(**kwargs):
        return GitHubNotification.from_api(api_record(**kwargs))

    return make


@pytest.fixture
def clock():
    """Mutable clock: ``clock.now`` is returned by ``clock()``, ``clock.advance(s)`` moves it."""

    class Clock:
        def __init__(self):
            self.now = BASE_TIME + timedelta(hours=1)

        def __call__(self):
            return self.now

        def advance(self, seconds):
            self.now += timedelta(seconds=seconds)

    return Clock()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def reconciler(store, clock):
    return Reconciler(store, clock=clock)


@pytest.fixture
def response():
    """Factory for stubbed ``requests.Response`` objects."""

    def make(status=200, body=None, headers=None, text=""):
        resp = MagicMock()
        resp.status_code = status
        resp.headers = headers or {}
        resp.text = text
        if isinstance(body, Exception):
            resp.json.side_effect = body
        else:
            resp.json.return_value = body
        return resp

    return make
