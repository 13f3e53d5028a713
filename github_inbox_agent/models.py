"""Data models for GitHub notifications, sync cursors and scopes."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import DecodingError


class NotificationReason(str, Enum):
    """Why GitHub delivered a notification thread."""
    ASSIGN = "assign"
    AUTHOR = "author"
    CI_ACTIVITY = "ci_activity"
    COMMENT = "comment"
    INVITATION = "invitation"
    MANUAL = "manual"
    MENTION = "mention"
    REVIEW_REQUESTED = "review_requested"
    SECURITY_ALERT = "security_alert"
    STATE_CHANGE = "state_change"
    SUBSCRIBED = "subscribed"
    TEAM_MENTION = "team_mention"

    @classmethod
    def parse(cls, value: Optional[str]) -> "NotificationReason":
        """Map a raw API reason to the enum, falling back to SUBSCRIBED."""
        try:
            return cls(value)
        except ValueError:
            return cls.SUBSCRIBED

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title().replace("Ci ", "CI ")


class SubjectType(str, Enum):
    """Kind of object a notification thread is about."""
    ISSUE = "Issue"
    PULL_REQUEST = "PullRequest"
    RELEASE = "Release"
    DISCUSSION = "Discussion"
    COMMIT = "Commit"
    REPOSITORY_INVITATION = "RepositoryInvitation"
    SECURITY_ADVISORY = "RepositoryVulnerabilityAlert"
    CHECK_SUITE = "CheckSuite"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SubjectType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return _SUBJECT_DISPLAY_NAMES[self]


_SUBJECT_DISPLAY_NAMES = {
    SubjectType.ISSUE: "Issue",
    SubjectType.PULL_REQUEST: "Pull Request",
    SubjectType.RELEASE: "Release",
    SubjectType.DISCUSSION: "Discussion",
    SubjectType.COMMIT: "Commit",
    SubjectType.REPOSITORY_INVITATION: "Invitation",
    SubjectType.SECURITY_ADVISORY: "Security Advisory",
    SubjectType.CHECK_SUITE: "Check Suite",
    SubjectType.UNKNOWN: "Notification",
}


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO8601 timestamp (``2024-05-01T10:00:00Z``) into an aware UTC datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Format an aware datetime as ISO8601 UTC with a ``Z`` suffix."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Subject:
    """What the notification thread is about."""
    title: str
    type: SubjectType
    url: Optional[str] = None                 # API URL of the issue/PR/...
    latest_comment_url: Optional[str] = None


@dataclass
class Repository:
    """Repository a notification thread belongs to."""
    id: int
    name: str
    full_name: str      # "owner/name"
    owner_login: str
    owner_avatar_url: Optional[str] = None
    private: bool = False


@dataclass
class GitHubNotification:
    """A notification thread as returned by ``GET /notifications``."""
    id: str             # thread id, unique per account
    unread: bool
    reason: NotificationReason
    updated_at: datetime
    subject: Subject
    repository: Repository
    last_read_at: Optional[datetime] = None
    url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "GitHubNotification":
        """
        Build a notification from one element of the API response array.

        Args:
            data: Decoded JSON object for one thread.

        Returns:
            The parsed notification.

        Raises:
            DecodingError: If required fields are missing or malformed.
        """
        try:
            subject = data["subject"]
            repo = data["repository"]
            owner = repo["owner"]
            return cls(
                id=str(data["id"]),
                unread=bool(data["unread"]),
                reason=NotificationReason.parse(data.get("reason")),
                updated_at=parse_timestamp(data["updated_at"]),
                last_read_at=parse_timestamp(data.get("last_read_at")),
                subject=Subject(
                    title=subject["title"],
                    type=SubjectType.parse(subject.get("type")),
                    url=subject.get("url"),
                    latest_comment_url=subject.get("latest_comment_url"),
                ),
                repository=Repository(
                    id=int(repo["id"]),
                    name=repo["name"],
                    full_name=repo["full_name"],
                    owner_login=owner["login"],
                    owner_avatar_url=owner.get("avatar_url"),
                    private=bool(repo.get("private", False)),
                ),
                url=data.get("url"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodingError(f"Malformed notification record: {e!r}") from e


@dataclass
class CachedNotification:
    """
    Locally cached notification thread.

    Remote-owned fields are refreshed by reconciliation. The local-only fields
    (archived, snoozed, snooze_until) are only changed by explicit user actions.
    """
    thread_id: str
    account_id: str
    unread: bool
    reason: NotificationReason
    updated_at: datetime
    subject_title: str
    subject_type: SubjectType
    repository_id: int
    repository_name: str
    repository_full_name: str
    repository_owner: str
    last_read_at: Optional[datetime] = None
    subject_url: Optional[str] = None
    latest_comment_url: Optional[str] = None
    repository_avatar_url: Optional[str] = None
    is_private_repository: bool = False
    # Local-only state
    archived: bool = False
    snoozed: bool = False
    snooze_until: Optional[datetime] = None
    # Bookkeeping
    fetched_at: datetime = field(default_factory=utcnow)
    locally_modified_at: Optional[datetime] = None

    @classmethod
    def from_remote(
        cls,
        notification: GitHubNotification,
        account_id: str,
        fetched_at: Optional[datetime] = None,
    ) -> "CachedNotification":
        return cls(
            thread_id=notification.id,
            account_id=account_id,
            unread=notification.unread,
            reason=notification.reason,
            updated_at=notification.updated_at,
            last_read_at=notification.last_read_at,
            subject_title=notification.subject.title,
            subject_type=notification.subject.type,
            subject_url=notification.subject.url,
            latest_comment_url=notification.subject.latest_comment_url,
            repository_id=notification.repository.id,
            repository_name=notification.repository.name,
            repository_full_name=notification.repository.full_name,
            repository_owner=notification.repository.owner_login,
            repository_avatar_url=notification.repository.owner_avatar_url,
            is_private_repository=notification.repository.private,
            fetched_at=fetched_at or utcnow(),
        )

    @property
    def web_url(self) -> Optional[str]:
        """Browser URL for the subject, derived from its API URL."""
        if not self.subject_url:
            return None
        url = (
            self.subject_url
            .replace("api.github.com/repos", "github.com")
            .replace("/pulls/", "/pull/")
        )
        if "/comments/" in url:
            url = url[:url.index("/comments/")]
        return url

    def is_snoozed_at(self, now: datetime) -> bool:
        if not self.snoozed:
            return False
        return self.snooze_until is None or self.snooze_until > now


@dataclass
class SyncCursor:
    """Per-account conditional-request state persisted between polls."""
    account_id: str
    last_modified: Optional[str] = None     # opaque revalidation token; None = fetch everything
    last_polled_at: Optional[datetime] = None
    poll_interval: int = 60                 # seconds, as advised by X-Poll-Interval


@dataclass
class RateLimitInfo:
    """Rate limit counters taken from the X-RateLimit-* response headers."""
    limit: int
    remaining: int
    reset_at: datetime
    used: int = 0


@dataclass
class NotificationPage:
    """One page of a notification fetch."""
    notifications: List[GitHubNotification]
    is_first_page: bool
    has_more_pages: bool
    last_modified: Optional[str] = None     # only meaningful on the first page
    poll_interval: Optional[int] = None
    rate_limit: Optional[RateLimitInfo] = None
    was_modified: bool = True               # False for a 304 Not Modified answer


@dataclass
class GitHubUser:
    """The authenticated user."""
    id: int
    login: str
    name: Optional[str] = None
    email: Optional[str] = None
    avatar_url: Optional[str] = None


@dataclass
class ScopeRule:
    """A single repository/organization/reason predicate inside a scope."""
    repository_pattern: Optional[str] = None    # glob on "owner/name"
    organization_pattern: Optional[str] = None  # glob on the owner login
    reasons: List[NotificationReason] = field(default_factory=list)  # empty = all
    send_push_notification: bool = True
    is_high_priority: bool = False
    is_muted: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class Scope:
    """A named group of rules, typically bound to a Focus mode."""
    name: str
    emoji: str = "🔔"
    color_hex: str = "#007AFF"
    rules: List[ScopeRule] = field(default_factory=list)
    is_default: bool = False
    focus_mode_identifier: Optional[str] = None
    quiet_hours_enabled: bool = False
    quiet_hours_start: int = 22
    quiet_hours_end: int = 8
    # Weekdays numbered 1 (Sunday) through 7 (Saturday)
    quiet_hours_days: List[int] = field(default_factory=lambda: [1, 2, 3, 4, 5, 6, 7])
    sort_order: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
