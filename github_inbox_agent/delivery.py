"""Local push-notification content and delivery selection."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from .matcher import should_deliver
from .models import CachedNotification, NotificationReason, Scope


class NotificationCategory(str, Enum):
    NOTIFICATION = "NOTIFICATION"
    MENTION = "MENTION_NOTIFICATION"
    REVIEW_REQUEST = "REVIEW_REQUEST_NOTIFICATION"


@dataclass
class NotificationContent:
    """What the platform notification layer needs to show one alert."""
    id: str
    title: str
    body: str
    thread_group: str
    category: NotificationCategory
    subtitle: Optional[str] = None
    user_info: Dict[str, str] = field(default_factory=dict)
    play_sound: bool = True


def notification_content(
    notification: CachedNotification, username: Optional[str] = None
) -> NotificationContent:
    """
    Build alert content for a cached notification.

    Args:
        notification: The thread to announce.
        username: GitHub login of the account owner, used in mention titles.
            Mention titles omit the handle when it is unknown.
    """
    repo = notification.repository_full_name
    reason = notification.reason

    if reason in (NotificationReason.MENTION, NotificationReason.TEAM_MENTION):
        title = f"@{username} mentioned in {repo}" if username else f"Mentioned in {repo}"
        category = NotificationCategory.MENTION
    elif reason == NotificationReason.REVIEW_REQUESTED:
        title = f"Review requested in {repo}"
        category = NotificationCategory.REVIEW_REQUEST
    elif reason == NotificationReason.ASSIGN:
        title = f"Assigned to you in {repo}"
        category = NotificationCategory.NOTIFICATION
    else:
        title = repo
        category = NotificationCategory.NOTIFICATION

    return NotificationContent(
        id=notification.thread_id,
        title=title,
        body=notification.subject_title,
        subtitle=notification.subject_type.display_name,
        thread_group=f"github-{repo}",
        category=category,
        user_info={
            "thread_id": notification.thread_id,
            "account_id": notification.account_id,
            "repository_full_name": repo,
        },
    )


def select_for_delivery(
    notifications: Iterable[CachedNotification],
    scope: Scope,
    now: Optional[datetime] = None,
) -> List[CachedNotification]:
    """Notifications that should raise a local alert under the active scope."""
    return [n for n in notifications if should_deliver(n, scope, now)]
