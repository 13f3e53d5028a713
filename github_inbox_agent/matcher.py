"""Scope and rule matching for notification filtering and delivery."""

import re
from datetime import datetime
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern, Union

from .models import CachedNotification, GitHubNotification, NotificationReason, Scope, ScopeRule

AnyNotification = Union[CachedNotification, GitHubNotification]


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> Pattern:
    # "*" is the only wildcard; everything else is literal
    regex = ".*".join(re.escape(part) for part in pattern.split("*"))
    return re.compile(f"^{regex}$", re.IGNORECASE | re.DOTALL)


def matches_pattern(pattern: str, value: str) -> bool:
    """
    Match a repository or organization glob.

    ``*`` alone matches everything, a pattern containing ``*`` is an anchored
    case-insensitive glob, anything else is a case-insensitive exact match.
    """
    if pattern == "*":
        return True
    if "*" in pattern:
        return _compile_glob(pattern).match(value) is not None
    return pattern.lower() == value.lower()


def _fields(notification: AnyNotification):
    """(full repository name, owner login, reason) for either notification type."""
    if isinstance(notification, GitHubNotification):
        return (
            notification.repository.full_name,
            notification.repository.owner_login,
            notification.reason,
        )
    return (
        notification.repository_full_name,
        notification.repository_owner,
        notification.reason,
    )


def rule_matches(rule: ScopeRule, repository: str, organization: str, reason: NotificationReason) -> bool:
    """All present predicates must hold; absent predicates are vacuously true."""
    if rule.repository_pattern is not None and not matches_pattern(rule.repository_pattern, repository):
        return False
    if rule.organization_pattern is not None and not matches_pattern(rule.organization_pattern, organization):
        return False
    if rule.reasons and reason not in rule.reasons:
        return False
    return True


def matching_rule(notification: AnyNotification, scope: Scope) -> Optional[ScopeRule]:
    """First rule of the scope that matches the notification, in rule order."""
    repository, organization, reason = _fields(notification)
    for rule in scope.rules:
        if rule_matches(rule, repository, organization, reason):
            return rule
    return None


def matches(notification: AnyNotification, scope: Scope) -> bool:
    """True if the scope is the default scope or any of its rules matches."""
    if scope.is_default:
        return True
    return matching_rule(notification, scope) is not None


def matching_scopes(notification: AnyNotification, scopes: Iterable[Scope]) -> List[Scope]:
    return [scope for scope in scopes if matches(notification, scope)]


def _weekday_number(moment: datetime) -> int:
    """1 = Sunday ... 7 = Saturday."""
    return moment.isoweekday() % 7 + 1


def is_in_quiet_hours(scope: Scope, now: Optional[datetime] = None) -> bool:
    """
    Whether the scope's quiet-hours window is active.

    Evaluated in local time: naive datetimes are taken as local, aware ones are
    converted to the local timezone.

    Args:
        scope: Scope to check.
        now: Moment to evaluate (defaults to the current local time).
    """
    if not scope.quiet_hours_enabled:
        return False

    if now is None:
        now = datetime.now()
    elif now.tzinfo is not None:
        now = now.astimezone()

    if _weekday_number(now) not in scope.quiet_hours_days:
        return False

    start, end, hour = scope.quiet_hours_start, scope.quiet_hours_end, now.hour
    if start < end:
        return start <= hour < end
    # Window spans midnight
    return hour >= start or hour < end


def should_deliver(notification: CachedNotification, scope: Scope, now: Optional[datetime] = None) -> bool:
    """
    Decide whether a local push notification should be shown for this thread.

    The thread must be unread, not archived and not snoozed; the scope must
    match and not be in quiet hours; the matching rule (if the scope has rules)
    must not be muted and must have push enabled.
    """
    if now is None:
        now = datetime.now()
    if not notification.unread or notification.archived:
        return False
    # Naive datetimes are local; snooze_until is stored aware
    if notification.is_snoozed_at(now.astimezone()):
        return False
    if is_in_quiet_hours(scope, now):
        return False

    rule = matching_rule(notification, scope)
    if rule is None:
        return scope.is_default
    return rule.send_push_notification and not rule.is_muted
