"""Scope definitions: JSON file loading and default scope seeding."""

import json
import logging
import os
from typing import Any, Dict, List, Optional

from .models import NotificationReason, Scope, ScopeRule

logger = logging.getLogger(__name__)


def default_scopes() -> List[Scope]:
    """The scopes created on first launch: an "All Notifications" default plus Work and Personal."""
    return [
        Scope(name="All Notifications", emoji="🔔", color_hex="#007AFF",
              quiet_hours_days=[], is_default=True, sort_order=0),
        Scope(name="Work", emoji="💼", color_hex="#FF9500",
              quiet_hours_days=[], sort_order=1),
        Scope(name="Personal", emoji="🏠", color_hex="#34C759",
              quiet_hours_days=[], sort_order=2),
    ]


def rule_from_dict(data: Dict[str, Any]) -> ScopeRule:
    rule = ScopeRule(
        repository_pattern=data.get("repository_pattern"),
        organization_pattern=data.get("organization_pattern"),
        reasons=[NotificationReason(r) for r in data.get("reasons", [])],
        send_push_notification=data.get("send_push_notification", True),
        is_high_priority=data.get("is_high_priority", False),
        is_muted=data.get("is_muted", False),
    )
    if data.get("id"):
        rule.id = data["id"]
    return rule


def rule_to_dict(rule: ScopeRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "repository_pattern": rule.repository_pattern,
        "organization_pattern": rule.organization_pattern,
        "reasons": [r.value for r in rule.reasons],
        "send_push_notification": rule.send_push_notification,
        "is_high_priority": rule.is_high_priority,
        "is_muted": rule.is_muted,
    }


def scope_from_dict(data: Dict[str, Any]) -> Scope:
    """
    Build a scope from its JSON form.

    Raises:
        ValueError: If the scope has no name, a reason is unknown, or quiet hours are out of range.
    """
    if not data.get("name"):
        raise ValueError("Scope is missing a name")

    quiet = data.get("quiet_hours", {})
    scope = Scope(
        name=data["name"],
        emoji=data.get("emoji", "🔔"),
        color_hex=data.get("color_hex", "#007AFF"),
        rules=[rule_from_dict(r) for r in data.get("rules", [])],
        is_default=data.get("is_default", False),
        focus_mode_identifier=data.get("focus_mode_identifier"),
        quiet_hours_enabled=quiet.get("enabled", False),
        quiet_hours_start=int(quiet.get("start", 22)),
        quiet_hours_end=int(quiet.get("end", 8)),
        quiet_hours_days=[int(d) for d in quiet.get("days", [1, 2, 3, 4, 5, 6, 7])],
        sort_order=data.get("sort_order", 0),
    )
    if data.get("id"):
        scope.id = data["id"]

    for hour in (scope.quiet_hours_start, scope.quiet_hours_end):
        if not 0 <= hour <= 23:
            raise ValueError(f"Scope {scope.name!r}: quiet hour {hour} is not in 0-23")
    for day in scope.quiet_hours_days:
        if not 1 <= day <= 7:
            raise ValueError(f"Scope {scope.name!r}: weekday {day} is not in 1-7 (1 = Sunday)")
    return scope


def scope_to_dict(scope: Scope) -> Dict[str, Any]:
    return {
        "id": scope.id,
        "name": scope.name,
        "emoji": scope.emoji,
        "color_hex": scope.color_hex,
        "is_default": scope.is_default,
        "focus_mode_identifier": scope.focus_mode_identifier,
        "sort_order": scope.sort_order,
        "quiet_hours": {
            "enabled": scope.quiet_hours_enabled,
            "start": scope.quiet_hours_start,
            "end": scope.quiet_hours_end,
            "days": list(scope.quiet_hours_days),
        },
        "rules": [rule_to_dict(r) for r in scope.rules],
    }


def load_scopes(path: Optional[str]) -> List[Scope]:
    """
    Load scopes from a JSON file, seeding the defaults when there are none.

    Args:
        path: Path to a JSON file holding a list of scope objects. When the path
            is None, missing or holds an empty list, the default scopes are
            returned (and written to the path if one was given).

    Returns:
        Scopes sorted by sort_order.
    """
    scopes: List[Scope] = []
    if path and os.path.exists(path):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{path} must contain a JSON list of scopes")
        scopes = [scope_from_dict(item) for item in data]

    if not scopes:
        logger.info("No scopes configured; seeding default scopes")
        scopes = default_scopes()
        if path:
            save_scopes(path, scopes)

    return sorted(scopes, key=lambda s: s.sort_order)


def save_scopes(path: str, scopes: List[Scope]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump([scope_to_dict(s) for s in scopes], f, indent=2, ensure_ascii=False)


def find_scope(scopes: List[Scope], name: str) -> Optional[Scope]:
    """Case-insensitive lookup by scope name or id."""
    for scope in scopes:
        if scope.id == name or scope.name.lower() == name.lower():
            return scope
    return None
