"""Configuration management."""

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class GitHubConfig:
    """GitHub REST API configuration."""
    api_url: str = "https://api.github.com"
    api_version: str = "2022-11-28"
    per_page: int = 100         # API maximum
    max_pages: int = 50         # pagination cap per fetch (5000 notifications)
    include_read: bool = True   # "all" query parameter
    participating: bool = False
    timeout: float = 30.0       # seconds per request


@dataclass
class PollingConfig:
    """Polling scheduler configuration."""
    default_interval: int = 60      # used until the server advises X-Poll-Interval
    min_interval: int = 10          # floor applied to any interval
    subscriber_buffer: int = 100    # pages buffered per subscriber before dropping


@dataclass
class AppConfig:
    """Complete application configuration."""
    db_path: str
    accounts: List[str]
    github: GitHubConfig = field(default_factory=GitHubConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    scopes_file: Optional[str] = None
    active_scope: Optional[str] = None


def _parse_list_env(key: str, default: List[str]) -> List[str]:
    """Parse comma-separated list from environment variable."""
    value = os.getenv(key, "")
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_bool_env(key: str, default: bool) -> bool:
    return os.getenv(key, str(default)).strip().lower() in ("1", "true", "yes", "on")


def _parse_int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _parse_float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


def load_config() -> AppConfig:
    """
    Load configuration from environment variables.

    Raises:
        ValueError: If a numeric setting cannot be parsed or is out of range.
    """
    # Database
    db_path = os.getenv("DB_PATH", "inbox_state.db")

    # Accounts polled by this process; tokens come from the credential provider
    accounts = _parse_list_env("GITHUB_ACCOUNTS", ["default"])

    github = GitHubConfig(
        api_url=os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        api_version=os.getenv("GITHUB_API_VERSION", "2022-11-28"),
        max_pages=_parse_int_env("GITHUB_MAX_PAGES", 50),
        include_read=_parse_bool_env("GITHUB_INCLUDE_READ", True),
        participating=_parse_bool_env("GITHUB_PARTICIPATING", False),
        timeout=_parse_float_env("GITHUB_TIMEOUT", 30.0),
    )

    polling = PollingConfig(
        default_interval=_parse_int_env("POLL_INTERVAL", 60),
        min_interval=_parse_int_env("MIN_POLL_INTERVAL", 10),
        subscriber_buffer=_parse_int_env("SUBSCRIBER_BUFFER", 100),
    )

    if github.max_pages < 1:
        raise ValueError("GITHUB_MAX_PAGES must be at least 1")
    if polling.min_interval < 1 or polling.default_interval < polling.min_interval:
        raise ValueError("POLL_INTERVAL must be >= MIN_POLL_INTERVAL >= 1")

    return AppConfig(
        db_path=db_path,
        accounts=accounts,
        github=github,
        polling=polling,
        scopes_file=os.getenv("SCOPES_FILE") or None,
        active_scope=os.getenv("ACTIVE_SCOPE") or None,
    )
