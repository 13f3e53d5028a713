"""Error types raised by the GitHub client and the local store."""

from datetime import datetime, timezone
from typing import Optional


class GitHubAPIError(Exception):
    """Base class for failures talking to the notifications API."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationFailed(GitHubAPIError):
    """The token was rejected (HTTP 401). Not retried automatically."""

    def __init__(self, message: str = "GitHub rejected the access token"):
        super().__init__(message)


class RateLimited(GitHubAPIError):
    """The API refused the request because the rate limit is exhausted (HTTP 403)."""

    def __init__(self, reset_at: Optional[datetime] = None):
        if reset_at:
            message = f"Rate limited until {reset_at.isoformat()}"
        else:
            message = "Rate limited"
        super().__init__(message)
        self.reset_at = reset_at

    def retry_after(self, now: Optional[datetime] = None) -> float:
        """
        Seconds left until the rate limit window resets.

        Args:
            now: Reference time (defaults to the current UTC time).

        Returns:
            Seconds until reset, or 0 if the reset time is unknown or already past.
        """
        if self.reset_at is None:
            return 0.0
        now = now or datetime.now(timezone.utc)
        return max(0.0, (self.reset_at - now).total_seconds())


class ServerError(GitHubAPIError):
    """Any other non-2xx response."""

    def __init__(self, status: int, body: str):
        super().__init__(f"GitHub API returned {status}: {body[:200]}")
        self.status = status
        self.body = body


class NetworkError(GitHubAPIError):
    """Transport-level failure (DNS, connection reset, timeout). Transient."""


class DecodingError(GitHubAPIError):
    """The response body could not be decoded into notification records."""


class StoreError(Exception):
    """A write to the local notification store failed."""
