"""GitHub REST client for the notifications API."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

import requests

from .config import GitHubConfig
from .errors import (
    AuthenticationFailed,
    DecodingError,
    NetworkError,
    RateLimited,
    ServerError,
)
from .models import (
    GitHubNotification,
    GitHubUser,
    NotificationPage,
    RateLimitInfo,
    format_timestamp,
)

logger = logging.getLogger(__name__)


def parse_next_link(link_header: Optional[str]) -> Optional[str]:
    """
    Extract the ``rel="next"`` URL from a Link header.

    Args:
        link_header: Header value such as ``<https://...&page=2>; rel="next", <...>; rel="last"``.

    Returns:
        The next page URL, or None if there is no next page.
    """
    if not link_header:
        return None
    for link in link_header.split(","):
        parts = [part.strip() for part in link.split(";")]
        if len(parts) < 2:
            continue
        url_part, params = parts[0], parts[1:]
        if any(param.replace(" ", "") == 'rel="next"' for param in params):
            return url_part.strip("<>")
    return None


def _header_int(headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def parse_rate_limit(headers) -> Optional[RateLimitInfo]:
    """Read the X-RateLimit-* headers; None unless limit, remaining and reset are all present."""
    limit = _header_int(headers, "X-RateLimit-Limit")
    remaining = _header_int(headers, "X-RateLimit-Remaining")
    reset = _header_int(headers, "X-RateLimit-Reset")
    if limit is None or remaining is None or reset is None:
        return None
    return RateLimitInfo(
        limit=limit,
        remaining=remaining,
        reset_at=datetime.fromtimestamp(reset, tz=timezone.utc),
        used=_header_int(headers, "X-RateLimit-Used") or 0,
    )


def _raise_for_status(response: requests.Response) -> None:
    """Map a non-2xx response onto the error taxonomy."""
    status = response.status_code
    if 200 <= status < 300:
        return
    if status == 401:
        raise AuthenticationFailed()
    if status in (403, 429):
        reset = _header_int(response.headers, "X-RateLimit-Reset")
        reset_at = datetime.fromtimestamp(reset, tz=timezone.utc) if reset is not None else None
        raise RateLimited(reset_at)
    raise ServerError(status, response.text or "")


class GitHubAPIClient:
    """Client for the GitHub notifications endpoints."""

    def __init__(self, config: GitHubConfig, session: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            config: GitHub API configuration.
            session: Optional pre-built session (tests inject a stub here).
        """
        self.config = config
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def _headers(self, token: str) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": self.config.api_version,
        }

    def _send(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        request_headers = self._headers(token)
        if headers:
            request_headers.update(headers)
        try:
            return self.session.request(
                method,
                url,
                params=params,
                headers=request_headers,
                json=json,
                timeout=self.config.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {url} failed: {e}") from e

    def fetch_pages(
        self,
        token: str,
        last_modified: Optional[str] = None,
        include_read: Optional[bool] = None,
        participating: Optional[bool] = None,
    ) -> Iterator[NotificationPage]:
        """
        Fetch notifications page by page.

        The revalidation cursor is sent as ``If-Modified-Since`` on the first
        request only; later pages follow the literal ``rel="next"`` URLs.

        Args:
            token: Bearer token.
            last_modified: Cursor from the previous successful fetch, if any.
            include_read: Include read threads (defaults to config).
            participating: Only threads the user participates in (defaults to config).

        Yields:
            NotificationPage objects in API order. A 304 answer yields one empty
            page with ``was_modified=False`` and ends the sequence.

        Raises:
            AuthenticationFailed, RateLimited, ServerError, NetworkError, DecodingError.
        """
        if include_read is None:
            include_read = self.config.include_read
        if participating is None:
            participating = self.config.participating

        url = f"{self.config.api_url}/notifications"
        params: Optional[Dict[str, str]] = {"per_page": str(self.config.per_page)}
        if include_read:
            params["all"] = "true"
        if participating:
            params["participating"] = "true"

        page_count = 0
        while url:
            page_count += 1
            is_first = page_count == 1
            conditional = {"If-Modified-Since": last_modified} if is_first and last_modified else None

            logger.debug(f"Fetching notifications page {page_count}")
            response = self._send("GET", url, token, params=params, headers=conditional)
            # "next" links already carry the query string
            params = None

            rate_limit = parse_rate_limit(response.headers)

            if response.status_code == 304:
                logger.info("Notifications not modified since last poll")
                yield NotificationPage(
                    notifications=[],
                    is_first_page=True,
                    has_more_pages=False,
                    last_modified=response.headers.get("Last-Modified") or last_modified,
                    poll_interval=_header_int(response.headers, "X-Poll-Interval"),
                    rate_limit=rate_limit,
                    was_modified=False,
                )
                return

            _raise_for_status(response)
            notifications = self._decode_page(response)

            next_url = parse_next_link(response.headers.get("Link"))
            if next_url and page_count >= self.config.max_pages:
                logger.warning(
                    f"Stopping pagination after {page_count} pages (cap {self.config.max_pages})"
                )
                next_url = None

            yield NotificationPage(
                notifications=notifications,
                is_first_page=is_first,
                has_more_pages=next_url is not None,
                last_modified=response.headers.get("Last-Modified") if is_first else None,
                poll_interval=_header_int(response.headers, "X-Poll-Interval") if is_first else None,
                rate_limit=rate_limit,
            )
            url = next_url

        logger.info(f"Fetched {page_count} notification page(s)")

    @staticmethod
    def _decode_page(response: requests.Response):
        try:
            payload = response.json()
        except ValueError as e:
            raise DecodingError(f"Notifications response is not valid JSON: {e}") from e
        if not isinstance(payload, list):
            raise DecodingError(
                f"Expected a JSON array of notifications, got {type(payload).__name__}"
            )
        return [GitHubNotification.from_api(item) for item in payload]

    def mark_thread_read(self, token: str, thread_id: str) -> None:
        """Mark a single thread as read on GitHub."""
        response = self._send(
            "PATCH", f"{self.config.api_url}/notifications/threads/{thread_id}", token
        )
        _raise_for_status(response)

    def mark_all_read(self, token: str, last_read_at: Optional[datetime] = None) -> None:
        """
        Mark all notifications as read on GitHub.

        Args:
            token: Bearer token.
            last_read_at: Only threads updated before this moment are marked read.
        """
        body = None
        if last_read_at is not None:
            body = {"last_read_at": format_timestamp(last_read_at)}
        response = self._send("PUT", f"{self.config.api_url}/notifications", token, json=body)
        _raise_for_status(response)

    def unsubscribe(self, token: str, thread_id: str) -> None:
        """Stop receiving notifications for a thread."""
        response = self._send(
            "DELETE",
            f"{self.config.api_url}/notifications/threads/{thread_id}/subscription",
            token,
        )
        _raise_for_status(response)

    def fetch_current_user(self, token: str) -> GitHubUser:
        """Return the user the token belongs to."""
        response = self._send("GET", f"{self.config.api_url}/user", token)
        _raise_for_status(response)
        try:
            data = response.json()
            return GitHubUser(
                id=int(data["id"]),
                login=data["login"],
                name=data.get("name"),
                email=data.get("email"),
                avatar_url=data.get("avatar_url"),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise DecodingError(f"Malformed user response: {e!r}") from e
