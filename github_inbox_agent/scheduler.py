"""Polling scheduler: continuous background polling and on-demand refresh."""

import logging
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from .config import PollingConfig
from .credentials import TokenProvider
from .errors import AuthenticationFailed, GitHubAPIError, RateLimited, StoreError
from .github_client import GitHubAPIClient
from .models import NotificationPage
from .reconciler import Reconciler, UpsertResult

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class Subscription:
    """
    Bounded page-update buffer for one consumer.

    The producer never blocks: when the buffer is full the page is dropped for
    this subscriber and counted in ``dropped``.
    """

    def __init__(self, maxsize: int):
        self._queue: "queue.Queue[PageUpdate]" = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self.dropped = 0

    def offer(self, update: "PageUpdate") -> bool:
        if self._closed.is_set():
            return False
        try:
            self._queue.put_nowait(update)
            return True
        except queue.Full:
            self.dropped += 1
            return False

    def get(self, timeout: Optional[float] = None) -> "PageUpdate":
        """Next update; raises ``queue.Empty`` if none arrives within ``timeout``."""
        return self._queue.get(timeout=timeout)

    def drain(self) -> List["PageUpdate"]:
        pages = []
        while True:
            try:
                pages.append(self._queue.get_nowait())
            except queue.Empty:
                return pages

    def close(self) -> None:
        self._closed.set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def __iter__(self) -> Iterator["PageUpdate"]:
        while True:
            try:
                yield self._queue.get(timeout=0.1)
            except queue.Empty:
                if self._closed.is_set():
                    return


@dataclass
class PageUpdate:
    """A persisted page as forwarded to subscribers, with what it changed."""
    page: NotificationPage
    result: UpsertResult


@dataclass
class FetchSummary:
    """Totals for one on-demand fetch cycle."""
    pages: int = 0
    notifications: int = 0
    inserted: int = 0
    updated: int = 0
    not_modified: bool = False
    skipped: bool = False   # no token for the account


class PollingScheduler:
    """
    Drives the API client and reconciler for one account.

    ``start()``/``stop()`` run the continuous loop (fetch, sleep for the
    server-advised interval, repeat) in a background thread and forward every
    page to subscribers. ``refresh()`` runs a single cycle in the caller's
    thread and raises the terminal error instead of swallowing it.
    """

    def __init__(
        self,
        client: GitHubAPIClient,
        reconciler: Reconciler,
        token_provider: TokenProvider,
        account_id: str = "default",
        config: Optional[PollingConfig] = None,
        include_read: Optional[bool] = None,
        participating: Optional[bool] = None,
    ):
        self.client = client
        self.reconciler = reconciler
        self.token_provider = token_provider
        self.account_id = account_id
        self.config = config or PollingConfig()
        self.include_read = include_read
        self.participating = participating

        self._control = threading.RLock()
        self._state = SchedulerState.IDLE
        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._subscribers: List[Subscription] = []
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> SchedulerState:
        with self._control:
            return self._state

    def _set_state(self, state: SchedulerState, stop_event: Optional[threading.Event] = None) -> None:
        with self._control:
            # A stopped loop may only report STOPPED, and only while it is the current loop
            if stop_event is not None:
                if stop_event is not self._stop_event:
                    return
                if stop_event.is_set() and state is not SchedulerState.STOPPED:
                    return
            self._state = state

    @property
    def is_running(self) -> bool:
        with self._control:
            return self._thread is not None and self._thread.is_alive()

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(maxsize or self.config.subscriber_buffer)
        with self._control:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        with self._control:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    def _broadcast(self, update: PageUpdate) -> None:
        with self._control:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            if not subscription.offer(update) and not subscription.closed:
                logger.warning(
                    f"Subscriber buffer full; dropped page ({subscription.dropped} dropped so far)"
                )

    def _cycle(
        self, stop_event: Optional[threading.Event] = None
    ) -> Iterator[Tuple[NotificationPage, UpsertResult]]:
        """
        One fetch: load cursor, pull pages, reconcile each, yield it.

        Reads the persisted cursor on every call so cursor advances made by
        another device (or an on-demand refresh) are respected.
        """
        token = self.token_provider.get_token(self.account_id)
        if not token:
            logger.warning(f"No token for account {self.account_id}; skipping fetch")
            return

        cursor = self.reconciler.cursor_store.load(self.account_id)
        logger.info(f"Fetching notifications for {self.account_id}")
        pages = iter(self.client.fetch_pages(
            token,
            cursor.last_modified,
            include_read=self.include_read,
            participating=self.participating,
        ))
        try:
            for page in pages:
                # stop() sets the event under the same lock, so no page is applied after it
                with self.reconciler.lock:
                    if stop_event is not None and stop_event.is_set():
                        logger.info("Scheduler stopped during fetch; discarding remaining pages")
                        return
                    result = self.reconciler.apply_page(page, self.account_id)
                yield page, result
        finally:
            close = getattr(pages, "close", None)
            if close is not None:
                close()

    def refresh(self) -> Iterator[NotificationPage]:
        """
        On-demand fetch. Yields pages in API order as they are persisted.

        Raises:
            GitHubAPIError: Any terminal fetch error (authentication, rate limit, ...).
            StoreError: If persisting a page fails.
        """
        for page, _ in self._cycle():
            yield page

    def run_once(self) -> FetchSummary:
        """Run one on-demand cycle to completion and summarize it."""
        summary = FetchSummary()
        if not self.token_provider.get_token(self.account_id):
            summary.skipped = True
            return summary
        for page, result in self._cycle():
            summary.pages += 1
            summary.notifications += len(page.notifications)
            summary.inserted += result.inserted
            summary.updated += result.updated
            if not page.was_modified:
                summary.not_modified = True
        return summary

    def start(self) -> None:
        """Start the continuous loop, stopping any loop that is already running."""
        # Join the old loop without holding the control lock; the loop needs it to exit
        self.stop()
        with self._control:
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._state = SchedulerState.IDLE
            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name=f"poller-{self.account_id}",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Started polling for {self.account_id}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the continuous loop.

        Wakes an in-flight sleep immediately. An in-flight request may finish,
        but its pages are neither persisted nor forwarded. A page already being
        persisted when stop() is called completes before the stop takes effect.
        """
        with self.reconciler.lock, self._control:
            stop_event, thread = self._stop_event, self._thread
            if stop_event is None:
                return
            stop_event.set()
            self._state = SchedulerState.STOPPED
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        with self._control:
            if self._stop_event is stop_event:
                self._stop_event = None
                self._thread = None
        logger.info(f"Stopped polling for {self.account_id}")

    def _next_interval(self, rate_limit_wait: float) -> float:
        cursor = self.reconciler.cursor_store.load(self.account_id)
        interval = cursor.poll_interval or self.config.default_interval
        interval = max(self.config.min_interval, interval)
        return max(interval, rate_limit_wait)

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self._set_state(SchedulerState.FETCHING, stop_event)
            rate_limit_wait = 0.0
            try:
                for page, result in self._cycle(stop_event):
                    with self.reconciler.lock:
                        if stop_event.is_set():
                            break
                        self._broadcast(PageUpdate(page, result))
                self.last_error = None
            except RateLimited as e:
                self.last_error = e
                rate_limit_wait = e.retry_after()
                logger.warning(f"{e.message}; next poll in at least {rate_limit_wait:.0f}s")
            except AuthenticationFailed as e:
                self.last_error = e
                logger.error(f"Authentication failed for {self.account_id}: {e.message}")
            except GitHubAPIError as e:
                self.last_error = e
                logger.warning(f"Poll failed for {self.account_id}: {e.message}")
            except StoreError as e:
                self.last_error = e
                logger.error(f"Failed to persist notifications: {e}", exc_info=True)
            except Exception as e:
                self.last_error = e
                logger.error(f"Unexpected error while polling: {e}", exc_info=True)

            if stop_event.is_set():
                break
            interval = self._next_interval(rate_limit_wait)
            self._set_state(SchedulerState.SLEEPING, stop_event)
            logger.debug(f"Sleeping {interval:.0f}s before next poll")
            if stop_event.wait(interval):
                break

        self._set_state(SchedulerState.STOPPED, stop_event)
