"""Merges fetched notification pages into the local store.

All writes to the store (upserts, cursor updates and local user actions) go
through one ``Reconciler`` and are serialized by its lock, so a continuous
poll and an on-demand refresh never interleave on the same thread id.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .db import NotificationStore
from .models import CachedNotification, GitHubNotification, NotificationPage, utcnow
from .sync_state import SyncCursorStore

logger = logging.getLogger(__name__)


@dataclass
class UpsertResult:
    """Counts for one reconciled page."""
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    duplicates: int = 0
    # Threads this page inserted as unread or turned from read to unread
    new_unread_ids: List[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return self.inserted + self.updated


class Reconciler:
    """Upsert engine plus the local mutations used by the inbox UI."""

    def __init__(
        self,
        store: NotificationStore,
        cursor_store: Optional[SyncCursorStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.lock = threading.RLock()
        self.cursor_store = cursor_store or SyncCursorStore(store, self.lock)
        # Cursor writes and notification writes share one lock
        self.cursor_store.lock = self.lock
        self.clock = clock

    def apply_page(self, page: NotificationPage, account_id: str) -> UpsertResult:
        """
        Persist one fetched page.

        The page's records are upserted first; if it is the first page of a
        modified fetch and carries a new cursor, the cursor is saved right after.
        A 304 page changes nothing.

        Args:
            page: Page yielded by the API client.
            account_id: Account the page was fetched for.

        Returns:
            Counts of inserted/updated/unchanged/duplicate records.
        """
        if not page.was_modified:
            return UpsertResult()

        with self.lock:
            result = self.upsert(page.notifications, account_id)
            if page.is_first_page and page.last_modified:
                self.cursor_store.save(
                    account_id,
                    page.last_modified,
                    poll_interval=page.poll_interval,
                    polled_at=self.clock(),
                )
                logger.info(f"Advanced sync cursor for {account_id}")
        return result

    def upsert(self, notifications: Sequence[GitHubNotification], account_id: str) -> UpsertResult:
        """
        Insert new threads and refresh changed remote-owned fields of known ones.

        Local-only fields (archived, snoozed, snooze_until) are never touched.
        Nothing is written when no record changed.
        """
        result = UpsertResult()
        with self.lock:
            now = self.clock()
            existing = self.store.get_notifications(n.id for n in notifications)
            seen = set()
            to_save: List[CachedNotification] = []

            for remote in notifications:
                if remote.id in seen:
                    result.duplicates += 1
                    logger.debug(f"Skipping duplicate thread {remote.id} in page")
                    continue
                seen.add(remote.id)

                local = existing.get(remote.id)
                if local is None:
                    to_save.append(CachedNotification.from_remote(remote, account_id, fetched_at=now))
                    result.inserted += 1
                    if remote.unread:
                        result.new_unread_ids.append(remote.id)
                    continue

                was_unread = local.unread
                if self._merge(local, remote, now):
                    to_save.append(local)
                    result.updated += 1
                    if local.unread and not was_unread:
                        result.new_unread_ids.append(remote.id)
                else:
                    result.unchanged += 1

            if to_save:
                self.store.save_notifications(to_save)

        logger.debug(
            f"Upserted page for {account_id}: {result.inserted} new, {result.updated} updated, "
            f"{result.unchanged} unchanged, {result.duplicates} duplicate"
        )
        return result

    @staticmethod
    def _merge(local: CachedNotification, remote: GitHubNotification, now: datetime) -> bool:
        """Copy differing remote-owned fields onto ``local``. Returns True if anything changed."""
        unread = remote.unread
        # A local mark-as-read wins over a stale remote "unread" until the thread
        # shows remote activity newer than the local change.
        if (
            unread
            and not local.unread
            and local.locally_modified_at is not None
            and remote.updated_at <= local.locally_modified_at
        ):
            unread = False

        changed = False
        for attr, value in (
            ("unread", unread),
            ("updated_at", remote.updated_at),
            ("subject_title", remote.subject.title),
            ("subject_type", remote.subject.type),
            ("subject_url", remote.subject.url),
            ("latest_comment_url", remote.subject.latest_comment_url),
        ):
            if getattr(local, attr) != value:
                setattr(local, attr, value)
                changed = True

        if changed:
            local.fetched_at = now
        return changed

    def _update(self, thread_id: str, mutate: Callable[[CachedNotification], None]) -> bool:
        with self.lock:
            notification = self.store.get_notification(thread_id)
            if notification is None:
                logger.debug(f"No cached notification {thread_id}")
                return False
            mutate(notification)
            self.store.save_notifications([notification])
        return True

    def mark_as_read(self, thread_id: str) -> bool:
        """Mark one thread read locally. Returns False if the thread is unknown."""
        now = self.clock()

        def mutate(n: CachedNotification) -> None:
            n.unread = False
            n.last_read_at = now
            n.locally_modified_at = now

        return self._update(thread_id, mutate)

    def mark_all_as_read(self, account_id: str) -> int:
        """Mark every unread thread of an account read locally. Returns how many changed."""
        with self.lock:
            now = self.clock()
            unread = [n for n in self.store.list_notifications(account_id) if n.unread]
            for n in unread:
                n.unread = False
                n.last_read_at = now
                n.locally_modified_at = now
            self.store.save_notifications(unread)
        return len(unread)

    def archive(self, thread_id: str) -> bool:
        return self._update(thread_id, lambda n: setattr(n, "archived", True))

    def unarchive(self, thread_id: str) -> bool:
        return self._update(thread_id, lambda n: setattr(n, "archived", False))

    def snooze(self, thread_id: str, until: datetime) -> bool:
        def mutate(n: CachedNotification) -> None:
            n.snoozed = True
            n.snooze_until = until

        return self._update(thread_id, mutate)

    def unsnooze(self, thread_id: str) -> bool:
        def mutate(n: CachedNotification) -> None:
            n.snoozed = False
            n.snooze_until = None

        return self._update(thread_id, mutate)

    def unsnooze_expired(self, now: Optional[datetime] = None) -> int:
        """Clear snoozes whose snooze_until has passed. Returns how many were woken."""
        with self.lock:
            now = now or self.clock()
            expired = [
                n for n in self.store.list_notifications()
                if n.snoozed and n.snooze_until is not None and n.snooze_until <= now
            ]
            for n in expired:
                n.snoozed = False
                n.snooze_until = None
            self.store.save_notifications(expired)
        if expired:
            logger.info(f"Woke {len(expired)} snoozed notification(s)")
        return len(expired)

    def delete(self, thread_id: str) -> bool:
        with self.lock:
            return self.store.delete_notifications([thread_id]) > 0

    def get_notifications(self, thread_ids: Iterable[str]) -> Dict[str, CachedNotification]:
        with self.lock:
            return self.store.get_notifications(thread_ids)

    def get_notification(self, thread_id: str) -> Optional[CachedNotification]:
        with self.lock:
            return self.store.get_notification(thread_id)

    def list_notifications(
        self,
        account_id: Optional[str] = None,
        include_archived: bool = False,
        include_snoozed: bool = False,
        now: Optional[datetime] = None,
    ) -> List[CachedNotification]:
        """Inbox view: most recently updated first, hiding archived and snoozed threads by default."""
        now = now or self.clock()
        with self.lock:
            records = self.store.list_notifications(account_id)
        return [
            n for n in records
            if (include_archived or not n.archived)
            and (include_snoozed or not n.is_snoozed_at(now))
        ]
