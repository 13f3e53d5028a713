"""Per-account sync cursor persistence."""

import logging
import threading
from datetime import datetime
from typing import Optional

from .db import NotificationStore
from .models import SyncCursor, utcnow

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 60


class SyncCursorStore:
    """Loads and saves the revalidation cursor and advised poll interval for an account."""

    def __init__(self, store: NotificationStore, lock: Optional[threading.RLock] = None):
        self.store = store
        self.lock = lock or threading.RLock()

    def load(self, account_id: str) -> SyncCursor:
        """Return the stored cursor, or a fresh one ("fetch everything") if none exists."""
        with self.lock:
            cursor = self.store.get_cursor(account_id)
        return cursor or SyncCursor(account_id=account_id, poll_interval=DEFAULT_POLL_INTERVAL)

    def save(
        self,
        account_id: str,
        last_modified: Optional[str],
        poll_interval: Optional[int] = None,
        polled_at: Optional[datetime] = None,
    ) -> SyncCursor:
        """
        Persist a new cursor for the account.

        Args:
            account_id: Account the cursor belongs to.
            last_modified: New revalidation token.
            poll_interval: Server-advised interval; keeps the stored value when None.
            polled_at: Time of the successful poll (defaults to now).

        Returns:
            The cursor as stored.
        """
        with self.lock:
            existing = self.store.get_cursor(account_id)
            cursor = SyncCursor(
                account_id=account_id,
                last_modified=last_modified,
                last_polled_at=polled_at or utcnow(),
                poll_interval=(
                    poll_interval
                    if poll_interval is not None
                    else (existing.poll_interval if existing else DEFAULT_POLL_INTERVAL)
                ),
            )
            self.store.save_cursor(cursor)
        logger.debug(
            f"Saved sync cursor for {account_id} (poll interval {cursor.poll_interval}s)"
        )
        return cursor

    def clear(self, account_id: str) -> None:
        with self.lock:
            self.store.delete_cursor(account_id)
