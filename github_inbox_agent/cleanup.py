"""Removal of data for signed-out accounts."""

import logging
from typing import Iterable, List

from .reconciler import Reconciler

logger = logging.getLogger(__name__)


def cleanup_account(reconciler: Reconciler, account_id: str) -> int:
    """
    Delete every cached notification and the sync cursor of an account.

    Returns:
        Number of deleted notifications.
    """
    with reconciler.lock:
        deleted = reconciler.store.delete_all_for_account(account_id)
        reconciler.cursor_store.clear(account_id)
    logger.info(f"Removed {deleted} notification(s) and sync state for {account_id}")
    return deleted


def cleanup_orphans(reconciler: Reconciler, valid_account_ids: Iterable[str]) -> List[str]:
    """
    Remove data for accounts that no longer hold a credential.

    When no account holds a credential nothing is removed: the records may have
    been replicated from another device and become usable after signing in.

    Args:
        reconciler: Engine owning the store.
        valid_account_ids: Accounts with a token on this device.

    Returns:
        The account ids that were cleaned up.
    """
    valid = set(valid_account_ids)
    if not valid:
        logger.info("No signed-in accounts; keeping cached data")
        return []

    with reconciler.lock:
        orphans = sorted(reconciler.store.account_ids() - valid)
        for account_id in orphans:
            cleanup_account(reconciler, account_id)
    return orphans
