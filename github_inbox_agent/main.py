"""Main entry point for the GitHub inbox agent."""

import argparse
import logging
import os
import sys
import time
from datetime import timedelta
from typing import List, Optional

from .cleanup import cleanup_orphans
from .config import AppConfig, load_config
from .credentials import EnvTokenProvider
from .db import SQLiteStore
from .delivery import notification_content, select_for_delivery
from .errors import AuthenticationFailed, GitHubAPIError, RateLimited, StoreError
from .github_client import GitHubAPIClient
from .matcher import is_in_quiet_hours, matches
from .models import Scope, utcnow
from .reconciler import Reconciler
from .scheduler import PageUpdate, PollingScheduler
from .scopes import find_scope, load_scopes

# Configure logging
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


class Agent:
    """Wires the store, reconciler, client and schedulers together for the CLI."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.store = SQLiteStore(config.db_path)
        self.reconciler = Reconciler(self.store)
        self.client = GitHubAPIClient(config.github)
        self.tokens = EnvTokenProvider()
        self.scopes = load_scopes(config.scopes_file)

    def scheduler(self, account_id: str) -> PollingScheduler:
        return PollingScheduler(
            self.client,
            self.reconciler,
            self.tokens,
            account_id=account_id,
            config=self.config.polling,
        )

    def active_scope(self, name: Optional[str] = None) -> Scope:
        name = name or self.config.active_scope
        if name:
            scope = find_scope(self.scopes, name)
            if scope is None:
                raise ValueError(f"Unknown scope: {name}")
            return scope
        return next((s for s in self.scopes if s.is_default), self.scopes[0])

    def token(self, account_id: str) -> str:
        token = self.tokens.get_token(account_id)
        if not token:
            raise AuthenticationFailed(f"No token configured for account {account_id}")
        return token

    def close(self) -> None:
        self.client.close()
        self.store.close()


def _report_page(agent: Agent, account_id: str, update: PageUpdate, scope: Scope,
                 login: Optional[str] = None) -> None:
    """Log a received page and the alerts the delivery layer would raise for it."""
    page = update.page
    if not page.was_modified:
        logger.info(f"[{account_id}] No changes")
        return
    logger.info(
        f"[{account_id}] Page with {len(page.notifications)} notification(s)"
        f"{' (more pending)' if page.has_more_pages else ''}"
    )
    if page.rate_limit:
        logger.debug(
            f"Rate limit: {page.rate_limit.remaining}/{page.rate_limit.limit}, "
            f"resets {page.rate_limit.reset_at.isoformat()}"
        )
    # Only threads that became unread with this page; already-known unread ones were announced before
    cached = agent.reconciler.get_notifications(update.result.new_unread_ids)
    for notification in select_for_delivery(cached.values(), scope):
        content = notification_content(notification, login)
        logger.info(f"Notify: {content.title} - {content.body}")


def _login(agent: Agent, account_id: str) -> Optional[str]:
    try:
        return agent.client.fetch_current_user(agent.token(account_id)).login
    except GitHubAPIError as e:
        logger.warning(f"Could not look up the user for {account_id}: {e.message}")
        return None


def cmd_poll(agent: Agent, args) -> int:
    scope = agent.active_scope(args.scope)
    schedulers: List[PollingScheduler] = []
    subscriptions = []
    for account_id in agent.config.accounts:
        scheduler = agent.scheduler(account_id)
        subscriptions.append((account_id, _login(agent, account_id), scheduler.subscribe()))
        scheduler.start()
        schedulers.append(scheduler)

    logger.info(f"Polling {len(schedulers)} account(s) with scope '{scope.name}'. Ctrl-C to stop.")
    try:
        while True:
            for account_id, login, subscription in subscriptions:
                for update in subscription.drain():
                    _report_page(agent, account_id, update, scope, login)
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Stopping...")
    finally:
        for scheduler in schedulers:
            scheduler.stop(timeout=5)
    return 0


def cmd_refresh(agent: Agent, args) -> int:
    status = 0
    for account_id in agent.config.accounts:
        try:
            summary = agent.scheduler(account_id).run_once()
        except RateLimited as e:
            minutes = int(e.retry_after() // 60)
            print(f"{account_id}: refresh failed: rate limited, resets in {minutes} minutes")
            status = 1
            continue
        except GitHubAPIError as e:
            print(f"{account_id}: refresh failed: {e.message}")
            status = 1
            continue
        except StoreError as e:
            print(f"{account_id}: refresh failed: could not save notifications: {e}")
            status = 1
            continue

        if summary.skipped:
            print(f"{account_id}: no token configured, skipped")
        elif summary.not_modified:
            print(f"{account_id}: up to date")
        else:
            print(
                f"{account_id}: {summary.notifications} notification(s) in {summary.pages} page(s), "
                f"{summary.inserted} new, {summary.updated} updated"
            )
    return status


def cmd_list(agent: Agent, args) -> int:
    scope = agent.active_scope(args.scope) if args.scope else None
    notifications = agent.reconciler.list_notifications(
        args.account, include_archived=args.all, include_snoozed=args.all
    )
    if scope is not None:
        notifications = [n for n in notifications if matches(n, scope)]

    for n in notifications:
        marker = "*" if n.unread else " "
        flags = "".join([" [archived]" if n.archived else "", " [snoozed]" if n.snoozed else ""])
        print(
            f"{marker} {n.thread_id:>12}  {n.updated_at:%Y-%m-%d %H:%M}  "
            f"{n.repository_full_name}  {n.subject_title} ({n.reason.display_name}){flags}"
        )
    print(f"{len(notifications)} notification(s)")
    return 0


def cmd_read(agent: Agent, args) -> int:
    if not agent.reconciler.mark_as_read(args.thread_id):
        print(f"Unknown thread {args.thread_id}")
        return 1
    if args.remote:
        notification = agent.reconciler.get_notification(args.thread_id)
        agent.client.mark_thread_read(agent.token(notification.account_id), args.thread_id)
    return 0


def cmd_read_all(agent: Agent, args) -> int:
    for account_id in agent.config.accounts:
        started = utcnow()
        count = agent.reconciler.mark_all_as_read(account_id)
        print(f"{account_id}: marked {count} notification(s) read")
        if args.remote:
            agent.client.mark_all_read(agent.token(account_id), last_read_at=started)
    return 0


def cmd_archive(agent: Agent, args) -> int:
    action = agent.reconciler.unarchive if args.undo else agent.reconciler.archive
    return 0 if action(args.thread_id) else 1


def cmd_snooze(agent: Agent, args) -> int:
    until = utcnow() + timedelta(minutes=args.minutes)
    return 0 if agent.reconciler.snooze(args.thread_id, until) else 1


def cmd_unsnooze(agent: Agent, args) -> int:
    if args.thread_id:
        return 0 if agent.reconciler.unsnooze(args.thread_id) else 1
    print(f"Woke {agent.reconciler.unsnooze_expired()} notification(s)")
    return 0


def cmd_unsubscribe(agent: Agent, args) -> int:
    notification = agent.reconciler.get_notification(args.thread_id)
    account_id = notification.account_id if notification else args.account or "default"
    agent.client.unsubscribe(agent.token(account_id), args.thread_id)
    return 0


def cmd_whoami(agent: Agent, args) -> int:
    for account_id in agent.config.accounts:
        user = agent.client.fetch_current_user(agent.token(account_id))
        print(f"{account_id}: {user.login}" + (f" ({user.name})" if user.name else ""))
    return 0


def cmd_cleanup(agent: Agent, args) -> int:
    removed = cleanup_orphans(agent.reconciler, agent.tokens.accounts_with_tokens(agent.config.accounts))
    print(f"Removed data for {len(removed)} account(s): {', '.join(removed) or '-'}")
    return 0


def cmd_scopes(agent: Agent, args) -> int:
    for scope in agent.scopes:
        quiet = " (quiet hours)" if is_in_quiet_hours(scope) else ""
        default = " [default]" if scope.is_default else ""
        print(f"{scope.emoji} {scope.name}{default}: {len(scope.rules)} rule(s){quiet}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="GitHub notification inbox: polls, caches and filters notifications"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    poll = sub.add_parser("poll", help="Poll continuously until interrupted")
    poll.add_argument("--scope", help="Scope used to decide which notifications alert")
    poll.set_defaults(func=cmd_poll)

    refresh = sub.add_parser("refresh", help="Fetch once now")
    refresh.set_defaults(func=cmd_refresh)

    list_cmd = sub.add_parser("list", help="Show cached notifications")
    list_cmd.add_argument("--scope", help="Only notifications matching this scope")
    list_cmd.add_argument("--account", help="Only this account")
    list_cmd.add_argument("--all", action="store_true", help="Include archived and snoozed")
    list_cmd.set_defaults(func=cmd_list)

    read = sub.add_parser("read", help="Mark a thread as read")
    read.add_argument("thread_id")
    read.add_argument("--remote", action="store_true", help="Also mark it read on GitHub")
    read.set_defaults(func=cmd_read)

    read_all = sub.add_parser("read-all", help="Mark everything as read")
    read_all.add_argument("--remote", action="store_true", help="Also mark them read on GitHub")
    read_all.set_defaults(func=cmd_read_all)

    archive = sub.add_parser("archive", help="Archive a thread")
    archive.add_argument("thread_id")
    archive.add_argument("--undo", action="store_true", help="Unarchive instead")
    archive.set_defaults(func=cmd_archive)

    snooze = sub.add_parser("snooze", help="Snooze a thread")
    snooze.add_argument("thread_id")
    snooze.add_argument("--minutes", type=int, default=60)
    snooze.set_defaults(func=cmd_snooze)

    unsnooze = sub.add_parser("unsnooze", help="Unsnooze a thread, or wake all expired snoozes")
    unsnooze.add_argument("thread_id", nargs="?")
    unsnooze.set_defaults(func=cmd_unsnooze)

    unsubscribe = sub.add_parser("unsubscribe", help="Unsubscribe from a thread on GitHub")
    unsubscribe.add_argument("thread_id")
    unsubscribe.add_argument("--account")
    unsubscribe.set_defaults(func=cmd_unsubscribe)

    sub.add_parser("whoami", help="Show the authenticated user").set_defaults(func=cmd_whoami)
    sub.add_parser("cleanup", help="Remove data of signed-out accounts").set_defaults(func=cmd_cleanup)
    sub.add_parser("scopes", help="List scopes").set_defaults(func=cmd_scopes)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point with command-line argument parsing."""
    args = build_parser().parse_args(argv)
    config = load_config()
    agent = Agent(config)
    try:
        return args.func(agent, args)
    except GitHubAPIError as e:
        logger.error(f"GitHub API error: {e.message}")
        return 1
    except StoreError as e:
        logger.error(f"Local store error: {e}")
        return 1
    finally:
        agent.close()


if __name__ == "__main__":
    sys.exit(main())
