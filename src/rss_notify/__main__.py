"""Entry point for rss-notify: python -m rss_notify"""

import argparse
import asyncio
import enum
import logging
import sys
from typing import Callable

from rss_notify.config import FeedConfig, Settings
from rss_notify.database import Database, PersistenceError
from rss_notify.feed_parser import fetch_and_parse
from rss_notify.models import (
    CycleReport,
    FetchFailed,
    NoChange,
    Outcome,
    ParseFailed,
    Skipped,
    Updated,
)
from rss_notify.notifier import (
    DesktopPresenter,
    LogPresenter,
    NotificationDispatcher,
)
from rss_notify.poller import CheckOrchestrator, start_polling
from rss_notify.schedule import InvalidScheduleError
from rss_notify.store import FeedRecordStore


class Command(enum.Enum):
    CHECK = "check"
    ADD = "add"
    REMOVE = "remove"
    LIST = "list"
    WATCH = "watch"
    HELP = "help"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rss-notify",
        description="Check subscribed RSS/Atom feeds and notify about new items",
    )
    parser.add_argument("--config-dir", help="Directory holding feeds.json")
    parser.add_argument("--data-dir", help="Directory holding the check history database")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command")

    check = sub.add_parser(Command.CHECK.value, help="Check feeds once and notify")
    check.add_argument("--all", action="store_true", help="Ignore schedules and check every feed")
    check.add_argument("--quiet", action="store_true", help="Log notifications instead of showing them")

    add = sub.add_parser(Command.ADD.value, help="Subscribe to a feed")
    add.add_argument("link", help="Feed URL")
    add.add_argument("schedule", help='Cron schedule, e.g. "*/5 * * * *"')

    remove = sub.add_parser(Command.REMOVE.value, help="Unsubscribe from a feed")
    remove.add_argument("link", help="Feed URL")

    sub.add_parser(Command.LIST.value, help="List subscribed feeds")

    watch = sub.add_parser(Command.WATCH.value, help="Keep checking due feeds")
    watch.add_argument("--interval", type=int, help="Seconds between cycles")
    watch.add_argument("--quiet", action="store_true", help="Log notifications instead of showing them")

    sub.add_parser(Command.HELP.value, help="Show this help")
    return parser


class Session:
    """Configuration, database and record store for one command."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.config = FeedConfig.load(settings.config_path)
        self.db = Database(settings.data_path)
        self.db.connect()
        try:
            self.store = FeedRecordStore(self.db.load_records())
            self.store.sync(self.config.pairs())
        except BaseException:
            self.db.close()
            raise

    def save(self) -> None:
        self.config.save(self.settings.config_path)
        self.db.save_records(self.store.all())

    def orchestrator(self, quiet: bool) -> CheckOrchestrator:
        presenter = LogPresenter() if quiet else DesktopPresenter()
        return CheckOrchestrator(
            store=self.store,
            database=self.db,
            dispatcher=NotificationDispatcher(presenter),
            fetch=fetch_and_parse,
            fetch_timeout=self.settings.fetch_timeout,
            max_concurrency=self.settings.max_concurrency,
            cycle_budget=self.settings.cycle_budget,
        )

    def close(self) -> None:
        self.db.close()


def describe(outcome: Outcome) -> str:
    match outcome:
        case Updated(unseen_count=count, notified=True):
            return f"{count} new items"
        case Updated(unseen_count=count, notified=False):
            return f"first check, {count} items marked seen"
        case NoChange():
            return "no new items"
        case Skipped():
            return "not due"
        case FetchFailed(reason=reason):
            return f"fetch failed: {reason}"
        case ParseFailed(reason=reason):
            return f"parse failed: {reason}"
    raise AssertionError(f"Unhandled outcome {outcome!r}")


def print_report(report: CycleReport) -> None:
    for url, outcome in report.outcomes:
        print(f"{url}: {describe(outcome)}")
    for result in report.dispatched:
        if not result.shown:
            print(f"{result.feed_url}: notification failed: {result.error}", file=sys.stderr)


def handle_check(args: argparse.Namespace, session: Session) -> int:
    orchestrator = session.orchestrator(args.quiet)
    report = asyncio.run(orchestrator.run_cycle(enforce_schedule=not args.all))
    if report is not None:
        print_report(report)
    return 0


def handle_add(args: argparse.Namespace, session: Session) -> int:
    session.config.add_feed(args.link, args.schedule)
    session.store.upsert(args.link, args.schedule)
    session.save()
    print(f"Added {args.link} ({args.schedule})")
    return 0


def handle_remove(args: argparse.Namespace, session: Session) -> int:
    if not session.config.remove_feed(args.link):
        print(f"Error: not subscribed to {args.link}", file=sys.stderr)
        return 1
    session.store.remove(args.link)
    session.save()
    print(f"Removed {args.link}")
    return 0


def handle_list(args: argparse.Namespace, session: Session) -> int:
    session.save()
    listing = session.config.list_feeds()
    print(listing if listing else "No feeds configured.", end="" if listing else "\n")
    return 0


def handle_watch(args: argparse.Namespace, session: Session) -> int:
    session.save()
    interval = args.interval or session.settings.poll_interval
    orchestrator = session.orchestrator(args.quiet)
    try:
        asyncio.run(start_polling(orchestrator, interval))
    except KeyboardInterrupt:
        print("\nGoodbye!")
    return 0


# HELP is answered before any files are opened.
HANDLERS: dict[Command, Callable[[argparse.Namespace, Session], int]] = {
    Command.CHECK: handle_check,
    Command.ADD: handle_add,
    Command.REMOVE: handle_remove,
    Command.LIST: handle_list,
    Command.WATCH: handle_watch,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    # Quiet noisy loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("desktop_notifier").setLevel(logging.WARNING)

    command = Command(args.command) if args.command else Command.HELP
    if command is Command.HELP:
        parser.print_help()
        return 0

    try:
        settings = Settings.from_env()
        if args.config_dir:
            settings.config_dir = args.config_dir
        if args.data_dir:
            settings.data_dir = args.data_dir
        session = Session(settings)
    except (PersistenceError, OSError, ValueError, KeyError) as e:
        print(f"Error: could not load feeds: {e}", file=sys.stderr)
        return 1

    try:
        return HANDLERS[command](args, session)
    except (InvalidScheduleError, ValueError, PersistenceError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
