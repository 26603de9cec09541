"""Check cycles over all feeds, and the background polling loop."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable

from rss_notify.database import Database, PersistenceError
from rss_notify.detector import find_unseen, newest_item
from rss_notify.feed_parser import (
    DEFAULT_TIMEOUT,
    FeedParseError,
    FetchError,
    fetch_and_parse,
)
from rss_notify.models import (
    CycleReport,
    FeedDocument,
    FeedRecord,
    FetchFailed,
    NoChange,
    NotificationRequest,
    Outcome,
    ParseFailed,
    Skipped,
    Updated,
)
from rss_notify.notifier import NotificationDispatcher
from rss_notify.schedule import InvalidScheduleError, is_due
from rss_notify.store import FeedRecordStore
from rss_notify.timestamps import format_timestamp

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_CYCLE_BUDGET = 120.0

FetchFn = Callable[[str, float], FeedDocument]

_CheckResult = tuple[Outcome, NotificationRequest | None]


class CheckOrchestrator:
    """Runs check cycles: fetch due feeds, detect new items, notify, persist.

    Only one cycle runs at a time; a cycle requested while another is in
    progress is dropped.
    """

    def __init__(
        self,
        store: FeedRecordStore,
        database: Database,
        dispatcher: NotificationDispatcher,
        fetch: FetchFn = fetch_and_parse,
        fetch_timeout: float = DEFAULT_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        cycle_budget: float = DEFAULT_CYCLE_BUDGET,
    ):
        self.store = store
        self.database = database
        self.dispatcher = dispatcher
        self.fetch = fetch
        self.fetch_timeout = fetch_timeout
        self.max_concurrency = max_concurrency
        self.cycle_budget = cycle_budget
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(
        self, enforce_schedule: bool = True, now: datetime | None = None
    ) -> CycleReport | None:
        """Check every feed once and persist the result.

        Args:
            enforce_schedule: Skip feeds whose schedule says they are not due.
            now: Time to evaluate schedules against. Defaults to the current time.

        Returns:
            CycleReport, or None if another cycle was already running.

        Raises:
            PersistenceError: If the updated records cannot be saved. The
                cycle's changes to the store are discarded.
        """
        if self.running:
            logger.warning("Check cycle already running; dropping trigger")
            return None

        async with self._lock:
            now = now or datetime.now(timezone.utc)
            snapshot = self.store.snapshot()
            records = self.store.all()

            results = await self._check_all(records, enforce_schedule, now)

            report = CycleReport()
            queued = []
            for record in records:
                outcome, request = results[record.url]
                report.outcomes.append((record.url, outcome))
                if request is not None:
                    queued.append(request)

            for request in queued:
                report.dispatched.append(await self.dispatcher.dispatch(request))

            try:
                self.database.save_records(self.store.all())
            except PersistenceError:
                logger.error("Could not persist check results; discarding this cycle")
                self.store.restore(snapshot)
                raise

            logger.info(
                "Check cycle complete: %d feeds, %d updated, %d failed",
                len(records), report.updated_count, report.failed_count,
            )
            return report

    async def _check_all(
        self, records: list[FeedRecord], enforce_schedule: bool, now: datetime
    ) -> dict[str, _CheckResult]:
        """Check feeds concurrently within the cycle budget."""
        if not records:
            return {}

        # A slot is held until the fetch thread finishes, even after its
        # coroutine timed out, so at most max_concurrency requests are in flight.
        semaphore = asyncio.Semaphore(self.max_concurrency)
        executor = ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="rss-fetch"
        )
        tasks = {
            asyncio.create_task(
                self._check_feed(record, enforce_schedule, now, semaphore, executor)
            ): record.url
            for record in records
        }

        try:
            done, pending = await asyncio.wait(tasks, timeout=self.cycle_budget)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        finally:
            # Abandoned fetches finish in the background; the cycle does not wait.
            executor.shutdown(wait=False, cancel_futures=True)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                "Cycle budget of %ss exceeded; abandoned %d feeds",
                self.cycle_budget, len(pending),
            )

        results: dict[str, _CheckResult] = {}
        for task, url in tasks.items():
            if task in pending:
                results[url] = (FetchFailed("timeout"), None)
            elif task.exception() is not None:
                logger.error("Feed %s check crashed: %s", url, task.exception())
                results[url] = (FetchFailed(str(task.exception())), None)
            else:
                results[url] = task.result()
        return results

    async def _check_feed(
        self,
        record: FeedRecord,
        enforce_schedule: bool,
        now: datetime,
        semaphore: asyncio.Semaphore,
        executor: ThreadPoolExecutor,
    ) -> _CheckResult:
        if enforce_schedule:
            try:
                due = is_due(record.schedule, record.last_seen, now)
            except InvalidScheduleError as e:
                logger.warning("Feed %s has a bad schedule: %s", record.url, e)
                return ParseFailed(str(e)), None
            if not due:
                logger.debug("Feed %s not due", record.url)
                return Skipped(), None

        await semaphore.acquire()
        loop = asyncio.get_running_loop()
        future = executor.submit(self.fetch, record.url, self.fetch_timeout)
        future.add_done_callback(lambda _: _release_slot(loop, semaphore))

        try:
            document = await asyncio.wait_for(
                asyncio.wrap_future(future), timeout=self.fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Feed %s timed out", record.url)
            return FetchFailed("timeout"), None
        except FetchError as e:
            logger.warning("Feed %s fetch error: %s", record.url, e)
            return FetchFailed(str(e)), None
        except FeedParseError as e:
            logger.warning("Feed %s parse error: %s", record.url, e)
            return ParseFailed(str(e)), None
        except Exception as e:
            logger.warning("Feed %s unexpected error: %s", record.url, e)
            return FetchFailed(str(e)), None

        for warning in document.warnings:
            logger.debug("Feed %s: %s", record.url, warning)

        return self._apply(record, document)

    def _apply(self, record: FeedRecord, document: FeedDocument) -> _CheckResult:
        """Detect unseen items and advance the record. Runs without awaiting."""
        unseen = find_unseen(document.items, record.last_seen)
        if not unseen:
            return NoChange(), None

        item, published = newest_item(unseen)
        first_check = record.last_seen is None
        self.store.advance(record.url, published)
        logger.debug("Feed %s last seen %s", record.url, format_timestamp(published))

        if first_check:
            logger.info(
                "First check of '%s': marked %d items as seen", document.title, len(unseen)
            )
            return Updated(len(unseen), notified=False), None

        logger.info("Feed '%s': %d new items", document.title, len(unseen))
        request = NotificationRequest(
            feed_url=record.url,
            feed_title=document.title,
            unseen_count=len(unseen),
            newest_item=item,
        )
        return Updated(len(unseen)), request


async def start_polling(
    orchestrator: CheckOrchestrator, interval: int, enforce_schedule: bool = True
) -> None:
    """Trigger a check cycle every ``interval`` seconds, indefinitely.

    A trigger that fires while the previous cycle is still running is dropped.
    """
    logger.info("Poller started (interval: %ds)", interval)
    running: asyncio.Task | None = None

    try:
        while True:
            if running is not None and not running.done():
                logger.warning("Previous check cycle still running; dropping trigger")
            else:
                running = asyncio.create_task(
                    _run_logged(orchestrator, enforce_schedule)
                )
            await asyncio.sleep(interval)
    finally:
        if running is not None and not running.done():
            running.cancel()


async def _run_logged(orchestrator: CheckOrchestrator, enforce_schedule: bool) -> None:
    try:
        await orchestrator.run_cycle(enforce_schedule=enforce_schedule)
    except Exception as e:
        logger.error("Poll cycle failed: %s", e)


def _release_slot(loop: asyncio.AbstractEventLoop, semaphore: asyncio.Semaphore) -> None:
    """Free a fetch slot from the worker thread that held it."""
    if not loop.is_closed():
        loop.call_soon_threadsafe(semaphore.release)
