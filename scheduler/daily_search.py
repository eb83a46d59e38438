# scheduler/daily_search.py
import asyncio
from datetime import datetime, timedelta, timezone

from finder.services import Services
from utils.log import get_logger
from .reporter import (
    FAILED,
    NO_RESULTS,
    NOTIFIED,
    SKIPPED,
    BookOutcome,
    RunReport,
    publish_run_report,
)
from .work_queue import run_bounded

logger = get_logger("daily_search")


def _utcnow():
    return datetime.now(timezone.utc)


class DailySearchJob:
    """
    Search every opted-in user's books and notify them about new listings.

    Users go through a bounded work queue (``concurrency`` users at a time,
    one by default); each user's books are handled one after another. A
    book searched within ``interval_hours`` is skipped. Failures on a single
    book are logged and leave its ``lastSearched`` untouched; failures
    loading users or books abort the run.
    """

    def __init__(self, store, aggregator, mailer, interval_hours=6.0, book_delay=2.0,
                 user_delay=1.0, concurrency=1, clock=None, sleep=None):
        self.store = store
        self.aggregator = aggregator
        self.mailer = mailer
        self.interval = timedelta(hours=interval_hours)
        self.book_delay = book_delay
        self.user_delay = user_delay
        self.concurrency = concurrency
        self._now = clock or _utcnow
        self._sleep = sleep or asyncio.sleep

    @classmethod
    def from_services(cls, services):
        s = services.settings
        return cls(
            services.store,
            services.aggregator,
            services.mailer,
            interval_hours=s.research_interval_hours,
            book_delay=s.book_delay_seconds,
            user_delay=s.user_delay_seconds,
            concurrency=s.user_concurrency,
        )

    async def run(self):
        """
        Execute one full pass over all opted-in users.

        Returns:
            RunReport: Per-book outcomes plus counts. ``aborted`` is set
                (with ``error``) when users or a user's books could not be
                loaded; outcomes recorded before that point are kept.

        Note:
            Never raises; the scheduler only sees the report.
        """
        report = RunReport(started_at=self._now())
        logger.info("Starting daily book search")
        try:
            users = await self.store.list_notifying_users()
            report.users = len(users)
            logger.info(f"Found {len(users)} users with notifications enabled")

            async def handle(user):
                await self.process_user(user, report)

            await run_bounded(users, handle, self.concurrency)
        except Exception as e:
            logger.exception("Daily book search aborted")
            report.aborted = True
            report.error = str(e)

        report.finished_at = self._now()
        logger.info(
            f"Daily book search completed: {report.count(NOTIFIED)} notified, "
            f"{report.count(NO_RESULTS)} without results, {report.count(SKIPPED)} skipped, "
            f"{report.count(FAILED)} failed"
        )
        return report

    async def process_user(self, user, report):
        """
        Process one user's books sequentially, appending outcomes to ``report``.

        Sleeps ``book_delay`` after each book that was actually searched and
        ``user_delay`` once the user is done.

        Raises:
            Exception: Loading the user's books failed (aborts the run)
        """
        books = await self.store.list_user_books(user.id)
        logger.info(f"User {user.email} has {len(books)} books")
        for book in books:
            outcome = await self.process_book(user, book)
            report.outcomes.append(outcome)
            if outcome.status != SKIPPED:
                await self._sleep(self.book_delay)
        await self._sleep(self.user_delay)

    async def process_book(self, user, book):
        """
        Search one book and notify its owner about any listings.

        Args:
            user (User): Owner of the book, with notifications enabled
            book (Book): The tracked book

        Returns:
            BookOutcome: SKIPPED when searched within the interval,
                NOTIFIED or NO_RESULTS on success, FAILED with the error
                message otherwise

        Process:
            1. Skip if ``lastSearched`` is newer than now minus the interval
            2. Aggregate results across all sources
            3. With results: send one email, then save one notification
               per result
            4. Stamp ``lastSearched``; a failure in any step before this
               leaves it unchanged
        """
        cutoff = self._now() - self.interval
        if book.searched_since(cutoff):
            logger.info(f'Skipping "{book.title}" - searched recently')
            return BookOutcome(user.id, book.id, book.title, SKIPPED)

        try:
            results = await self.aggregator.search(book.title, book.author)
            if results:
                await self.mailer.send_listings(user.email, user.display_name, book.title, results)
                await self.store.save_notifications(user.id, book.title, results)
                logger.info(f'Found {len(results)} results for "{book.title}" for user {user.email}')
            await self.store.mark_searched(book.id, self._now())
        except Exception as e:
            logger.exception(f'Error searching for book "{book.title}"')
            return BookOutcome(user.id, book.id, book.title, FAILED, error=str(e))

        status = NOTIFIED if results else NO_RESULTS
        return BookOutcome(user.id, book.id, book.title, status, results=len(results))


async def run_daily_search(services):
    """One scheduled run: search all books, then publish the run report."""
    report = await DailySearchJob.from_services(services).run()
    await publish_run_report(report, services.settings, services.mailer)
    return report


async def main():
    services = Services.create()
    try:
        await run_daily_search(services)
    finally:
        await services.aclose()


if __name__ == "__main__":
    asyncio.run(main())
