"""
Topic poller for the Reddit Notifier.

One poller runs per subscribed topic. Each cycle takes a permit from the shared
rate limiter, fetches the topic's newest posts, claims unseen ones in the
ledger and hands them to the dispatcher.
"""

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from ..config import PollingConfig
from ..dispatcher import Dispatcher
from ..exceptions import (
    MalformedResponseError,
    StorageQueryError,
    TransientFetchError,
)
from ..models import RedditPost
from ..reddit_client import RedditClient
from ..storage.ledger import Ledger
from .metrics import TopicMetrics
from .rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)


@dataclass
class PollResult:
    """What a single poll cycle did."""

    topic: str
    fetched: int = 0
    new: int = 0
    skipped: int = 0
    failed: int = 0
    error: str | None = None


class TopicPoller:
    """
    Polls a single topic until told to stop.

    Stopping is cooperative: ``stop()`` sets an event the poller checks
    between cycles and while waiting for a rate limiter permit. A ledger write
    or dispatch in progress is always allowed to finish.
    """

    def __init__(
        self,
        topic: str,
        reddit_client: RedditClient,
        ledger: Ledger,
        dispatcher: Dispatcher,
        rate_limiter: RateLimiter,
        config: PollingConfig,
        metrics: TopicMetrics | None = None,
    ):
        """
        Initialize the topic poller.

        Args:
            topic: Normalized topic name
            reddit_client: Client used to fetch listings
            ledger: Deduplication ledger
            dispatcher: Fan-out to subscribed endpoints
            rate_limiter: Limiter shared by every poller
            config: Polling configuration
            metrics: Counters to update, created when omitted
        """
        self.topic = topic
        self.reddit_client = reddit_client
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter
        self.config = config
        self.metrics = metrics or TopicMetrics(topic=topic)
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Ask the poller to exit at its next checkpoint."""
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def run(self) -> None:
        """Poll until stopped."""
        logger.info(
            "Poller started",
            topic=self.topic,
            interval_seconds=self.config.poll_interval_seconds,
        )
        try:
            while not self.stop_requested:
                if not await self._acquire_permit():
                    break

                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    self.metrics.record_error(str(e))
                    logger.error(
                        "Unexpected error in poll cycle", topic=self.topic, error=str(e)
                    )

                await self._wait_for_next_cycle()
        finally:
            logger.info("Poller stopped", topic=self.topic)

    async def poll_once(self) -> PollResult:
        """
        Run one fetch-and-dispatch cycle.

        The caller is responsible for holding a rate limiter permit.

        Returns:
            Counts for the cycle
        """
        result = PollResult(topic=self.topic)

        try:
            posts = await self.reddit_client.fetch_new(self.topic)
        except (TransientFetchError, MalformedResponseError) as e:
            result.error = str(e)
            self.metrics.record_error(str(e))
            logger.warning(
                "Fetch failed, will retry next cycle",
                topic=self.topic,
                error_code=e.code,
                error=str(e),
            )
            return result

        result.fetched = len(posts)
        now = datetime.now(UTC)

        for post in posts:
            if not self._is_recent(post, now):
                result.skipped += 1
                logger.debug(
                    "Skipping post outside age window",
                    topic=self.topic,
                    post_id=post.id,
                    created_utc=post.created_utc.isoformat(),
                )
                continue

            try:
                is_new = await self.ledger.mark_if_new(self.topic, post.id)
            except StorageQueryError as e:
                result.failed += 1
                logger.error(
                    "Failed to record post, skipping it this cycle",
                    topic=self.topic,
                    post_id=post.id,
                    error=str(e),
                )
                continue

            if not is_new:
                continue

            result.new += 1
            try:
                dispatch = await self.dispatcher.dispatch(self.topic, post)
            except StorageQueryError as e:
                result.failed += 1
                logger.error(
                    "Failed to resolve endpoints, post will not be notified",
                    topic=self.topic,
                    post_id=post.id,
                    error=str(e),
                )
                continue

            self.metrics.record_dispatch(len(dispatch.delivered), len(dispatch.failed))

        self.metrics.record_poll(result.fetched, result.new)
        logger.info(
            "Poll cycle completed",
            topic=self.topic,
            fetched=result.fetched,
            new=result.new,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    def _is_recent(self, post: RedditPost, now: datetime) -> bool:
        # Reddit occasionally returns very old posts in /new
        created = post.created_utc
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        max_age = timedelta(hours=self.config.post_max_age_hours)
        return abs(now - created) <= max_age

    async def _acquire_permit(self) -> bool:
        """
        Wait for a rate limiter permit or a stop request.

        Returns:
            True if a permit was taken, even when a stop was requested in the
            same turn
        """
        acquire = asyncio.create_task(self.rate_limiter.acquire())
        stopped = asyncio.create_task(self._stop_event.wait())
        try:
            await asyncio.wait({acquire, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (acquire, stopped):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task

        if not acquire.done() or acquire.cancelled():
            return False
        acquire.result()
        return True

    async def _wait_for_next_cycle(self) -> None:
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(
                self._stop_event.wait(), timeout=self.config.poll_interval_seconds
            )
