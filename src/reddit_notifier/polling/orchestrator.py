"""
Polling orchestrator for the Reddit Notifier.

This module keeps one topic poller running for every topic that has at least
one active endpoint, reconciling the running set against the database on a
fixed interval.
"""

import asyncio
import contextlib
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from ..config import Settings
from ..dispatcher import Dispatcher
from ..exceptions import StorageQueryError
from ..reddit_client import RedditClient
from ..storage.ledger import Ledger
from ..storage.subscriptions import SubscriptionResolver
from .metrics import PollingMetrics
from .poller import TopicPoller
from .rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)


class PollerState(str, Enum):
    """Lifecycle state of a topic poller."""

    NOT_RUNNING = "not_running"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass
class PollerHandle:
    """A running poller and the task driving it."""

    topic: str
    poller: TopicPoller
    task: asyncio.Task[None]
    state: PollerState = PollerState.RUNNING


class PollingOrchestrator:
    """
    Orchestrates topic pollers.

    The orchestrator is the only owner of poller lifecycle. On every tick it
    reads the topics that have an active endpoint, starts pollers for new
    topics, stops pollers for topics that went away and respawns pollers whose
    task died. It also runs the ledger retention cleanup.
    """

    def __init__(
        self,
        reddit_client: RedditClient,
        ledger: Ledger,
        resolver: SubscriptionResolver,
        dispatcher: Dispatcher,
        rate_limiter: RateLimiter,
        settings: Settings,
    ):
        """
        Initialize the polling orchestrator.

        Args:
            reddit_client: Reddit listing client shared by all pollers
            ledger: Deduplication ledger
            resolver: Topic and endpoint lookups
            dispatcher: Fan-out to endpoints
            rate_limiter: Limiter shared by all pollers
            settings: Application settings
        """
        self.reddit_client = reddit_client
        self.ledger = ledger
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter
        self.settings = settings
        self.config = settings.polling_config
        self.storage_config = settings.storage_config

        self.metrics = PollingMetrics()
        self.pollers: dict[str, PollerHandle] = {}

        # Orchestrator state
        self.is_running_flag = False
        self.polling_task: asyncio.Task[Any] | None = None
        self._stop_event = asyncio.Event()
        self._last_cleanup: float | None = None

    def is_running(self) -> bool:
        """Check if the reconcile loop is active."""
        return self.is_running_flag

    def running_topics(self) -> set[str]:
        return {
            topic
            for topic, handle in self.pollers.items()
            if handle.state == PollerState.RUNNING
        }

    def topic_state(self, topic: str) -> PollerState:
        handle = self.pollers.get(topic)
        return handle.state if handle else PollerState.NOT_RUNNING

    async def start_polling(self) -> None:
        """Run the reconcile loop until ``stop_polling`` is called."""
        if self.is_running_flag:
            logger.warning("Polling already running")
            return

        self.is_running_flag = True
        self._stop_event.clear()
        self.polling_task = asyncio.current_task()
        logger.info(
            "Starting polling orchestrator",
            reconcile_interval_seconds=self.config.reconcile_interval_seconds,
            poll_interval_seconds=self.config.poll_interval_seconds,
            rate_limit_per_minute=self.config.rate_limit_per_minute,
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.reconcile_once()
                    await self._maybe_cleanup_ledger()
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error("Error in reconcile cycle", error=str(e))

                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self.config.reconcile_interval_seconds,
                    )
        finally:
            await self._stop_all()
            self.is_running_flag = False
            logger.info("Polling orchestrator stopped", **self.metrics.get_summary())

    async def stop_polling(self) -> None:
        """Stop the reconcile loop and every poller, waiting for them to exit."""
        if not self.is_running_flag:
            return

        logger.info("Stopping polling orchestrator", pollers=len(self.pollers))
        self._stop_event.set()

        task = self.polling_task
        if task and task is not asyncio.current_task() and not task.done():
            await asyncio.wait({task})

    async def reconcile_once(self) -> None:
        """Bring the running pollers in line with the subscribed topics."""
        try:
            topics = await self.resolver.active_topics()
        except StorageQueryError as e:
            logger.error("Failed to read subscribed topics, skipping tick", error=str(e))
            return

        self._reap_dead_pollers()

        for topic in sorted(topics - self.pollers.keys()):
            self._spawn(topic)

        removed = [topic for topic in self.pollers if topic not in topics]
        if removed:
            await asyncio.gather(*(self._stop_poller(topic) for topic in removed))

        logger.debug(
            "Reconcile completed",
            subscribed=len(topics),
            running=len(self.pollers),
            stopped=len(removed),
        )

    def _spawn(self, topic: str) -> None:
        poller = TopicPoller(
            topic=topic,
            reddit_client=self.reddit_client,
            ledger=self.ledger,
            dispatcher=self.dispatcher,
            rate_limiter=self.rate_limiter,
            config=self.config,
            metrics=self.metrics.for_topic(topic),
        )
        task = asyncio.create_task(poller.run(), name=f"poller:{topic}")
        self.pollers[topic] = PollerHandle(topic=topic, poller=poller, task=task)
        logger.info("Started poller", topic=topic)

    def _reap_dead_pollers(self) -> None:
        """Forget pollers whose task ended so they are respawned."""
        for topic, handle in list(self.pollers.items()):
            if not handle.task.done():
                continue

            error = None
            if not handle.task.cancelled() and handle.task.exception():
                error = str(handle.task.exception())
            logger.warning("Poller exited unexpectedly", topic=topic, error=error)
            del self.pollers[topic]

    async def _stop_poller(self, topic: str) -> None:
        handle = self.pollers[topic]
        handle.state = PollerState.STOPPING
        handle.poller.stop()
        logger.info("Stopping poller", topic=topic)

        try:
            done, _ = await asyncio.wait(
                {handle.task}, timeout=self.config.stop_timeout_seconds
            )
            if not done:
                logger.warning(
                    "Poller did not stop in time, cancelling",
                    topic=topic,
                    timeout_seconds=self.config.stop_timeout_seconds,
                )
                handle.task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await handle.task
        finally:
            self.pollers.pop(topic, None)

    async def _stop_all(self) -> None:
        if self.pollers:
            await asyncio.gather(*(self._stop_poller(topic) for topic in list(self.pollers)))

    async def _maybe_cleanup_ledger(self) -> None:
        """Delete old ledger rows at most once per cleanup interval."""
        if self.storage_config.retention_days <= 0:
            return

        now = time.monotonic()
        interval = self.storage_config.cleanup_interval_hours * 3600
        if self._last_cleanup is not None and now - self._last_cleanup < interval:
            return
        self._last_cleanup = now

        try:
            await self.ledger.cleanup_older_than(self.storage_config.retention_days)
        except StorageQueryError as e:
            logger.error("Ledger cleanup failed", error=str(e))

    def get_poller_summary(self) -> dict[str, Any]:
        """Get per-topic state and counters."""
        topics = set(self.metrics.topics) | set(self.pollers)
        return {
            "running": self.is_running_flag,
            "rate_limit_available": self.rate_limiter.available(),
            **self.metrics.get_summary(),
            "pollers": {
                topic: {
                    "state": self.topic_state(topic).value,
                    **self.metrics.for_topic(topic).to_dict(),
                }
                for topic in sorted(topics)
            },
        }
