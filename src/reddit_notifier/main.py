"""
Main application entry point for the Reddit Notifier.

This module configures logging, wires the shared resources together and runs
the polling orchestrator until the process receives SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
import sys

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from .config import Settings, get_settings
from .dispatcher import Dispatcher
from .exceptions import ConfigurationError, StorageConnectError
from .polling import PollingOrchestrator, RateLimiter
from .reddit_client import RedditClient
from .storage import (
    Ledger,
    SubscriptionResolver,
    connect_with_retry,
    init_schema,
)

logger = structlog.get_logger(__name__)


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured logging."""
    logging.basicConfig(level=getattr(logging, log_level), format="%(message)s")

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class NotifierApp:
    """Owns the daemon's shared resources and their lifecycle."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.engine: AsyncEngine | None = None
        self.http_client: httpx.AsyncClient | None = None
        self.orchestrator: PollingOrchestrator | None = None
        self._shutdown_requested = asyncio.Event()
        self._stop_task: asyncio.Task[None] | None = None

    async def initialize(self) -> None:
        """
        Connect to the database and build every component.

        Raises:
            StorageConnectError: If the database stays unreachable
        """
        logger.info("Initializing Reddit Notifier")

        self.engine = await connect_with_retry(self.settings.storage_config)
        await init_schema(self.engine)

        delivery_config = self.settings.delivery_config
        self.http_client = httpx.AsyncClient(timeout=delivery_config.timeout_seconds)

        reddit_client = RedditClient(
            self.http_client,
            user_agent=self.settings.reddit_user_agent,
            base_url=self.settings.reddit_base_url,
        )
        resolver = SubscriptionResolver(self.engine)
        dispatcher = Dispatcher(resolver, self.http_client, delivery_config)

        self.orchestrator = PollingOrchestrator(
            reddit_client=reddit_client,
            ledger=Ledger(self.engine),
            resolver=resolver,
            dispatcher=dispatcher,
            rate_limiter=RateLimiter.from_config(self.settings.polling_config),
            settings=self.settings,
        )
        logger.info(
            "Reddit Notifier initialized",
            rate_limit_per_minute=self.settings.reddit_rate_limit_per_minute,
            poll_interval_seconds=self.settings.poll_interval_seconds,
        )

    async def start(self) -> None:
        """Run the orchestrator until stopped."""
        if not self.orchestrator:
            raise RuntimeError("Application not initialized")
        if self._shutdown_requested.is_set():
            return

        await self.orchestrator.start_polling()

    async def stop(self) -> None:
        """Stop every poller."""
        self._shutdown_requested.set()
        if self.orchestrator:
            await self.orchestrator.stop_polling()

    async def close(self) -> None:
        """Release the HTTP client and the database engine."""
        if self.http_client:
            await self.http_client.aclose()
            self.http_client = None
        if self.engine:
            await self.engine.dispose()
            self.engine = None

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received signal, initiating shutdown", signal=sig.name)
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self.stop())


async def run(settings: Settings) -> int:
    """
    Run the daemon.

    Returns:
        Process exit status
    """
    app = NotifierApp(settings)

    try:
        app.setup_signal_handlers()
        await app.initialize()
        await app.start()
    except StorageConnectError as e:
        logger.error("Database unavailable, exiting", attempts=e.attempts, error=str(e))
        return 1
    except ConfigurationError as e:
        logger.error("Invalid configuration, exiting", error=str(e))
        return 1
    finally:
        await app.close()
        logger.info("Shutdown complete")

    return 0


def main() -> None:
    """Main entry point."""
    try:
        settings = get_settings()
    except ValueError as e:
        setup_logging()
        logger.error("Failed to load configuration", error=str(e))
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_format)
    logger.info("Starting Reddit Notifier", database_url=settings.database_url)
    sys.exit(asyncio.run(run(settings)))


if __name__ == "__main__":
    main()
