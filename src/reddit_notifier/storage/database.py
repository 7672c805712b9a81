"""
SQLite connection management and schema for the Reddit Notifier.

Uses SQLAlchemy's asyncio extension on top of aiosqlite. Every connection runs
in WAL journal mode with foreign keys enabled, so concurrent readers never
block the single writer and link rows cascade when either side is deleted.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from ..config import StorageConfig
from ..exceptions import ConfigurationError, StorageConnectError

logger = structlog.get_logger(__name__)

Base = declarative_base()

SQLITE_BUSY_TIMEOUT_MS = 5000


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic = Column(String, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())


class EndpointRow(Base):
    __tablename__ = "endpoints"
    __table_args__ = (
        CheckConstraint("kind IN ('discord','pushover')", name="ck_endpoints_kind"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False)
    config_json = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True, server_default=text("1"))


class SubscriptionEndpointRow(Base):
    __tablename__ = "subscription_endpoints"

    subscription_id = Column(
        Integer,
        ForeignKey("subscriptions.id", ondelete="CASCADE"),
        primary_key=True,
    )
    endpoint_id = Column(
        Integer,
        ForeignKey("endpoints.id", ondelete="CASCADE"),
        primary_key=True,
    )


class NotifiedPostRow(Base):
    __tablename__ = "notified_posts"
    __table_args__ = (
        UniqueConstraint("topic", "item_id", name="uq_notified_posts_topic_item"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic = Column(String, nullable=False)
    item_id = Column(String, nullable=False)
    first_seen_at = Column(DateTime, server_default=func.current_timestamp())


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what SQLite's CURRENT_TIMESTAMP stores."""
    return datetime.now(UTC).replace(tzinfo=None)


def async_database_url(url: str) -> str:
    """
    Normalize a database URL to the aiosqlite dialect.

    Accepts SQLAlchemy URLs (``sqlite:///relative.db``, ``sqlite:////abs.db``)
    as well as the short ``sqlite://path`` form, where the path is taken
    verbatim.
    """
    url = url.strip()
    if url.startswith("sqlite+aiosqlite://"):
        return url
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite:///" + url[len("sqlite:///") :]
    if url.startswith("sqlite://"):
        return "sqlite+aiosqlite:///" + url[len("sqlite://") :]
    raise ConfigurationError(
        f"Unsupported database URL: {url}", context={"url": url}
    )


def database_path(url: str) -> str:
    """Filesystem path of the SQLite database a URL points at."""
    database = make_url(async_database_url(url)).database
    if not database:
        raise ConfigurationError(f"Database URL has no path: {url}")
    return database


def _install_sqlite_pragmas(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
        cursor.close()


def create_engine(url: str) -> AsyncEngine:
    """Create an async engine with the SQLite pragmas installed."""
    engine = create_async_engine(async_database_url(url), future=True)
    _install_sqlite_pragmas(engine)
    return engine


async def _open_engine(url: str) -> AsyncEngine:
    """Create an engine and prove it can run a query."""
    engine = create_engine(url)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except BaseException:
        await engine.dispose()
        raise
    return engine


async def connect_with_retry(
    config: StorageConfig,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncEngine:
    """
    Connect to the database, retrying with capped exponential backoff.

    Args:
        config: Storage configuration with the retry ceiling and delays
        sleep: Awaitable used between attempts

    Returns:
        A connected async engine

    Raises:
        StorageConnectError: If every attempt fails
    """
    delay_ms = config.initial_delay_ms
    attempt = 0

    while True:
        attempt += 1
        try:
            engine = await _open_engine(config.url)
        except (SQLAlchemyError, OSError) as e:
            if attempt >= config.max_retries:
                logger.error(
                    "Database connection failed, giving up",
                    attempts=attempt,
                    error=str(e),
                )
                raise StorageConnectError(
                    f"Failed to connect to database after {attempt} attempts: {e}",
                    attempts=attempt,
                ) from e

            logger.warning(
                "Database connection attempt failed, retrying",
                attempt=attempt,
                max_retries=config.max_retries,
                retry_in_ms=delay_ms,
                error=str(e),
            )
            await sleep(delay_ms / 1000.0)
            delay_ms = min(delay_ms * 2, config.max_delay_ms)
            continue

        if attempt > 1:
            logger.info("Database connection successful", attempts=attempt)
        else:
            logger.info("Database connection successful")
        return engine


async def init_schema(engine: AsyncEngine) -> None:
    """Create any missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")
