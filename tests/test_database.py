"""
Tests for database URL handling, schema bootstrap and connection retry.
"""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import text

from reddit_notifier.config import StorageConfig
from reddit_notifier.exceptions import ConfigurationError, StorageConnectError
from reddit_notifier.storage import connect_with_retry, database
from reddit_notifier.storage.database import async_database_url, database_path


class TestDatabaseUrl:
    """Test URL normalization."""

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("sqlite://data.db", "sqlite+aiosqlite:///data.db"),
            ("sqlite:///data.db", "sqlite+aiosqlite:///data.db"),
            ("sqlite:////var/lib/notifier.db", "sqlite+aiosqlite:////var/lib/notifier.db"),
            ("sqlite+aiosqlite:///data.db", "sqlite+aiosqlite:///data.db"),
        ],
    )
    def test_async_database_url(self, url, expected):
        assert async_database_url(url) == expected

    def test_unsupported_scheme_rejected(self):
        with pytest.raises(ConfigurationError):
            async_database_url("postgresql://localhost/notifier")

    def test_database_path(self):
        assert database_path("sqlite:////var/lib/notifier.db") == "/var/lib/notifier.db"
        assert database_path("sqlite://data.db") == "data.db"


class TestSchema:
    """Test the schema bootstrap and connection pragmas."""

    @pytest.mark.asyncio
    async def test_creates_all_tables(self, engine):
        async with engine.connect() as conn:
            rows = await conn.execute(
                text("SELECT name FROM sqlite_master WHERE type = 'table'")
            )
            tables = {row[0] for row in rows}

        assert {
            "subscriptions",
            "endpoints",
            "subscription_endpoints",
            "notified_posts",
        } <= tables

    @pytest.mark.asyncio
    async def test_pragmas_applied(self, engine):
        async with engine.connect() as conn:
            journal_mode = (await conn.execute(text("PRAGMA journal_mode"))).scalar()
            foreign_keys = (await conn.execute(text("PRAGMA foreign_keys"))).scalar()

        assert journal_mode == "wal"
        assert foreign_keys == 1

    @pytest.mark.asyncio
    async def test_schema_bootstrap_is_idempotent(self, engine):
        await database.init_schema(engine)


class TestConnectWithRetry:
    """Test the startup connection retry."""

    @pytest.mark.asyncio
    async def test_connects_to_new_file(self, database_url):
        engine = await connect_with_retry(StorageConfig(url=database_url))
        try:
            async with engine.connect() as conn:
                assert (await conn.execute(text("SELECT 1"))).scalar() == 1
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_backoff_is_capped_then_fatal(self):
        config = StorageConfig(
            url="sqlite://unused.db", max_retries=6, initial_delay_ms=500, max_delay_ms=3000
        )
        sleep = AsyncMock()

        with patch.object(
            database, "_open_engine", AsyncMock(side_effect=OSError("unreachable"))
        ) as open_engine:
            with pytest.raises(StorageConnectError) as exc_info:
                await connect_with_retry(config, sleep=sleep)

        delays = [call.args[0] for call in sleep.await_args_list]
        assert delays == [0.5, 1.0, 2.0, 3.0, 3.0]
        assert delays == sorted(delays)
        assert open_engine.await_count == 6
        assert exc_info.value.attempts == 6

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, database_url):
        sleep = AsyncMock()
        real_open = database._open_engine
        attempts = 0

        async def flaky_open(url):
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise OSError("not yet")
            return await real_open(url)

        with patch.object(database, "_open_engine", flaky_open):
            engine = await connect_with_retry(StorageConfig(url=database_url), sleep=sleep)
        await engine.dispose()

        assert attempts == 3
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_directory_fails_fatally(self, tmp_path):
        config = StorageConfig(
            url=f"sqlite:///{tmp_path / 'missing' / 'notifier.db'}", max_retries=2
        )

        with pytest.raises(StorageConnectError):
            await connect_with_retry(config, sleep=AsyncMock())
