"""
Pytest configuration and fixtures for Reddit Notifier tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
import pytest_asyncio

from reddit_notifier.config import Settings
from reddit_notifier.models import RedditPost
from reddit_notifier.storage import (
    Ledger,
    SubscriptionRepository,
    SubscriptionResolver,
    create_engine,
    init_schema,
)

DISCORD_WEBHOOK = "https://discord.com/api/webhooks/123/abc"


@pytest.fixture
def database_url(tmp_path) -> str:
    """URL of a fresh SQLite file."""
    return f"sqlite:///{tmp_path / 'notifier.db'}"


@pytest_asyncio.fixture
async def engine(database_url: str):
    """Async engine with the schema bootstrapped."""
    engine = create_engine(database_url)
    await init_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def ledger(engine) -> Ledger:
    return Ledger(engine)


@pytest.fixture
def repository(engine) -> SubscriptionRepository:
    return SubscriptionRepository(engine)


@pytest.fixture
def resolver(engine) -> SubscriptionResolver:
    return SubscriptionResolver(engine)


@pytest.fixture
def mock_settings(database_url: str) -> Settings:
    """Settings for testing, with short intervals."""
    return Settings(
        _env_file=None,
        database_url=database_url,
        poll_interval_seconds=0.05,
        reconcile_interval_seconds=0.05,
        poller_stop_timeout_seconds=1.0,
        delivery_base_delay_seconds=0.0,
        log_level="DEBUG",
    )


def make_post(
    post_id: str = "abc123",
    title: str = "Python 3.13 released",
    subreddit: str = "python",
    age: timedelta = timedelta(minutes=5),
    **kwargs: Any,
) -> RedditPost:
    """Build a post created ``age`` ago."""
    return RedditPost(
        id=post_id,
        title=title,
        subreddit=subreddit,
        created_utc=datetime.now(UTC) - age,
        **kwargs,
    )


def listing_payload(*posts: dict[str, Any]) -> dict[str, Any]:
    """Wrap raw post dicts in Reddit's listing envelope."""
    return {"kind": "Listing", "data": {"children": [{"kind": "t3", "data": p} for p in posts]}}


@pytest.fixture
def sample_post() -> RedditPost:
    return make_post(permalink="/r/python/comments/abc123/python_313_released/")


async def subscribe(repository, topic: str, *endpoint_ids: int) -> int:
    """Create a subscription linked to the given endpoints."""
    subscription_id = await repository.create_subscription(topic)
    for endpoint_id in endpoint_ids:
        await repository.link(subscription_id, endpoint_id)
    return subscription_id
