"""
Tests for the subscription resolver and the administrative repository.
"""

import json

import pytest
from sqlalchemy import func, select

from reddit_notifier.exceptions import StorageQueryError
from reddit_notifier.models import EndpointKind
from reddit_notifier.storage.database import SubscriptionEndpointRow
from reddit_notifier.storage.subscriptions import normalize_topic

from conftest import DISCORD_WEBHOOK

PUSHOVER_CONFIG = {"token": "app-token", "user": "user-key"}


async def link_count(engine) -> int:
    async with engine.connect() as conn:
        return (
            await conn.execute(
                select(func.count()).select_from(SubscriptionEndpointRow.__table__)
            )
        ).scalar_one()


async def subscribe(repository, topic: str, *endpoint_ids: int) -> int:
    subscription_id = await repository.create_subscription(topic)
    for endpoint_id in endpoint_ids:
        await repository.link(subscription_id, endpoint_id)
    return subscription_id


def test_normalize_topic():
    assert normalize_topic("  Python ") == "python"


class TestSubscriptionResolver:
    """Test topic and endpoint resolution."""

    @pytest.mark.asyncio
    async def test_active_topics_requires_active_endpoint(self, repository, resolver):
        active = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        inactive = await repository.create_endpoint(
            EndpointKind.PUSHOVER, PUSHOVER_CONFIG, active=False
        )
        await subscribe(repository, "python", active)
        await subscribe(repository, "rust", inactive)
        await subscribe(repository, "golang")

        assert await resolver.active_topics() == {"python"}

    @pytest.mark.asyncio
    async def test_topics_are_case_insensitive(self, repository, resolver):
        endpoint = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        await subscribe(repository, "Python", endpoint)
        await subscribe(repository, "python ", endpoint)

        assert await resolver.active_topics() == {"python"}
        assert [e.id for e in await resolver.endpoints_for("PYTHON")] == [endpoint]

    @pytest.mark.asyncio
    async def test_endpoints_for_excludes_inactive_and_other_topics(
        self, repository, resolver
    ):
        discord = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        pushover = await repository.create_endpoint(
            EndpointKind.PUSHOVER, PUSHOVER_CONFIG
        )
        muted = await repository.create_endpoint(
            EndpointKind.PUSHOVER, PUSHOVER_CONFIG, active=False
        )
        elsewhere = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        await subscribe(repository, "python", discord, pushover, muted)
        await subscribe(repository, "rust", elsewhere)

        endpoints = await resolver.endpoints_for("python")

        assert [e.id for e in endpoints] == [discord, pushover]
        assert [e.kind for e in endpoints] == [
            EndpointKind.DISCORD,
            EndpointKind.PUSHOVER,
        ]

    @pytest.mark.asyncio
    async def test_endpoints_for_unknown_topic_is_empty(self, resolver):
        assert await resolver.endpoints_for("nothing") == []


class TestSubscriptionRepository:
    """Test the administrative write operations."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, repository):
        first = await repository.create_subscription("python")
        second = await repository.create_subscription("rust")

        subscriptions = await repository.list_subscriptions()

        assert [(s.id, s.topic) for s in subscriptions] == [
            (first, "python"),
            (second, "rust"),
        ]
        assert subscriptions[0].created_at is not None

    @pytest.mark.asyncio
    async def test_endpoint_config_round_trips_as_json(self, repository):
        endpoint_id = await repository.create_endpoint("pushover", PUSHOVER_CONFIG)

        endpoint = await repository.get_endpoint(endpoint_id)

        assert endpoint.kind == EndpointKind.PUSHOVER
        assert endpoint.active is True
        assert json.loads(endpoint.config_json) == PUSHOVER_CONFIG

    @pytest.mark.asyncio
    async def test_unknown_endpoint_kind_rejected(self, repository):
        with pytest.raises(ValueError):
            await repository.create_endpoint("slack", {})

    @pytest.mark.asyncio
    async def test_toggle_endpoint_active(self, repository, resolver):
        endpoint = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        await subscribe(repository, "python", endpoint)

        assert await repository.toggle_endpoint_active(endpoint) is False
        assert await resolver.endpoints_for("python") == []

        assert await repository.toggle_endpoint_active(endpoint) is True
        assert len(await resolver.endpoints_for("python")) == 1

    @pytest.mark.asyncio
    async def test_toggle_missing_endpoint_raises(self, repository):
        with pytest.raises(StorageQueryError):
            await repository.toggle_endpoint_active(999)

    @pytest.mark.asyncio
    async def test_link_twice_is_noop_and_unlink_removes(self, repository, resolver):
        endpoint = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        subscription = await subscribe(repository, "python", endpoint)
        await repository.link(subscription, endpoint)

        assert len(await resolver.endpoints_for("python")) == 1

        await repository.unlink(subscription, endpoint)
        assert await resolver.endpoints_for("python") == []

    @pytest.mark.asyncio
    async def test_deleting_subscription_cascades_links(
        self, repository, resolver, engine
    ):
        endpoint = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        subscription = await subscribe(repository, "python", endpoint)

        await repository.delete_subscription(subscription)

        assert await link_count(engine) == 0
        assert await resolver.active_topics() == set()
        assert len(await repository.list_endpoints()) == 1

    @pytest.mark.asyncio
    async def test_deleting_endpoint_cascades_links(
        self, repository, resolver, engine
    ):
        endpoint = await repository.create_endpoint(
            EndpointKind.DISCORD, {"webhook_url": DISCORD_WEBHOOK}
        )
        await subscribe(repository, "python", endpoint)

        await repository.delete_endpoint(endpoint)

        assert await link_count(engine) == 0
        assert await resolver.active_topics() == set()
        assert await repository.get_endpoint(endpoint) is None
        assert len(await repository.list_subscriptions()) == 1
