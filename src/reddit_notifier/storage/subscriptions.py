"""
Subscription and endpoint access for the Reddit Notifier.

The resolver is the read-only view the polling core uses. The repository holds
the write operations the administrative tools perform against the same tables.
"""

import json
from typing import Any

import structlog
from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..exceptions import StorageQueryError
from ..models import Endpoint, EndpointKind, Subscription
from .database import EndpointRow, SubscriptionEndpointRow, SubscriptionRow

logger = structlog.get_logger(__name__)

subscriptions = SubscriptionRow.__table__
endpoints = EndpointRow.__table__
subscription_endpoints = SubscriptionEndpointRow.__table__


def normalize_topic(topic: str) -> str:
    """Canonical form of a topic name; Reddit treats them case-insensitively."""
    return topic.strip().lower()


def _topic_key() -> Any:
    return func.lower(func.trim(subscriptions.c.topic))


def _to_endpoint(row: Any) -> Endpoint:
    return Endpoint(
        id=row["id"],
        kind=EndpointKind(row["kind"]),
        config_json=row["config_json"],
        active=bool(row["active"]),
    )


class SubscriptionResolver:
    """
    Resolves which topics to poll and which endpoints receive a topic's posts.

    Every call reads the database; deactivating an endpoint takes effect on
    the next lookup.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def active_topics(self) -> set[str]:
        """
        Get the topics that have at least one active endpoint.

        Returns:
            Normalized topic names
        """
        stmt = (
            select(_topic_key().label("topic"))
            .select_from(subscriptions)
            .join(
                subscription_endpoints,
                subscription_endpoints.c.subscription_id == subscriptions.c.id,
            )
            .join(endpoints, endpoints.c.id == subscription_endpoints.c.endpoint_id)
            .where(endpoints.c.active.is_(True))
            .distinct()
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to load active topics: {e}") from e

        return {topic for topic in rows if topic}

    async def endpoints_for(self, topic: str) -> list[Endpoint]:
        """
        Get the active endpoints subscribed to a topic.

        Args:
            topic: Topic name (any case)

        Returns:
            Active endpoints, each listed once, ordered by id
        """
        stmt = (
            select(endpoints)
            .join(
                subscription_endpoints,
                subscription_endpoints.c.endpoint_id == endpoints.c.id,
            )
            .join(
                subscriptions,
                subscriptions.c.id == subscription_endpoints.c.subscription_id,
            )
            .where(_topic_key() == normalize_topic(topic))
            .where(endpoints.c.active.is_(True))
            .distinct()
            .order_by(endpoints.c.id)
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        except SQLAlchemyError as e:
            raise StorageQueryError(
                f"Failed to resolve endpoints for r/{topic}: {e}",
                context={"topic": topic},
            ) from e

        return [_to_endpoint(row) for row in rows]


class SubscriptionRepository:
    """Write access to subscriptions, endpoints and their links."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def _execute(self, stmt: Any, action: str) -> Any:
        try:
            async with self.engine.begin() as conn:
                return await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to {action}: {e}") from e

    async def create_subscription(self, topic: str) -> int:
        """Create a subscription and return its id."""
        result = await self._execute(
            insert(subscriptions).values(topic=topic.strip()), "create subscription"
        )
        subscription_id = int(result.inserted_primary_key[0])
        logger.info("Subscription created", id=subscription_id, topic=topic)
        return subscription_id

    async def delete_subscription(self, subscription_id: int) -> None:
        """Delete a subscription; its endpoint links cascade."""
        await self._execute(
            delete(subscriptions).where(subscriptions.c.id == subscription_id),
            "delete subscription",
        )
        logger.info("Subscription deleted", id=subscription_id)

    async def list_subscriptions(self) -> list[Subscription]:
        try:
            async with self.engine.connect() as conn:
                rows = (
                    await conn.execute(select(subscriptions).order_by(subscriptions.c.id))
                ).mappings()
                return [Subscription.model_validate(dict(row)) for row in rows]
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to list subscriptions: {e}") from e

    async def create_endpoint(
        self,
        kind: EndpointKind | str,
        config: dict[str, Any] | str,
        active: bool = True,
    ) -> int:
        """
        Create an endpoint and return its id.

        Args:
            kind: Endpoint kind
            config: Kind-specific configuration, as a dict or JSON text
            active: Whether the endpoint receives notifications
        """
        config_json = config if isinstance(config, str) else json.dumps(config)
        result = await self._execute(
            insert(endpoints).values(
                kind=EndpointKind(kind).value, config_json=config_json, active=active
            ),
            "create endpoint",
        )
        endpoint_id = int(result.inserted_primary_key[0])
        logger.info("Endpoint created", id=endpoint_id, kind=EndpointKind(kind).value)
        return endpoint_id

    async def get_endpoint(self, endpoint_id: int) -> Endpoint | None:
        try:
            async with self.engine.connect() as conn:
                row = (
                    await conn.execute(
                        select(endpoints).where(endpoints.c.id == endpoint_id)
                    )
                ).mappings().first()
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to load endpoint: {e}") from e
        return _to_endpoint(row) if row else None

    async def list_endpoints(self) -> list[Endpoint]:
        try:
            async with self.engine.connect() as conn:
                rows = (
                    await conn.execute(select(endpoints).order_by(endpoints.c.id))
                ).mappings().all()
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to list endpoints: {e}") from e
        return [_to_endpoint(row) for row in rows]

    async def delete_endpoint(self, endpoint_id: int) -> None:
        """Delete an endpoint; its subscription links cascade."""
        await self._execute(
            delete(endpoints).where(endpoints.c.id == endpoint_id), "delete endpoint"
        )
        logger.info("Endpoint deleted", id=endpoint_id)

    async def set_endpoint_active(self, endpoint_id: int, active: bool) -> None:
        await self._execute(
            update(endpoints)
            .where(endpoints.c.id == endpoint_id)
            .values(active=active),
            "update endpoint",
        )
        logger.info("Endpoint active flag changed", id=endpoint_id, active=active)

    async def toggle_endpoint_active(self, endpoint_id: int) -> bool:
        """Flip an endpoint's active flag and return the new value."""
        endpoint = await self.get_endpoint(endpoint_id)
        if endpoint is None:
            raise StorageQueryError(
                f"Endpoint {endpoint_id} does not exist",
                context={"endpoint_id": endpoint_id},
            )
        await self.set_endpoint_active(endpoint_id, not endpoint.active)
        return not endpoint.active

    async def link(self, subscription_id: int, endpoint_id: int) -> None:
        """Link a subscription to an endpoint; linking twice is a no-op."""
        await self._execute(
            sqlite_insert(subscription_endpoints)
            .values(subscription_id=subscription_id, endpoint_id=endpoint_id)
            .on_conflict_do_nothing(),
            "link subscription",
        )

    async def unlink(self, subscription_id: int, endpoint_id: int) -> None:
        await self._execute(
            delete(subscription_endpoints).where(
                subscription_endpoints.c.subscription_id == subscription_id,
                subscription_endpoints.c.endpoint_id == endpoint_id,
            ),
            "unlink subscription",
        )
