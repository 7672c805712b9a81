"""
Notification dispatcher for the Reddit Notifier.

This module fans a newly seen post out to every active endpoint subscribed to
its topic. Deliveries run concurrently and each one absorbs its own failure,
so a broken endpoint never holds back its siblings.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx
import structlog

from .config import DeliveryConfig
from .exceptions import DeliveryError
from .models import Endpoint, RedditPost
from .notifiers import build_notifier
from .storage.subscriptions import SubscriptionResolver

logger = structlog.get_logger(__name__)


@dataclass
class DispatchResult:
    """Outcome of dispatching one post."""

    topic: str
    post_id: str
    delivered: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.delivered) + len(self.failed)


class Dispatcher:
    """
    Delivers posts to the endpoints subscribed to their topic.

    The dispatcher never touches the ledger; the poller has already claimed
    the post before handing it over.
    """

    def __init__(
        self,
        resolver: SubscriptionResolver,
        http_client: httpx.AsyncClient,
        delivery_config: DeliveryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the dispatcher.

        Args:
            resolver: Topic to endpoint lookup
            http_client: Shared HTTP client handed to every notifier
            delivery_config: Retry and timeout settings for deliveries
            sleep: Awaitable notifiers use between retries
        """
        self.resolver = resolver
        self.http_client = http_client
        self.delivery_config = delivery_config or DeliveryConfig()
        self._sleep = sleep

    async def dispatch(self, topic: str, post: RedditPost) -> DispatchResult:
        """
        Deliver a post to every active endpoint subscribed to its topic.

        Args:
            topic: Topic the post was fetched from
            post: The newly seen post

        Returns:
            Which endpoints received the post and which did not

        Raises:
            StorageQueryError: If the endpoints cannot be resolved
        """
        result = DispatchResult(topic=topic, post_id=post.id)
        endpoints = await self.resolver.endpoints_for(topic)

        if not endpoints:
            logger.info("No endpoints for topic, skipping post", topic=topic, post_id=post.id)
            return result

        logger.info(
            "New post, notifying endpoints",
            topic=topic,
            post_id=post.id,
            title=post.title,
            endpoints=len(endpoints),
        )

        outcomes = await asyncio.gather(
            *(self._deliver(endpoint, topic, post) for endpoint in endpoints)
        )
        for endpoint, ok in zip(endpoints, outcomes):
            (result.delivered if ok else result.failed).append(endpoint.id)

        return result

    async def _deliver(self, endpoint: Endpoint, topic: str, post: RedditPost) -> bool:
        """Deliver to a single endpoint, logging instead of raising."""
        try:
            notifier = build_notifier(
                endpoint, self.http_client, self.delivery_config, sleep=self._sleep
            )
            await notifier.deliver(topic, post)
            return True
        except DeliveryError as e:
            if e.permanent:
                logger.error(
                    "Endpoint configuration problem, notification not delivered",
                    endpoint_id=endpoint.id,
                    kind=endpoint.kind.value,
                    topic=topic,
                    post_id=post.id,
                    status_code=e.status_code,
                    error=str(e),
                )
            else:
                logger.error(
                    "Notification delivery failed after retries",
                    endpoint_id=endpoint.id,
                    kind=endpoint.kind.value,
                    topic=topic,
                    post_id=post.id,
                    error=str(e),
                )
        except Exception as e:
            logger.error(
                "Unexpected error delivering notification",
                endpoint_id=endpoint.id,
                kind=endpoint.kind.value,
                topic=topic,
                post_id=post.id,
                error=str(e),
            )
        return False
