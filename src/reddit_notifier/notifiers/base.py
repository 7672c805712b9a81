"""
Base notifier interface.

This module defines the delivery capability every notification target
implements, together with the bounded retry all variants share.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

import httpx
import structlog

from ..exceptions import DeliveryError
from ..models import EndpointKind, RedditPost

logger = structlog.get_logger(__name__)

# Upper bound on a target-supplied Retry-After, in seconds
MAX_RETRY_AFTER = 30.0


def notification_title(topic: str) -> str:
    return f"New Reddit Post Alert ({topic})"


class Notifier(ABC):
    """
    Delivers one post to one endpoint.

    Subclasses build and send the request for their target; ``deliver``
    classifies the outcome and retries transient failures with exponential
    backoff.
    """

    kind: EndpointKind

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint_id: int,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the notifier.

        Args:
            client: Shared HTTP client
            endpoint_id: Id of the endpoint row, used in logs and errors
            max_attempts: Attempts before giving up on a transient failure
            base_delay: First retry delay in seconds, doubled per attempt
            sleep: Awaitable used between attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.client = client
        self.endpoint_id = endpoint_id
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    @abstractmethod
    async def send(self, topic: str, post: RedditPost) -> httpx.Response:
        """
        Perform a single outbound request.

        Args:
            topic: Topic the post belongs to
            post: Post to announce

        Returns:
            The target's HTTP response
        """
        pass

    async def deliver(self, topic: str, post: RedditPost) -> None:
        """
        Deliver a post, retrying transient failures.

        Raises:
            DeliveryError: After a permanent failure or when attempts run out
        """
        delay = self.base_delay

        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.send(topic, post)
            except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
                raise DeliveryError(
                    f"{self.kind.value} target URL is invalid: {e}",
                    transient=False,
                    endpoint_id=self.endpoint_id,
                ) from e
            except httpx.HTTPError as e:
                error = DeliveryError(
                    f"{self.kind.value} request failed: {e}",
                    transient=True,
                    endpoint_id=self.endpoint_id,
                )
                retry_after = None
            else:
                if response.is_success:
                    logger.debug(
                        "Notification delivered",
                        kind=self.kind.value,
                        endpoint_id=self.endpoint_id,
                        post_id=post.id,
                        attempt=attempt,
                    )
                    return
                error = self._classify(response)
                retry_after = _retry_after(response)

            if error.permanent or attempt == self.max_attempts:
                raise error

            wait = delay if retry_after is None else max(delay, retry_after)
            logger.warning(
                "Notification attempt failed, retrying",
                kind=self.kind.value,
                endpoint_id=self.endpoint_id,
                attempt=attempt,
                max_attempts=self.max_attempts,
                retry_in_seconds=wait,
                error=str(error),
            )
            await self._sleep(wait)
            delay *= 2

    def _classify(self, response: httpx.Response) -> DeliveryError:
        """Map a non-success response to a transient or permanent error."""
        status = response.status_code
        transient = status == 429 or status >= 500
        return DeliveryError(
            f"{self.kind.value} non-success: {status} body: {response.text[:500]}",
            transient=transient,
            endpoint_id=self.endpoint_id,
            status_code=status,
        )


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return min(float(value), MAX_RETRY_AFTER)
    except ValueError:
        return None
