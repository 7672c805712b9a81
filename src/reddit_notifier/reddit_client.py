"""
Reddit API client for the Reddit Notifier.

This module fetches the newest posts of a subreddit from the public JSON
listing and maps transport and payload problems onto the notifier's error
taxonomy.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from .exceptions import MalformedResponseError, TransientFetchError
from .models import REDDIT_BASE_URL, RedditListing, RedditPost

logger = structlog.get_logger(__name__)

LISTING_LIMIT = 100


class RedditClient:
    """
    Reddit listing client.

    The client is shared by every topic poller; it does no rate limiting of
    its own, callers acquire a permit from the shared limiter first.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        user_agent: str,
        base_url: str = REDDIT_BASE_URL,
    ) -> None:
        """
        Initialize the Reddit client.

        Args:
            http_client: Shared HTTP client
            user_agent: Value for the User-Agent header Reddit requires
            base_url: Reddit base URL
        """
        self.http_client = http_client
        self.user_agent = user_agent
        self.base_url = base_url.rstrip("/")

    def listing_url(self, topic: str) -> str:
        """URL of a topic's newest-first listing."""
        return f"{self.base_url}/r/{topic}/new.json"

    async def fetch_new(self, topic: str) -> list[RedditPost]:
        """
        Fetch the newest posts of a topic.

        Args:
            topic: Subreddit name

        Returns:
            Posts in the order Reddit returned them (newest first)

        Raises:
            TransientFetchError: On network errors, timeouts and non-2xx replies
            MalformedResponseError: If the body is not a valid listing
        """
        url = self.listing_url(topic)
        try:
            response = await self.http_client.get(
                url,
                params={"limit": LISTING_LIMIT},
                headers={"User-Agent": self.user_agent},
            )
        except httpx.HTTPError as e:
            raise TransientFetchError(
                f"HTTP error fetching r/{topic}: {e}", topic=topic
            ) from e

        if response.status_code != 200:
            # Reddit answers banned or private subreddits with 403/404 too;
            # they are retried on the next tick like any other failure.
            raise TransientFetchError(
                f"Reddit GET {url} -> {response.status_code}",
                topic=topic,
                status_code=response.status_code,
            )

        try:
            payload: Any = response.json()
            listing = RedditListing.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise MalformedResponseError(
                f"Failed to parse Reddit listing for r/{topic}: {e}", topic=topic
            ) from e

        posts = listing.posts
        logger.debug("Fetched listing", topic=topic, posts=len(posts))
        return posts
