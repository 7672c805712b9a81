"""
Data models for the Reddit Notifier.

Persisted rows are mirrored as Pydantic models so the polling core never holds
live ORM objects, and the Reddit listing payload is validated on the way in.
"""

from datetime import datetime
from enum import Enum
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, field_validator

REDDIT_BASE_URL = "https://www.reddit.com"


class EndpointKind(str, Enum):
    """Supported notification targets."""

    DISCORD = "discord"
    PUSHOVER = "pushover"


class Subscription(BaseModel):
    """A topic someone wants to be notified about."""

    id: int
    topic: str
    created_at: datetime | None = None


class Endpoint(BaseModel):
    """A configured notification target."""

    id: int
    kind: EndpointKind
    config_json: str
    active: bool = True


class NotifiedPost(BaseModel):
    """A ledger entry recording that a post has been handled."""

    id: int
    topic: str
    item_id: str
    first_seen_at: datetime | None = None


class DiscordConfig(BaseModel):
    """Discord webhook endpoint configuration."""

    webhook_url: str
    username: str | None = None

    @field_validator("webhook_url")
    @classmethod
    def validate_webhook_url(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError("webhook_url must be an absolute http(s) URL")
        return v


class PushoverConfig(BaseModel):
    """Pushover endpoint configuration."""

    token: str
    user: str
    device: str | None = None


class RedditPost(BaseModel):
    """A single post from a subreddit listing."""

    id: str
    title: str
    subreddit: str
    permalink: str | None = None
    url: str | None = None
    created_utc: datetime

    def link(self, base_url: str = REDDIT_BASE_URL) -> str:
        """Best URL for the post: permalink, then link target, then a built one."""
        if self.permalink:
            return f"{base_url.rstrip('/')}{self.permalink}"
        if self.url:
            return self.url
        return f"{base_url.rstrip('/')}/r/{self.subreddit}/comments/{self.id}"


class RedditChild(BaseModel):
    data: RedditPost


class RedditListingData(BaseModel):
    children: list[RedditChild] = Field(default_factory=list)


class RedditListing(BaseModel):
    """The `/r/<topic>/new.json` response envelope."""

    data: RedditListingData

    @property
    def posts(self) -> list[RedditPost]:
        return [child.data for child in self.data.children]
