"""
Discord webhook notifier.
"""

import html
from typing import Any

import httpx

from ..models import DiscordConfig, EndpointKind, RedditPost
from .base import Notifier, notification_title

DEFAULT_USERNAME = "Reddit Notifier"


class DiscordNotifier(Notifier):
    """Posts a rich embed to a Discord webhook."""

    kind = EndpointKind.DISCORD

    def __init__(self, client: httpx.AsyncClient, config: DiscordConfig, **kwargs: Any):
        super().__init__(client, **kwargs)
        self.config = config

    def build_payload(self, topic: str, post: RedditPost) -> dict:
        return {
            "username": self.config.username or DEFAULT_USERNAME,
            "embeds": [
                {
                    "title": notification_title(topic),
                    "description": html.unescape(post.title),
                    "url": post.link(),
                    "type": "rich",
                }
            ],
        }

    async def send(self, topic: str, post: RedditPost) -> httpx.Response:
        return await self.client.post(
            self.config.webhook_url, json=self.build_payload(topic, post)
        )
