"""
Pushover notifier.
"""

import html
from typing import Any

import httpx

from ..models import EndpointKind, PushoverConfig, RedditPost
from .base import Notifier, notification_title

PUSHOVER_API_URL = "https://api.pushover.net/1/messages.json"


class PushoverNotifier(Notifier):
    """Sends a push message through the Pushover messages API."""

    kind = EndpointKind.PUSHOVER

    def __init__(self, client: httpx.AsyncClient, config: PushoverConfig, **kwargs: Any):
        super().__init__(client, **kwargs)
        self.config = config

    def build_form(self, topic: str, post: RedditPost) -> dict[str, str]:
        form = {
            "token": self.config.token,
            "user": self.config.user,
            "title": notification_title(topic),
            "message": html.unescape(post.title),
            "url": post.link(),
        }
        if self.config.device:
            form["device"] = self.config.device
        return form

    async def send(self, topic: str, post: RedditPost) -> httpx.Response:
        return await self.client.post(PUSHOVER_API_URL, data=self.build_form(topic, post))
