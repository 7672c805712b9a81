"""
Reddit Notifier

A daemon that polls subscribed subreddits for new posts and notifies Discord
and Pushover endpoints exactly once per post.
"""

__version__ = "0.1.0"
__author__ = "Reddit Notifier"
__email__ = "support@example.com"

from .config import Settings
from .dispatcher import Dispatcher
from .exceptions import RedditNotifierError
from .polling import PollingOrchestrator, RateLimiter
from .reddit_client import RedditClient

__all__ = [
    "Settings",
    "Dispatcher",
    "PollingOrchestrator",
    "RateLimiter",
    "RedditClient",
    "RedditNotifierError",
]
