"""
Polling system for the Reddit Notifier.

This package contains the shared rate limiter, the per-topic pollers and the
orchestrator that keeps one poller running for every subscribed topic.
"""

from .metrics import PollingMetrics, TopicMetrics
from .orchestrator import PollerState, PollingOrchestrator
from .poller import PollResult, TopicPoller
from .rate_limiter import RateLimiter

__all__ = [
    "PollResult",
    "PollerState",
    "PollingMetrics",
    "PollingOrchestrator",
    "RateLimiter",
    "TopicMetrics",
    "TopicPoller",
]
