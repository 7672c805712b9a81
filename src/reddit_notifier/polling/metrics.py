"""
Metrics collection for the polling system.

This module keeps in-process counters per topic so the orchestrator can report
what each poller has been doing.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class TopicMetrics:
    """Counters for a single topic."""

    topic: str
    last_poll_time: datetime | None = None
    total_polls: int = 0
    fetch_errors: int = 0
    posts_fetched: int = 0
    new_posts: int = 0
    deliveries_succeeded: int = 0
    deliveries_failed: int = 0
    consecutive_errors: int = 0
    last_error: str | None = None

    def record_poll(self, posts_fetched: int, new_posts: int) -> None:
        """Update counters after a successful fetch."""
        self.last_poll_time = datetime.now()
        self.total_polls += 1
        self.posts_fetched += posts_fetched
        self.new_posts += new_posts
        self.consecutive_errors = 0

    def record_error(self, error: str) -> None:
        """Update counters after a failed fetch."""
        self.last_poll_time = datetime.now()
        self.total_polls += 1
        self.fetch_errors += 1
        self.consecutive_errors += 1
        self.last_error = error

    def record_dispatch(self, delivered: int, failed: int) -> None:
        self.deliveries_succeeded += delivered
        self.deliveries_failed += failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_polls": self.total_polls,
            "fetch_errors": self.fetch_errors,
            "posts_fetched": self.posts_fetched,
            "new_posts": self.new_posts,
            "deliveries_succeeded": self.deliveries_succeeded,
            "deliveries_failed": self.deliveries_failed,
            "consecutive_errors": self.consecutive_errors,
            "last_error": self.last_error,
            "last_poll": (
                self.last_poll_time.isoformat() if self.last_poll_time else None
            ),
        }


@dataclass
class PollingMetrics:
    """Metrics for every topic the daemon has polled since startup."""

    topics: dict[str, TopicMetrics] = field(default_factory=dict)

    def for_topic(self, topic: str) -> TopicMetrics:
        """Get or create the counters for a topic."""
        if topic not in self.topics:
            self.topics[topic] = TopicMetrics(topic=topic)
        return self.topics[topic]

    @property
    def total_polls(self) -> int:
        return sum(m.total_polls for m in self.topics.values())

    @property
    def total_new_posts(self) -> int:
        return sum(m.new_posts for m in self.topics.values())

    def get_summary(self) -> dict[str, Any]:
        """Get a summary suitable for logging."""
        return {
            "topics": len(self.topics),
            "total_polls": self.total_polls,
            "total_new_posts": self.total_new_posts,
            "deliveries_succeeded": sum(
                m.deliveries_succeeded for m in self.topics.values()
            ),
            "deliveries_failed": sum(m.deliveries_failed for m in self.topics.values()),
        }
