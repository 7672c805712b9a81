"""
Deduplication ledger for the Reddit Notifier.

The ledger records every (topic, item) pair that has been handed to the
dispatcher. The unique constraint on ``notified_posts`` is the only dedup gate:
two pollers racing on the same post both issue the insert and exactly one of
them sees a row affected.
"""

from datetime import timedelta

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..exceptions import StorageQueryError
from ..models import NotifiedPost
from .database import NotifiedPostRow, utcnow

logger = structlog.get_logger(__name__)

notified_posts = NotifiedPostRow.__table__


class Ledger:
    """
    Durable record of posts that have already been notified.

    Writes are committed before a call returns, so a post reported as new
    survives a crash that happens right after.
    """

    def __init__(self, engine: AsyncEngine):
        """
        Initialize the ledger.

        Args:
            engine: Async engine shared with the rest of the daemon
        """
        self.engine = engine

    async def mark_if_new(self, topic: str, item_id: str) -> bool:
        """
        Record a post as seen if it is not already in the ledger.

        Args:
            topic: Topic the post was fetched from
            item_id: Reddit post id

        Returns:
            True if the post was newly recorded, False if it was a duplicate

        Raises:
            StorageQueryError: If the insert fails
        """
        stmt = (
            sqlite_insert(notified_posts)
            .values(topic=topic, item_id=item_id, first_seen_at=utcnow())
            .on_conflict_do_nothing(index_elements=["topic", "item_id"])
        )
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageQueryError(
                f"Failed to record post {item_id} for r/{topic}: {e}",
                context={"topic": topic, "item_id": item_id},
            ) from e

        return result.rowcount == 1

    async def is_seen(self, topic: str, item_id: str) -> bool:
        """Check whether a post is already recorded, without writing."""
        stmt = select(notified_posts.c.id).where(
            notified_posts.c.topic == topic, notified_posts.c.item_id == item_id
        )
        try:
            async with self.engine.connect() as conn:
                return (await conn.execute(stmt)).first() is not None
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to query ledger: {e}") from e

    async def count(self, topic: str | None = None) -> int:
        """Number of recorded posts, optionally for a single topic."""
        stmt = select(func.count(notified_posts.c.id))
        if topic is not None:
            stmt = stmt.where(notified_posts.c.topic == topic)
        try:
            async with self.engine.connect() as conn:
                return int((await conn.execute(stmt)).scalar_one())
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to count ledger entries: {e}") from e

    async def list_posts(
        self, limit: int = 50, offset: int = 0, topic: str | None = None
    ) -> list[NotifiedPost]:
        """
        List recorded posts, newest first.

        Args:
            limit: Page size
            offset: Rows to skip
            topic: Only return posts for this topic

        Returns:
            One page of ledger entries
        """
        stmt = select(notified_posts)
        if topic is not None:
            stmt = stmt.where(notified_posts.c.topic == topic)
        stmt = (
            stmt.order_by(
                notified_posts.c.first_seen_at.desc(), notified_posts.c.id.desc()
            )
            .limit(limit)
            .offset(offset)
        )
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(stmt)).mappings().all()
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to list ledger entries: {e}") from e

        return [NotifiedPost.model_validate(dict(row)) for row in rows]

    async def delete_post(self, post_id: int) -> bool:
        """Remove one ledger entry by row id. Returns True if a row was deleted."""
        stmt = delete(notified_posts).where(notified_posts.c.id == post_id)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to delete ledger entry: {e}") from e
        return result.rowcount == 1

    async def cleanup_older_than(self, days: int) -> int:
        """
        Delete ledger entries first seen more than ``days`` days ago.

        Returns:
            Number of entries deleted
        """
        cutoff = utcnow() - timedelta(days=days)
        stmt = delete(notified_posts).where(notified_posts.c.first_seen_at < cutoff)
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageQueryError(f"Failed to clean up ledger: {e}") from e

        deleted = result.rowcount or 0
        logger.info("Ledger cleanup completed", days_to_keep=days, deleted=deleted)
        return deleted
