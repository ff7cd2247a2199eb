"""
Content store reads used by the feeds.

Posts, comments and likes are written elsewhere; this module only reads them.
Engagement counts are computed with one GROUP BY query per child table so
that likes and comments never multiply each other on a joined post row.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from .. import models


@dataclass(frozen=True)
class Engagement:
    likes: int = 0
    comments: int = 0

    @property
    def total(self) -> int:
        return self.likes + self.comments


class ContentStore:
    """Read-only access to posts and their engagement."""

    def posts_by_authors(
        self,
        db: Session,
        authors: Iterable[str] | Select,
        visibilities: Iterable[str],
        *,
        exclude_authors: Iterable[Select] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[models.Post]:
        """
        Posts whose owner is in ``authors``, newest first (ties by id).

        Args:
            db: Database session
            authors: Author ids, or a select producing them
            visibilities: Visibility values to include
            exclude_authors: Selects of author ids to leave out
            limit: Page size (None for all)
            offset: Rows to skip

        Returns:
            List of Post ORM objects
        """
        query = select(models.Post).where(
            models.Post.owner_id.in_(authors),
            models.Post.visibility.in_(list(visibilities)),
        )
        return self._page(db, query, exclude_authors, limit, offset)

    def posts_with_visibility(
        self,
        db: Session,
        visibilities: Iterable[str],
        *,
        exclude_authors: Iterable[Select] = (),
        limit: int | None = None,
        offset: int = 0,
    ) -> list[models.Post]:
        """Posts from any author with the given visibilities, newest first."""
        query = select(models.Post).where(models.Post.visibility.in_(list(visibilities)))
        return self._page(db, query, exclude_authors, limit, offset)

    def engagement_counts(self, db: Session, post_ids: list[str]) -> dict[str, Engagement]:
        """
        Like and comment counts for ``post_ids``.

        Posts without any engagement are absent from the map; callers use
        ``Engagement()`` as the default.
        """
        if not post_ids:
            return {}

        like_counts = db.execute(
            select(models.PostLike.post_id, func.count().label("count"))
            .where(models.PostLike.post_id.in_(post_ids))
            .group_by(models.PostLike.post_id)
        ).all()

        comment_counts = db.execute(
            select(models.Comment.post_id, func.count(models.Comment.id).label("count"))
            .where(models.Comment.post_id.in_(post_ids))
            .group_by(models.Comment.post_id)
        ).all()

        # Create lookup dictionaries
        like_count_map = {post_id: count for post_id, count in like_counts}
        comment_count_map = {post_id: count for post_id, count in comment_counts}

        return {
            post_id: Engagement(
                likes=like_count_map.get(post_id, 0),
                comments=comment_count_map.get(post_id, 0),
            )
            for post_id in set(like_count_map) | set(comment_count_map)
        }

    def liked_post_ids(self, db: Session, post_ids: list[str], user_id: str | None) -> set[str]:
        """The subset of ``post_ids`` that ``user_id`` has liked."""
        if not post_ids or not user_id:
            return set()

        rows = db.execute(
            select(models.PostLike.post_id).where(
                models.PostLike.post_id.in_(post_ids),
                models.PostLike.user_id == user_id,
            )
        ).all()
        return {row[0] for row in rows}

    def like_counts(self):
        """Grouped like counts as a subquery (post_id, like_count)."""
        return (
            select(models.PostLike.post_id, func.count().label("like_count"))
            .group_by(models.PostLike.post_id)
            .subquery("like_counts")
        )

    def comment_counts(self):
        """Grouped comment counts as a subquery (post_id, comment_count)."""
        return (
            select(models.Comment.post_id, func.count(models.Comment.id).label("comment_count"))
            .group_by(models.Comment.post_id)
            .subquery("comment_counts")
        )

    @staticmethod
    def _page(
        db: Session,
        query: Select,
        exclude_authors: Iterable[Select],
        limit: int | None,
        offset: int,
    ) -> list[models.Post]:
        for excluded in exclude_authors:
            query = query.where(models.Post.owner_id.not_in(excluded))
        query = query.order_by(models.Post.created_at.desc(), models.Post.id.desc())
        if limit is not None:
            query = query.limit(limit)
        if offset:
            query = query.offset(offset)
        return list(db.scalars(query).all())
