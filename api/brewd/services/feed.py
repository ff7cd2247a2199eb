"""
Feed Assembler.

Builds the friend feed, the public discovery feed and the trending lists by
combining friendship state with post visibility and engagement counts.
Read-only: nothing here writes to the store.

Pagination is offset based. Posts inserted between two page requests can
shift rows across pages; callers see that drift as-is.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import Float, func, select
from sqlalchemy.orm import Session

from .. import models
from ..models import Visibility
from ..settings import SocialSettings
from ..transactions import Deadline, run_in_transaction
from .friendship import FriendshipGraph
from .post_stats import ContentStore, Engagement

logger = logging.getLogger(__name__)

FRIEND_FEED_VISIBILITIES = (Visibility.PUBLIC.value, Visibility.FRIENDS.value)
PUBLIC_VISIBILITIES = (Visibility.PUBLIC.value,)


@dataclass(frozen=True)
class FeedEntry:
    post: models.Post
    like_count: int
    comment_count: int
    liked_by_current_user: bool

    @property
    def engagement(self) -> int:
        return self.like_count + self.comment_count


@dataclass(frozen=True)
class BrewUsage:
    brew: models.Brew
    usage_count: int
    avg_rating: float | None


class FeedAssembler:
    """Composes feeds; asks the friendship graph who the viewer may see."""

    def __init__(
        self,
        settings: SocialSettings,
        graph: FriendshipGraph,
        content: ContentStore,
    ) -> None:
        self.settings = settings
        self.graph = graph
        self.content = content

    def friend_feed(
        self,
        db: Session,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
        *,
        deadline: Deadline | None = None,
    ) -> list[FeedEntry]:
        """
        Public and friends-only posts by the user's accepted friends.

        Authors who blocked the viewer, or whom the viewer blocked, are left out.
        """
        limit, offset = self.clamp(limit, offset)

        def work(session: Session) -> list[FeedEntry]:
            posts = self.content.posts_by_authors(
                session,
                self.graph.friend_ids(user_id),
                FRIEND_FEED_VISIBILITIES,
                exclude_authors=(self.graph.blocked_ids(user_id), self.graph.blocker_ids(user_id)),
                limit=limit,
                offset=offset,
            )
            return self._annotate(session, posts, user_id)

        return run_in_transaction(
            db, "friend_feed", user_id, work, deadline=self._deadline(deadline)
        )

    def discovery_feed(
        self,
        db: Session,
        limit: int = 20,
        offset: int = 0,
        viewer_id: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> list[FeedEntry]:
        """Public posts from anyone; used to backfill a sparse friend feed."""
        limit, offset = self.clamp(limit, offset)
        excluded = ()
        if viewer_id:
            excluded = (self.graph.blocked_ids(viewer_id), self.graph.blocker_ids(viewer_id))

        def work(session: Session) -> list[FeedEntry]:
            posts = self.content.posts_with_visibility(
                session,
                PUBLIC_VISIBILITIES,
                exclude_authors=excluded,
                limit=limit,
                offset=offset,
            )
            return self._annotate(session, posts, viewer_id)

        return run_in_transaction(
            db, "discovery_feed", viewer_id, work, deadline=self._deadline(deadline)
        )

    def trending_posts(
        self,
        db: Session,
        window: timedelta,
        limit: int = 20,
        viewer_id: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> list[FeedEntry]:
        """
        Public posts created within ``window``, ranked by likes + comments.

        Posts without any engagement are excluded, as are authors the viewer
        has blocked or been blocked by.
        """
        limit, _ = self.clamp(limit, 0)
        likes = self.content.like_counts()
        comments = self.content.comment_counts()
        like_count = func.coalesce(likes.c.like_count, 0)
        comment_count = func.coalesce(comments.c.comment_count, 0)
        score = like_count + comment_count

        def work(session: Session) -> list[FeedEntry]:
            since = models.utcnow() - window
            query = (
                select(models.Post, like_count.label("likes"), comment_count.label("comments"))
                .outerjoin(likes, likes.c.post_id == models.Post.id)
                .outerjoin(comments, comments.c.post_id == models.Post.id)
                .where(
                    models.Post.visibility.in_(PUBLIC_VISIBILITIES),
                    models.Post.created_at > since,
                    score > 0,
                )
            )
            if viewer_id:
                query = query.where(
                    models.Post.owner_id.not_in(self.graph.blocked_ids(viewer_id)),
                    models.Post.owner_id.not_in(self.graph.blocker_ids(viewer_id)),
                )
            rows = session.execute(
                query.order_by(
                    score.desc(), models.Post.created_at.desc(), models.Post.id.desc()
                ).limit(limit)
            ).all()
            liked = self.content.liked_post_ids(session, [row[0].id for row in rows], viewer_id)
            return [
                FeedEntry(
                    post=post,
                    like_count=likes_,
                    comment_count=comments_,
                    liked_by_current_user=post.id in liked,
                )
                for post, likes_, comments_ in rows
            ]

        return run_in_transaction(
            db, "trending_posts", str(window), work, deadline=self._deadline(deadline)
        )

    def trending_brews(
        self,
        db: Session,
        window: timedelta,
        limit: int = 10,
        *,
        min_usage: int | None = None,
        deadline: Deadline | None = None,
    ) -> list[BrewUsage]:
        """
        Public brews ranked by how many public posts used them within ``window``.

        Brews used fewer than ``min_usage`` times (default from settings) are
        left out so a single post cannot top the list.
        """
        limit, _ = self.clamp(limit, 0)
        if min_usage is None:
            min_usage = self.settings.trending_min_brew_usage
        usage = func.count(models.Post.id)
        avg_rating = func.avg(models.Post.rating, type_=Float)

        def work(session: Session) -> list[BrewUsage]:
            since = models.utcnow() - window
            usage_counts = (
                select(
                    models.Post.brew_id.label("brew_id"),
                    usage.label("usage_count"),
                    avg_rating.label("avg_rating"),
                )
                .join(models.Brew, models.Brew.id == models.Post.brew_id)
                .where(
                    models.Brew.is_public == True,  # noqa: E712
                    models.Post.visibility.in_(PUBLIC_VISIBILITIES),
                    models.Post.created_at > since,
                )
                .group_by(models.Post.brew_id)
                .having(usage >= min_usage)
                .subquery("usage_counts")
            )
            rows = session.execute(
                select(models.Brew, usage_counts.c.usage_count, usage_counts.c.avg_rating)
                .join(usage_counts, usage_counts.c.brew_id == models.Brew.id)
                .order_by(
                    usage_counts.c.usage_count.desc(),
                    usage_counts.c.avg_rating.desc(),
                    models.Brew.id,
                )
                .limit(limit)
            ).all()
            return [
                BrewUsage(
                    brew=brew,
                    usage_count=usage_count,
                    avg_rating=float(rating) if rating is not None else None,
                )
                for brew, usage_count, rating in rows
            ]

        return run_in_transaction(
            db, "trending_brews", str(window), work, deadline=self._deadline(deadline)
        )

    # =========================================================================
    # Private helper methods
    # =========================================================================

    def _annotate(
        self, session: Session, posts: list[models.Post], viewer_id: str | None
    ) -> list[FeedEntry]:
        post_ids = [post.id for post in posts]
        counts = self.content.engagement_counts(session, post_ids)
        liked = self.content.liked_post_ids(session, post_ids, viewer_id)
        entries = []
        for post in posts:
            engagement = counts.get(post.id, Engagement())
            entries.append(
                FeedEntry(
                    post=post,
                    like_count=engagement.likes,
                    comment_count=engagement.comments,
                    liked_by_current_user=post.id in liked,
                )
            )
        return entries

    def clamp(self, limit: int, offset: int) -> tuple[int, int]:
        """Page bounds the feeds actually serve; limit is capped at ``feed_max_limit``."""
        return max(1, min(limit, self.settings.feed_max_limit)), max(0, offset)

    def _deadline(self, deadline: Deadline | None) -> Deadline:
        return deadline or Deadline.after(self.settings.request_deadline_seconds)
