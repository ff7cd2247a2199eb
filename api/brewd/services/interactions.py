"""
Content events.

Likes, comments and tags are stored by the content side of the platform; this
service records them and raises the matching notifications for the post owner
or the tagged user.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..errors import NotFound
from ..settings import SocialSettings
from ..transactions import Deadline, run_in_transaction
from .post_stats import ContentStore
from .social_notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


class InteractionService:
    def __init__(self, settings: SocialSettings, notifications: NotificationDispatcher) -> None:
        self.settings = settings
        self.notifications = notifications

    def _run(self, db: Session, operation: str, key, work, deadline: Deadline | None):
        return run_in_transaction(
            db,
            operation,
            key,
            work,
            deadline=deadline or Deadline.after(self.settings.request_deadline_seconds),
            retries=self.settings.transaction_retries,
        )

    def like_post(
        self, db: Session, post_id: str, user_id: str, *, deadline: Deadline | None = None
    ) -> bool:
        """
        Like a post. Liking twice keeps a single like row.

        Returns:
            True if a new like was stored, False if it already existed
        """
        key = (post_id, user_id)

        def work(session: Session) -> tuple[bool, str]:
            owner_id = _post_owner(session, "like_post", post_id)
            exists = session.scalar(
                select(models.PostLike.post_id).where(
                    models.PostLike.post_id == post_id,
                    models.PostLike.user_id == user_id,
                )
            )
            if exists is not None:
                return False, owner_id
            try:
                with session.begin_nested():
                    session.execute(
                        insert(models.PostLike).values(post_id=post_id, user_id=user_id)
                    )
            except IntegrityError:
                # A concurrent like for the same pair won
                liked = session.scalar(
                    select(models.PostLike.post_id).where(
                        models.PostLike.post_id == post_id,
                        models.PostLike.user_id == user_id,
                    )
                )
                if liked is None:
                    raise
                return False, owner_id
            return True, owner_id

        created, owner_id = self._run(db, "like_post", key, work, deadline)
        if not created:
            logger.debug(f"User {user_id} already liked post {post_id}")
            return False

        logger.info(f"User {user_id} liked post {post_id}")
        self.notifications.notify_after_commit(
            db,
            recipient_id=owner_id,
            actor_id=user_id,
            notification_type="like",
            reference_id=post_id,
            reference_type="post",
            deadline=deadline,
        )
        return True

    def unlike_post(
        self, db: Session, post_id: str, user_id: str, *, deadline: Deadline | None = None
    ) -> bool:
        """Remove a like; returns False when there was nothing to remove."""

        def work(session: Session) -> bool:
            _post_owner(session, "unlike_post", post_id)
            result = session.execute(
                delete(models.PostLike)
                .where(
                    models.PostLike.post_id == post_id,
                    models.PostLike.user_id == user_id,
                )
                .execution_options(synchronize_session=False)
            )
            return bool(result.rowcount)

        return self._run(db, "unlike_post", (post_id, user_id), work, deadline)

    def add_comment(
        self,
        db: Session,
        post_id: str,
        user_id: str,
        content: str,
        parent_comment_id: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> models.Comment:
        """
        Store a comment and notify the post owner.

        Raises:
            NotFound: the post, or the parent comment on this post, does not exist
        """
        key = (post_id, user_id)

        def work(session: Session) -> tuple[models.Comment, str]:
            owner_id = _post_owner(session, "add_comment", post_id)
            if parent_comment_id is not None:
                parent = session.scalar(
                    select(models.Comment.id).where(
                        models.Comment.id == parent_comment_id,
                        models.Comment.post_id == post_id,
                    )
                )
                if parent is None:
                    raise NotFound(
                        "Parent comment not found", operation="add_comment", key=parent_comment_id
                    )
            comment = models.Comment(
                post_id=post_id,
                owner_id=user_id,
                content=content,
                parent_comment_id=parent_comment_id,
            )
            session.add(comment)
            session.flush()
            return comment, owner_id

        comment, owner_id = self._run(db, "add_comment", key, work, deadline)
        logger.info(f"User {user_id} commented {comment.id} on post {post_id}")

        self.notifications.notify_after_commit(
            db,
            recipient_id=owner_id,
            actor_id=user_id,
            notification_type="comment",
            reference_id=post_id,
            reference_type="post",
            deadline=deadline,
        )
        return comment

    def tag_user(
        self,
        db: Session,
        post_id: str,
        tagger_id: str,
        tagged_id: str,
        *,
        deadline: Deadline | None = None,
    ) -> bool:
        """Tag a user in a post; only a new tag notifies the tagged user."""
        key = (post_id, tagged_id)

        def work(session: Session) -> bool:
            _post_owner(session, "tag_user", post_id)
            if session.get(models.User, tagged_id) is None:
                raise NotFound("User not found", operation="tag_user", key=tagged_id)
            exists = session.scalar(
                select(models.PostUserTag.post_id).where(
                    models.PostUserTag.post_id == post_id,
                    models.PostUserTag.user_id == tagged_id,
                )
            )
            if exists is not None:
                return False
            session.execute(
                insert(models.PostUserTag).values(post_id=post_id, user_id=tagged_id)
            )
            return True

        created = self._run(db, "tag_user", key, work, deadline)
        if created:
            logger.info(f"User {tagger_id} tagged {tagged_id} in post {post_id}")
            self.notifications.notify_after_commit(
                db,
                recipient_id=tagged_id,
                actor_id=tagger_id,
                notification_type="tag",
                reference_id=post_id,
                reference_type="post",
                deadline=deadline,
            )
        return created

    def like_count(self, db: Session, post_id: str) -> int:
        counts = self._run(
            db,
            "like_count",
            post_id,
            lambda session: ContentStore().engagement_counts(session, [post_id]),
            None,
        )
        engagement = counts.get(post_id)
        return engagement.likes if engagement else 0


def _post_owner(session: Session, operation: str, post_id: str) -> str:
    owner_id = session.scalar(select(models.Post.owner_id).where(models.Post.id == post_id))
    if owner_id is None:
        raise NotFound("Post not found", operation=operation, key=post_id)
    return owner_id
