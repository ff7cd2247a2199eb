from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base
from .ids import new_id


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FriendStatus(str, enum.Enum):
    """Status of one directed friend edge; NONE means no row."""

    NONE = "none"
    PENDING = "pending"
    ACCEPTED = "accepted"
    BLOCKED = "blocked"


class Visibility(str, enum.Enum):
    PUBLIC = "public"
    FRIENDS = "friends"
    PRIVATE = "private"


NOTIFICATION_TYPES = ("like", "comment", "friend_request", "tag", "follow")
REFERENCE_TYPES = ("post", "comment", "friendship")


# ============================================================================
# IDENTITY (owned by the authentication collaborator)
# ============================================================================


class User(Base):
    """User identity. Only the id is meaningful to the social graph."""

    __tablename__ = "users"

    id = Column(String(26), primary_key=True, default=new_id)
    username = Column(String(255), unique=True, nullable=False, index=True)
    profile_picture_url = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


# ============================================================================
# CONTENT (read-only to the social graph)
# ============================================================================


class Brew(Base):
    """A coffee or brew configuration that posts reference."""

    __tablename__ = "brew"

    id = Column(String(26), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    brew_method = Column(String(100), nullable=True, index=True)
    bean_origin = Column(Text, nullable=True)
    roaster = Column(Text, nullable=True)
    created_by = Column(String(26), ForeignKey("users.id"), nullable=True, index=True)
    is_public = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class Post(Base):
    """A brew post. The feed only looks at owner, visibility and created_at."""

    __tablename__ = "post"

    id = Column(String(26), primary_key=True, default=new_id)
    owner_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    brew_id = Column(String(26), ForeignKey("brew.id"), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    rating = Column(Numeric(2, 1), nullable=True)
    visibility = Column(String(20), nullable=False, default=Visibility.PUBLIC.value)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)

    owner = relationship("User", foreign_keys=[owner_id])
    brew = relationship("Brew")

    __table_args__ = (
        CheckConstraint(
            "visibility IN ('public', 'friends', 'private')", name="ck_post_visibility"
        ),
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_post_rating"),
        Index("ix_post_owner_created", owner_id, created_at.desc()),
        Index("ix_post_visibility_created", visibility, created_at.desc()),
    )


class Comment(Base):
    """Comment on a post, optionally replying to another comment."""

    __tablename__ = "comment"

    id = Column(String(26), primary_key=True, default=new_id)
    post_id = Column(
        String(26), ForeignKey("post.id", ondelete="CASCADE"), nullable=False, index=True
    )
    parent_comment_id = Column(
        String(26), ForeignKey("comment.id", ondelete="CASCADE"), nullable=True, index=True
    )
    owner_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content = Column(Text, nullable=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class PostLike(Base):
    """One like per (post, user)."""

    __tablename__ = "post_likes"

    post_id = Column(String(26), ForeignKey("post.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


class PostUserTag(Base):
    """A user tagged in a post."""

    __tablename__ = "post_user_tags"

    post_id = Column(String(26), ForeignKey("post.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )


# ============================================================================
# SOCIAL GRAPH
# ============================================================================


class FriendEdge(Base):
    """
    One directed row of the friendship relation.

    Accepted friendships are stored as two rows, (a, b) and (b, a).
    Pending requests are one row, (requester, recipient).
    Blocks are one row, (blocker, blocked), independent of the reverse row.
    """

    __tablename__ = "friend_edge"

    owner_id = Column(
        "owner", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    other_id = Column(
        "other", String(26), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    status = Column(String(16), nullable=False, default=FriendStatus.PENDING.value)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'accepted', 'blocked')", name="ck_friend_edge_status"
        ),
        CheckConstraint("owner <> other", name="ck_friend_edge_no_self"),
        Index("ix_friend_edge_owner_status", owner_id, status),
        Index("ix_friend_edge_other_status", other_id, status),
    )


class Notification(Base):
    """Notification delivered to ``recipient_id`` about something ``actor_id`` did."""

    __tablename__ = "notification"

    id = Column(String(26), primary_key=True, default=new_id)
    recipient_id = Column(
        "recipient", String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    actor_id = Column(
        "actor", String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    notification_type = Column("type", String(50), nullable=False)
    reference_id = Column(String(26), nullable=True)
    reference_type = Column(String(50), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    actor = relationship("User", foreign_keys=[actor_id])

    __table_args__ = (
        CheckConstraint(
            "type IN ('like', 'comment', 'friend_request', 'tag', 'follow')",
            name="ck_notification_type",
        ),
        CheckConstraint(
            "reference_type IS NULL OR reference_type IN ('post', 'comment', 'friendship')",
            name="ck_notification_reference_type",
        ),
        # Unread badge count
        Index("ix_notification_recipient_read", recipient_id, is_read),
        Index("ix_notification_recipient_created", recipient_id, created_at.desc()),
        # Duplicate-trigger lookup inside the dedup window
        Index(
            "ix_notification_dedup",
            recipient_id,
            actor_id,
            notification_type,
            reference_id,
            created_at,
        ),
    )
