from __future__ import annotations

from datetime import datetime
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# BASE SCHEMAS
# ============================================================================


class ErrorBody(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error envelope returned for every handled failure."""

    error: ErrorBody


T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """Offset-paginated response."""

    items: list[T]
    limit: int
    offset: int


# ============================================================================
# FRIENDS
# ============================================================================


class Connection(BaseModel):
    """Another user seen through a friend edge."""

    user_id: str
    username: str
    profile_picture_url: str | None = None
    since: datetime

    model_config = ConfigDict(from_attributes=True)


class FriendStatusResponse(BaseModel):
    user_id: str
    other_id: str
    status: Literal["none", "pending", "accepted", "blocked"]
    reverse_status: Literal["none", "pending", "accepted", "blocked"]


class FriendCount(BaseModel):
    user_id: str
    friend_count: int


class FriendshipChange(BaseModel):
    """Acknowledgement for a state transition."""

    message: str


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class Notification(BaseModel):
    """A notification as shown to its recipient."""

    id: str
    actor_id: str
    actor_username: str | None = None
    notification_type: str
    reference_id: str | None = None
    reference_type: str | None = None
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="before")
    @classmethod
    def extract_actor_username(cls, data):
        """Pull the actor username off the loaded ORM relationship."""
        actor = getattr(data, "actor", None)
        if actor is None or isinstance(data, dict):
            return data
        return {
            "id": data.id,
            "actor_id": data.actor_id,
            "actor_username": actor.username,
            "notification_type": data.notification_type,
            "reference_id": data.reference_id,
            "reference_type": data.reference_type,
            "is_read": data.is_read,
            "created_at": data.created_at,
        }


class UnreadCount(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int


# ============================================================================
# FEED
# ============================================================================


class Post(BaseModel):
    id: str
    owner_id: str
    brew_id: str | None = None
    title: str
    description: str | None = None
    rating: float | None = None
    visibility: Literal["public", "friends", "private"]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FeedEntry(BaseModel):
    """Post annotated with engagement for the viewer."""

    post: Post
    like_count: int
    comment_count: int
    liked_by_current_user: bool

    model_config = ConfigDict(from_attributes=True)


class Brew(BaseModel):
    id: str
    name: str
    brew_method: str | None = None
    bean_origin: str | None = None
    roaster: str | None = None

    model_config = ConfigDict(from_attributes=True)


class TrendingBrew(BaseModel):
    brew: Brew
    usage_count: int
    avg_rating: float | None = None

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# CONTENT EVENTS
# ============================================================================


class LikeResponse(BaseModel):
    liked: bool
    created: bool
    like_count: int


class CommentCreate(BaseModel):
    """Create comment request."""

    content: str = Field(..., min_length=1, max_length=2000)
    parent_comment_id: str | None = None


class Comment(BaseModel):
    id: str
    post_id: str
    owner_id: str
    parent_comment_id: str | None = None
    content: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TagCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=26)


class TagResponse(BaseModel):
    created: bool
