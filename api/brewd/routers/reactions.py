"""Like, comment and tag endpoints for posts."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_user_id
from ..deps import get_db, get_deadline, get_interactions
from ..services.interactions import InteractionService
from ..transactions import Deadline

router = APIRouter(prefix="/post", tags=["Reactions"])


@router.put("/{post_id}/like", response_model=schemas.LikeResponse)
def like_post(
    post_id: str,
    db: Session = Depends(get_db),
    interactions: InteractionService = Depends(get_interactions),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.LikeResponse:
    """Like a post. Repeating the call keeps a single like."""
    created = interactions.like_post(db, post_id, current_user_id, deadline=deadline)
    return schemas.LikeResponse(
        liked=True,
        created=created,
        like_count=interactions.like_count(db, post_id),
    )


@router.delete("/{post_id}/like", status_code=status.HTTP_204_NO_CONTENT)
def unlike_post(
    post_id: str,
    db: Session = Depends(get_db),
    interactions: InteractionService = Depends(get_interactions),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> None:
    interactions.unlike_post(db, post_id, current_user_id, deadline=deadline)


@router.post(
    "/{post_id}/comments",
    status_code=status.HTTP_201_CREATED,
    response_model=schemas.Comment,
)
def create_comment(
    post_id: str,
    payload: schemas.CommentCreate,
    db: Session = Depends(get_db),
    interactions: InteractionService = Depends(get_interactions),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.Comment:
    comment = interactions.add_comment(
        db,
        post_id,
        current_user_id,
        payload.content,
        payload.parent_comment_id,
        deadline=deadline,
    )
    return schemas.Comment.model_validate(comment)


@router.post("/{post_id}/tags", response_model=schemas.TagResponse)
def tag_user(
    post_id: str,
    payload: schemas.TagCreate,
    db: Session = Depends(get_db),
    interactions: InteractionService = Depends(get_interactions),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.TagResponse:
    created = interactions.tag_user(
        db, post_id, current_user_id, payload.user_id, deadline=deadline
    )
    return schemas.TagResponse(created=created)
