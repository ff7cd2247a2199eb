"""Feed endpoints."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_user_id, get_current_user_id_optional
from ..deps import get_db, get_deadline, get_feed
from ..services.feed import FeedAssembler
from ..transactions import Deadline

router = APIRouter(prefix="/feed", tags=["Feed"])


@router.get("/", response_model=schemas.Page[schemas.FeedEntry])
def friend_feed(
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    feed: FeedAssembler = Depends(get_feed),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.Page[schemas.FeedEntry]:
    """Posts from the current user's friends, newest first."""
    entries = feed.friend_feed(db, current_user_id, limit, offset, deadline=deadline)
    limit, offset = feed.clamp(limit, offset)
    return schemas.Page(
        items=[schemas.FeedEntry.model_validate(e) for e in entries],
        limit=limit,
        offset=offset,
    )


@router.get("/discover", response_model=schemas.Page[schemas.FeedEntry])
def discovery_feed(
    limit: int = Query(20, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    feed: FeedAssembler = Depends(get_feed),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str | None = Depends(get_current_user_id_optional),
) -> schemas.Page[schemas.FeedEntry]:
    """Public posts from everyone. Works anonymously."""
    entries = feed.discovery_feed(db, limit, offset, current_user_id, deadline=deadline)
    limit, offset = feed.clamp(limit, offset)
    return schemas.Page(
        items=[schemas.FeedEntry.model_validate(e) for e in entries],
        limit=limit,
        offset=offset,
    )


@router.get("/trending/posts", response_model=list[schemas.FeedEntry])
def trending_posts(
    window_hours: int = Query(24, ge=1, le=24 * 30),
    limit: int = Query(20, ge=1),
    db: Session = Depends(get_db),
    feed: FeedAssembler = Depends(get_feed),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str | None = Depends(get_current_user_id_optional),
) -> list[schemas.FeedEntry]:
    entries = feed.trending_posts(
        db, timedelta(hours=window_hours), limit, current_user_id, deadline=deadline
    )
    return [schemas.FeedEntry.model_validate(e) for e in entries]


@router.get("/trending/brews", response_model=list[schemas.TrendingBrew])
def trending_brews(
    window_days: int = Query(7, ge=1, le=365),
    limit: int = Query(10, ge=1),
    db: Session = Depends(get_db),
    feed: FeedAssembler = Depends(get_feed),
    deadline: Deadline = Depends(get_deadline),
) -> list[schemas.TrendingBrew]:
    brews = feed.trending_brews(db, timedelta(days=window_days), limit, deadline=deadline)
    return [schemas.TrendingBrew.model_validate(b) for b in brews]
