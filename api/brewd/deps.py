from __future__ import annotations

from functools import lru_cache
from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from .db import get_session
from .services.feed import FeedAssembler
from .services.friendship import FriendshipGraph
from .services.interactions import InteractionService
from .services.post_stats import ContentStore
from .services.social_notifications import NotificationDispatcher
from .settings import SocialSettings
from .transactions import Deadline


@lru_cache(maxsize=1)
def get_settings() -> SocialSettings:
    return SocialSettings.from_env()


def get_db(settings: SocialSettings = Depends(get_settings)) -> Generator[Session, None, None]:
    yield from get_session(settings)


def get_deadline(settings: SocialSettings = Depends(get_settings)) -> Deadline:
    """Per-request deadline, started when the request is dispatched."""
    return Deadline.after(settings.request_deadline_seconds)


def get_notifications(
    settings: SocialSettings = Depends(get_settings),
) -> NotificationDispatcher:
    return NotificationDispatcher(settings)


def get_graph(
    settings: SocialSettings = Depends(get_settings),
    notifications: NotificationDispatcher = Depends(get_notifications),
) -> FriendshipGraph:
    return FriendshipGraph(settings, notifications)


def get_feed(
    settings: SocialSettings = Depends(get_settings),
    graph: FriendshipGraph = Depends(get_graph),
) -> FeedAssembler:
    return FeedAssembler(settings, graph, ContentStore())


def get_interactions(
    settings: SocialSettings = Depends(get_settings),
    notifications: NotificationDispatcher = Depends(get_notifications),
) -> InteractionService:
    return InteractionService(settings, notifications)
