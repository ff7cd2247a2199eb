from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Callable, Generator

os.environ.setdefault("RUN_MIGRATIONS", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from brewd import models
from brewd.auth import create_access_token
from brewd.db import Base, SessionLocal, build_engine
from brewd.deps import get_db, get_settings
from brewd.main import app
from brewd.services.feed import FeedAssembler
from brewd.services.friendship import FriendshipGraph
from brewd.services.interactions import InteractionService
from brewd.services.post_stats import ContentStore
from brewd.services.social_notifications import NotificationDispatcher
from brewd.settings import SocialSettings

TEST_JWT_SECRET = "brewd-test-secret-key-0123456789abcdef"


@pytest.fixture()
def settings() -> SocialSettings:
    return SocialSettings(
        database_url="sqlite://",
        jwt_secret_key=TEST_JWT_SECRET,
        transaction_retries=0,
    )


@pytest.fixture()
def engine(settings: SocialSettings) -> Generator[Engine, None, None]:
    """Fresh in-memory database per test."""
    engine = build_engine(settings.database_url)
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def db(engine: Engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = SessionLocal(bind=engine)
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def notifications(settings: SocialSettings) -> NotificationDispatcher:
    return NotificationDispatcher(settings)


@pytest.fixture()
def graph(settings: SocialSettings, notifications: NotificationDispatcher) -> FriendshipGraph:
    return FriendshipGraph(settings, notifications)


@pytest.fixture()
def feed(settings: SocialSettings, graph: FriendshipGraph) -> FeedAssembler:
    return FeedAssembler(settings, graph, ContentStore())


@pytest.fixture()
def interactions(
    settings: SocialSettings, notifications: NotificationDispatcher
) -> InteractionService:
    return InteractionService(settings, notifications)


@pytest.fixture()
def client(db: Session, settings: SocialSettings) -> Generator[TestClient, None, None]:
    """API client sharing the test's session, so one connection serves both."""

    def override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db: Session) -> Callable[..., models.User]:
    """Create users; the username defaults to a numbered one."""
    counter = {"n": 0}

    def _make_user(username: str | None = None) -> models.User:
        counter["n"] += 1
        user = models.User(username=username or f"user{counter['n']:03d}")
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture()
def make_post(db: Session) -> Callable[..., models.Post]:
    """Create posts, by default public and one minute old."""

    def _make_post(
        owner: models.User,
        visibility: str = "public",
        created_at: datetime | None = None,
        brew: models.Brew | None = None,
        rating: float | None = None,
        title: str = "Morning pour-over",
    ) -> models.Post:
        post = models.Post(
            owner_id=owner.id,
            brew_id=brew.id if brew else None,
            title=title,
            rating=rating,
            visibility=visibility,
            created_at=created_at or models.utcnow() - timedelta(minutes=1),
        )
        db.add(post)
        db.commit()
        return post

    return _make_post


@pytest.fixture()
def auth_headers(settings: SocialSettings) -> Callable[[models.User], dict[str, str]]:
    def _auth_headers(user: models.User) -> dict[str, str]:
        token = create_access_token(user.id, settings)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest.fixture()
def befriend(db: Session, graph: FriendshipGraph) -> Callable[[models.User, models.User], None]:
    """Make two users friends through the normal request/accept flow."""

    def _befriend(a: models.User, b: models.User) -> None:
        graph.send_request(db, a.id, b.id)
        graph.accept_request(db, a.id, b.id)

    return _befriend
