from __future__ import annotations

import os
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .settings import SocialSettings


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Let pysqlite hand transaction control to SQLAlchemy.

    Without this, pysqlite issues its own BEGIN lazily and SAVEPOINT
    (Session.begin_nested) silently misbehaves.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, isolation_level: str | None = None) -> Engine:
    """Create an engine for ``url``; SQLite URLs get the savepoint recipe."""
    echo = os.getenv("LOG_LEVEL", "INFO").upper() == "DEBUG"
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if url in ("sqlite://", "sqlite:///:memory:") else None,
        )
        _enable_sqlite_savepoints(engine)
        return engine

    kwargs = {"echo": echo, "pool_pre_ping": True}
    if isolation_level:
        kwargs["isolation_level"] = isolation_level
    return create_engine(url, **kwargs)


SessionLocal = sessionmaker(autoflush=False, autocommit=False, expire_on_commit=False)


@lru_cache(maxsize=4)
def get_engine(settings: SocialSettings) -> Engine:
    """One engine per settings value; built on first use."""
    return build_engine(settings.database_url, isolation_level=settings.isolation_level)


def get_session(settings: SocialSettings) -> Generator[Session, None, None]:
    session: Session = SessionLocal(bind=get_engine(settings))
    try:
        yield session
    finally:
        session.close()
