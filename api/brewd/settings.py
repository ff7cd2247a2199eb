"""Centralized environment-driven settings.

Keep this module lightweight: stdlib only, no brewd imports, to avoid circular deps.
The settings value is built once at process start and handed to the services.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import quote_plus


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw


def get_database_url() -> str:
    """Get the database URL, either verbatim or assembled from components."""
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_user = os.getenv("DB_USER")
    db_pass = os.getenv("DB_PASSWORD")
    db_name = os.getenv("DB_DATABASE")
    db_host = os.getenv("DB_HOST", "db")
    db_port = os.getenv("DB_PORT", "5432")

    if db_user and db_pass and db_name:
        # URL-encode the password in case it contains special characters
        encoded_pass = quote_plus(db_pass)
        return f"postgresql+psycopg://{db_user}:{encoded_pass}@{db_host}:{db_port}/{db_name}"

    raise RuntimeError(
        "DATABASE_URL must be set, or DB_USER, DB_PASSWORD, and DB_DATABASE must all be set."
    )


@dataclass(frozen=True)
class SocialSettings:
    """Runtime configuration shared by the social-graph services."""

    database_url: str = "sqlite://"
    isolation_level: str = "REPEATABLE READ"

    # Notifications
    dedup_window_seconds: int = 3600
    notification_retention_days: int = 30
    purge_interval_seconds: int = 86400

    # Feeds
    trending_min_brew_usage: int = 3
    feed_max_limit: int = 100

    # Store round-trips
    request_deadline_seconds: float = 5.0
    transaction_retries: int = 3

    # Authentication (consumed, never issued by the services)
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"

    @classmethod
    def from_env(cls) -> "SocialSettings":
        return cls(
            database_url=get_database_url(),
            isolation_level=_str_env("DB_ISOLATION_LEVEL", cls.isolation_level),
            dedup_window_seconds=_int_env(
                "NOTIFICATION_DEDUP_WINDOW_SECONDS", cls.dedup_window_seconds
            ),
            notification_retention_days=_int_env(
                "NOTIFICATION_RETENTION_DAYS", cls.notification_retention_days
            ),
            purge_interval_seconds=_int_env(
                "NOTIFICATION_PURGE_INTERVAL_SECONDS", cls.purge_interval_seconds
            ),
            trending_min_brew_usage=_int_env(
                "TRENDING_MIN_BREW_USAGE", cls.trending_min_brew_usage
            ),
            feed_max_limit=_int_env("FEED_MAX_LIMIT", cls.feed_max_limit),
            request_deadline_seconds=_float_env(
                "REQUEST_DEADLINE_SECONDS", cls.request_deadline_seconds
            ),
            transaction_retries=_int_env("TRANSACTION_RETRIES", cls.transaction_retries),
            jwt_secret_key=_str_env("JWT_SECRET_KEY", cls.jwt_secret_key),
            jwt_algorithm=_str_env("JWT_ALGORITHM", cls.jwt_algorithm),
        )
