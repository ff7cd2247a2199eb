from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from alembic import command
from alembic.config import Config
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .error_handlers import register_error_handlers
from .routers import feed, friends, reactions, social_notifications

load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)


def run_migrations() -> None:
    logger.info("Running Alembic migrations...")
    try:
        command.upgrade(_alembic_config(), "head")
        logger.info("run_migrations: Completed successfully.")
    except Exception as e:
        logger.error(f"run_migrations: Error occurred: {e}", exc_info=True)
        raise


def _alembic_config() -> Config:
    base_dir = Path(__file__).resolve().parent.parent
    cfg = Config(str(base_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(base_dir / "alembic"))
    return cfg


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application...")
    if os.getenv("RUN_MIGRATIONS", "true").lower() in ("1", "true", "yes"):
        run_migrations()
    logger.info("brewd API server ready")
    yield
    logger.info("Shutting down application...")


app = FastAPI(
    title="brewd API",
    version="1.0.0",
    description="Friends, notifications and feeds for the coffee-sharing platform",
    lifespan=lifespan,
)

# Comma-separated list of allowed origins
cors_origins_str = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost")
if cors_origins_str == "*":
    logger.warning(
        "CORS is configured to allow all origins. "
        "Set CORS_ORIGINS to specific domains in production."
    )
cors_origins = [origin.strip() for origin in cors_origins_str.split(",")]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
    max_age=600,
)

register_error_handlers(app)

app.include_router(friends.router)
app.include_router(social_notifications.router)
app.include_router(feed.router)
app.include_router(reactions.router)
