from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, create_engine

from app.config import settings

logger = logging.getLogger(__name__)

# Global engine; None means the in-memory repositories are in use.
engine: Engine | None = None


class DatabaseUnavailableError(RuntimeError):
    """Raised at startup when the configured store cannot be reached."""

    def __init__(self, message: str, code: str = "E_DATABASE_UNAVAILABLE") -> None:
        super().__init__(message)
        self.code = code


def create_sync_engine(
    database_url: str,
    *,
    pool_min_size: int | None = None,
    pool_max_size: int | None = None,
    auto_create_schema: bool = False,
) -> Engine:
    """Build a SQLAlchemy engine from DATABASE_URL, accepting async driver names."""
    parsed_url = make_url(database_url)
    sync_url, connect_args, drivername = coerce_sync_database_url(parsed_url)
    pool_min = max(pool_min_size or settings.db_pool_min_size, 1)
    pool_max = max(pool_max_size or settings.db_pool_max_size, pool_min)
    is_sqlite = drivername.startswith("sqlite")
    engine_kwargs: dict[str, Any] = {
        "echo": False,
        "connect_args": connect_args,
        "pool_pre_ping": not is_sqlite,
    }
    if not is_sqlite:
        engine_kwargs["pool_size"] = pool_min
        engine_kwargs["max_overflow"] = max(pool_max - pool_min, 0)
    sync_engine = create_engine(sync_url, **engine_kwargs)
    if auto_create_schema:
        # Import for side effects: registers the tables on SQLModel.metadata.
        from app.models import records  # noqa: F401

        SQLModel.metadata.create_all(sync_engine)
    return sync_engine


def coerce_sync_database_url(url: URL) -> tuple[str, dict[str, Any], str]:
    """Convert async connection strings into sync SQLAlchemy URLs."""
    drivername = url.drivername
    connect_args: dict[str, Any] = {}
    if drivername.endswith("+asyncpg"):
        drivername = drivername.replace("+asyncpg", "+psycopg2")
    elif drivername.endswith("+aiosqlite"):
        drivername = drivername.replace("+aiosqlite", "")
    sync_url = url.set(drivername=drivername)
    query = dict(sync_url.query) if sync_url.query else {}
    removed_ssl = query.pop("ssl", None) is not None
    sync_url = sync_url.set(query=query or None)

    if drivername.startswith("postgresql") and removed_ssl and "sslmode" not in query:
        connect_args["sslmode"] = "require"
    if drivername.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
    return sync_url.render_as_string(hide_password=False), connect_args, drivername


def resolve_backend_tag(bound: Engine | None) -> str:
    """Short label used in logs/metrics for the active backend."""
    if bound is None:
        return "memory"
    if bound.dialect.name == "sqlite":
        return "sqlite"
    return "postgres"


def init_database() -> Engine | None:
    """Initialize the engine if DATABASE_URL is provided and verify connectivity."""
    global engine

    if not settings.database_url:
        logger.info("No DATABASE_URL provided, using in-memory repositories")
        engine = None
        return None

    try:
        engine = create_sync_engine(
            settings.database_url,
            auto_create_schema=settings.auto_create_schema,
        )
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error(f"Failed to initialize database: {exc}")
        raise DatabaseUnavailableError(f"Database unreachable: {exc}") from exc

    logger.info("Database connection initialized successfully")
    return engine


def dispose_database() -> None:
    global engine
    if engine is not None:
        engine.dispose()
    engine = None


def check_database_health() -> bool:
    """Check if database is accessible."""
    if engine is None:
        return True  # No database configured, consider healthy

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        return False
