"""
Database engine and session management.
"""
from pathlib import Path
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from app.core.config import Settings, get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Create base class for models
Base = declarative_base()


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    _, _, db_path = database_url.partition(":///")
    if not db_path or db_path.startswith(":memory:"):
        return
    if db_path.startswith("./"):
        db_path = db_path[2:]
    db_dir = Path(db_path).parent
    if db_dir and not db_dir.exists():
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created database directory: {db_dir}")


def build_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """Create an async engine for the configured database."""
    settings = settings or get_settings()

    connect_args = {}
    is_sqlite = settings.database_url.startswith("sqlite")
    if is_sqlite:
        # Writers wait on SQLite's lock instead of failing immediately
        connect_args["timeout"] = settings.database_busy_timeout_seconds
        _ensure_sqlite_directory(settings.database_url)

    engine = create_async_engine(
        settings.database_url,
        connect_args=connect_args,
        echo=settings.debug,
        pool_pre_ping=True,
    )

    # Enable foreign keys for SQLite
    if is_sqlite:
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    logger.info("Database engine created", extra={"extra_data": {"database_url": settings.database_url}})
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Session factory whose objects stay readable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    from app.models import conversation, message  # noqa: F401 - Import to register models

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def check_db_connection(engine: AsyncEngine) -> bool:
    """Check if database is reachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
