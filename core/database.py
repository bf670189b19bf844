"""
Database session management with SQLAlchemy async
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.engine import make_url
from sqlalchemy.pool import NullPool
from pathlib import Path
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: str = None, echo: bool = False) -> AsyncEngine:
    """Create an async engine for the given URL (defaults to settings)."""
    url = database_url or settings.DATABASE_URL
    connect_args = {}
    if url.startswith("sqlite"):
        database = make_url(url).database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        # Pipeline tasks write concurrently; give SQLite time to serialize them
        connect_args["timeout"] = 30
    return create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,  # Every repository call opens its own short-lived connection
        connect_args=connect_args,
        future=True
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create the session factory used by the repository and the API."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


# Create async engine
engine = build_engine()

# Create session factory
async_session_maker = build_session_maker(engine)
