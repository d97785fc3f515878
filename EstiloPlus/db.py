# db.py
import logging
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

# Import the centralized settings object
from settings import settings

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)


def async_database_url(url: str) -> str:
    """
    Points PostgreSQL URLs (as handed out by hosting providers) at the asyncpg
    driver. Any other URL, such as the local SQLite default, passes through.
    """
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return url.replace(scheme, "postgresql+asyncpg://", 1)
    return url


DATABASE_URL = async_database_url(settings.DATABASE_URL)


# --- SQLAlchemy Engine & Session ---

# Connection pooling only applies to server databases; SQLite manages its own.
if DATABASE_URL.startswith("sqlite"):
    logger.info("✅ Using local SQLite database for development.")
    engine_options = {}
else:
    logger.info("✅ Connecting to PostgreSQL database.")
    # `pool_recycle` keeps idle connections from being dropped by the
    # database or network infrastructure.
    engine_options = {
        "pool_size": 10,
        "max_overflow": 5,
        "pool_timeout": 30,
        "pool_recycle": 1800,
    }

engine = create_async_engine(DATABASE_URL, echo=False, **engine_options)

# `expire_on_commit=False` keeps attributes readable after commit, which the
# routers rely on when serializing freshly written rows.
async_session_maker = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Base class for declarative models. All models in `models.py` inherit from this.
Base = declarative_base()


# --- FastAPI Dependency ---

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session to each request.

    Uncommitted work is rolled back if the request fails.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables():
    """Creates every table registered on `Base.metadata`."""
    # Registers the mappers on Base.metadata.
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
