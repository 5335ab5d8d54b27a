"""
Database configuration and session management.
Uses PostgreSQL via asyncpg with SQLAlchemy 2 async engine (aiosqlite for local/dev runs).
"""

import logging
import ssl
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from affilai.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def _get_connect_args(url: str) -> dict:
    """Enable SSL for hosted Postgres proxies; sqlite takes no connect args."""
    if url.startswith("sqlite"):
        return {}
    args = {"timeout": 30}  # Fail fast if DB unreachable
    if "rlwy.net" in url:
        # Hosted Postgres requires SSL; use context that accepts self-signed certs
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        args["ssl"] = ctx
    return args


def make_engine(url: str) -> AsyncEngine:
    """Build an async engine. Pool sizing only applies to server databases."""
    kwargs = dict(echo=False, pool_pre_ping=True, connect_args=_get_connect_args(url))
    if not url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=10)
    return create_async_engine(url, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.database_url)

async_session = make_session_factory(engine)


class Base(DeclarativeBase):
    pass


async def init_db(bind: AsyncEngine = None):
    """
    Create all tables defined in models.
    Uses create_all which is safe — it only creates tables that don't exist yet.
    """
    # Import models to ensure they are registered with Base.metadata
    import affilai.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database initialized with {len(Base.metadata.tables)} tables: "
                    f"{', '.join(Base.metadata.tables.keys())}")


async def drop_and_recreate_db():
    """
    Drop all tables and recreate them. USE WITH CAUTION — destroys all data.
    Only allowed in development environments.
    """
    if settings.is_production:
        raise RuntimeError(
            "drop_and_recreate_db() is disabled in production. "
            "Use Alembic migrations instead."
        )

    import affilai.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database dropped and recreated.")


async def check_db_connection() -> bool:
    """Test database connectivity."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False
