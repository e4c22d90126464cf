"""
Async database engine and session factory.

Uses SQLAlchemy 2.x async engine with asyncpg driver for PostgreSQL.
The engine and factory are owned by the application lifespan and handed
to the SQL store; nothing here is module-level state.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-102)
- 2026-10-13: Drop module-level singletons, lifespan owns the engine (STORY-110)

TODO:
- None
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from wattnet.src.config import Settings, get_settings


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine from configuration.

    Args:
        settings: Optional settings. If not provided, loads them from env.

    Returns:
        AsyncEngine: Configured async engine for PostgreSQL via asyncpg.
    """
    if settings is None:
        settings = get_settings()
    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory.

    Args:
        engine: Optional async engine. If not provided, creates one from config.

    Returns:
        async_sessionmaker: Factory for creating AsyncSession instances.
    """
    if engine is None:
        engine = create_engine()
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
