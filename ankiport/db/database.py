"""
Database engine and sessions for imported decks and cards.

The HTTP layer reads through request-scoped sessions. An import instead
takes the session factory and opens one short transaction per unit of
work (deck resolution, each card batch, each progress write).
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ankiport.config import settings
from ankiport.models.db import Base

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for read-only endpoints (progress polling, readiness)."""
    async with async_session_factory() as session:
        yield session


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Dependency handing the import pipeline its own transactions."""
    return async_session_factory


async def init_db() -> None:
    """
    Create the decks, cards and anki_imports tables if they are missing.

    Runs at application startup and from `ankiport-import --init-db`.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
