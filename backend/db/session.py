"""
TradeDesk Database Session Management

Async SQLAlchemy engine and session factory for the API process, plus
throwaway engines for code that owns its own event loop (Celery task bodies
run under asyncio.run, so they cannot share the API's pooled engine).
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from core.config import get_settings

settings = get_settings()


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep attributes loaded after commit; results outlive the transaction."""
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)

AsyncSessionLocal = make_session_factory(engine)


@asynccontextmanager
async def standalone_session(database_url: str, **engine_kwargs) -> AsyncIterator[AsyncSession]:
    """One engine, one session; the engine is disposed on exit."""
    standalone = create_async_engine(database_url, **engine_kwargs)
    try:
        async with make_session_factory(standalone)() as db:
            yield db
    finally:
        await standalone.dispose()


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass
