from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def build_engine(db_url: str, echo: bool = False) -> AsyncEngine:
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_async_engine(db_url, echo=echo, connect_args=connect_args)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory used by the SQL stores.

    Each store call opens its own session, so the loader lookups and the two
    evaluators can run concurrently without sharing one ``AsyncSession``.
    """

    return async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=AsyncSession)
