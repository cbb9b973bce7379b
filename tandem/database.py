"""
Tandem — Async Database Engine & Session Factory

Connection strategies, picked from configuration on first use:

1. **Cloud SQL** – ``cloud-sql-python-connector`` with IAM auth when
   ``CLOUD_SQL_USE_UNIX_SOCKET`` is set and an instance connection name is
   configured.
2. **DATABASE_URL** – any async SQLAlchemy URL.  Plain ``postgresql://`` is
   upgraded to asyncpg; ``sqlite+aiosqlite`` works for demos, without the
   Postgres pool sizing.

Nothing connects at import time: models and services import cleanly in
tests and scripts that bring their own engine.

Every request runs in one transaction (``get_db``).  The swipe, match and
message services rely on that: a swipe and the match it completes commit
or roll back together.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Any, AsyncGenerator, AsyncIterator

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tandem.config import get_settings

logger = structlog.get_logger("tandem.database")


class Base(DeclarativeBase):
    """Declarative base for ``users``, ``swipes``, ``matches``, ``messages``."""


_POSTGRES_POOL_KWARGS: dict[str, Any] = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def _normalise_url(url: str) -> str:
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _pool_kwargs(url: str) -> dict[str, Any]:
    # SQLite pools take no sizing arguments.
    if url.startswith("sqlite"):
        return {}
    return dict(_POSTGRES_POOL_KWARGS)


def _build_cloud_sql_engine() -> AsyncEngine:
    """Engine that connects through the Cloud SQL Python Connector.

    The connector owns the TLS tunnel, so only the instance connection name
    (``project:region:instance``) and the IAM database user are needed.
    """
    from google.cloud.sql.connector import Connector

    settings = get_settings()
    connector = Connector()

    async def _connect():
        return await connector.connect_async(
            settings.CLOUD_SQL_INSTANCE_CONNECTION,
            "asyncpg",
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            db=settings.DB_NAME,
            enable_iam_auth=True,
        )

    engine = create_async_engine(
        "postgresql+asyncpg://",
        async_creator=_connect,
        echo=(settings.LOG_LEVEL == "DEBUG"),
        **_POSTGRES_POOL_KWARGS,
    )
    logger.info(
        "database_engine_created",
        strategy="cloud_sql",
        instance=settings.CLOUD_SQL_INSTANCE_CONNECTION,
    )
    return engine


def _build_url_engine() -> AsyncEngine:
    settings = get_settings()
    url = _normalise_url(settings.DATABASE_URL)

    engine = create_async_engine(
        url,
        echo=(settings.LOG_LEVEL == "DEBUG"),
        **_pool_kwargs(url),
    )
    logger.info(
        "database_engine_created",
        strategy="url",
        dialect=engine.dialect.name,
    )
    return engine


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    settings = get_settings()
    if settings.CLOUD_SQL_USE_UNIX_SOCKET and settings.CLOUD_SQL_INSTANCE_CONNECTION:
        return _build_cloud_sql_engine()
    return _build_url_engine()


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    # Views are built after flush; keep loaded attributes past commit.
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def dispose_engine() -> None:
    """Close the pool and forget the cached engine and session factory."""
    if get_engine.cache_info().currsize:
        await get_engine().dispose()
        logger.info("database_pool_closed")
    get_session_factory.cache_clear()
    get_engine.cache_clear()


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One transaction outside a request, for scripts::

        async with session_scope() as session:
            session.add(user)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one ``AsyncSession`` and one transaction per
    request, committed when the route returns and rolled back on any error
    (including ``EngineError``)."""
    async with session_scope() as session:
        yield session
