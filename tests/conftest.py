"""Shared pytest fixtures for Tandem tests."""
import os

from cryptography.fernet import Fernet

# Settings are read on first use; give the test process a complete config
# before any tandem module asks for it.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("FERNET_KEY", Fernet.generate_key().decode())
os.environ.setdefault("GCS_BUCKET_NAME", "")

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tandem.database import Base
from tandem.models import Match, User
from tandem.services.conversation_service import ConversationService
from tandem.services.match_service import MatchService
from tandem.services.message_service import MessageService
from tandem.services.swipe_service import SwipeService


@pytest.fixture
async def engine():
    """In-memory SQLite engine with working SAVEPOINTs.

    pysqlite/aiosqlite issue their own BEGIN lazily, which breaks
    ``begin_nested``; the two listeners hand transaction control back to
    SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    async def _make(name: str, **overrides) -> User:
        user = User(
            display_name=name,
            age=overrides.pop("age", 28),
            intent=overrides.pop("intent", "dating"),
            photos=overrides.pop("photos", []),
            **overrides,
        )
        db_session.add(user)
        await db_session.flush()
        return user
    return _make


@pytest.fixture
async def alice(make_user):
    return await make_user("alice", age=27)


@pytest.fixture
async def bob(make_user):
    return await make_user("bob", age=30, intent="friendship")


@pytest.fixture
async def carol(make_user):
    return await make_user("carol", age=25)


@pytest.fixture
def match_service():
    return MatchService()


@pytest.fixture
def swipe_service(match_service):
    return SwipeService(match_service=match_service)


@pytest.fixture
def message_service():
    return MessageService()


@pytest.fixture
def conversation_service(match_service):
    return ConversationService(match_service=match_service)


@pytest.fixture
def mutual_match(swipe_service, db_session):
    """Record reciprocal likes and return the resulting Match."""
    async def _match(first: User, second: User) -> Match:
        await swipe_service.record_swipe(first.id, second.id, "like", db_session)
        result = await swipe_service.record_swipe(second.id, first.id, "like", db_session)
        assert result["is_mutual_match"] is True
        return await db_session.get(Match, result["match_id"])
    return _match


@pytest.fixture
def count_rows(db_session):
    async def _count(model, *criteria) -> int:
        stmt = select(func.count()).select_from(model).where(*criteria)
        return int((await db_session.execute(stmt)).scalar_one())
    return _count
