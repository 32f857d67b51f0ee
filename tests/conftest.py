from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from libs.db.base import Base
from libs.db.session import get_async_db
from services.fulfillment_service import models as _fulfillment_models  # noqa: F401
from services.fulfillment_service.services.notifications import (
    NotificationDispatcher,
    get_notification_dispatcher,
)
from tests.factories import RecordingSink


def _serialize_sqlite_writers(engine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    Concurrent sessions then queue on the busy timeout instead of failing
    to upgrade a shared lock mid-transaction.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    File-backed SQLite database per test, so separate sessions really are
    separate connections.
    """
    db_path = tmp_path / "fulfillment.db"
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{db_path}",
        connect_args={"timeout": 30},
    )
    _serialize_sqlite_writers(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@pytest.fixture
def notification_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def notifier(notification_sink) -> NotificationDispatcher:
    return NotificationDispatcher(notification_sink)


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(db_session, notifier) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient against the fulfillment app with the DB and
    notification dependencies pointed at the test fixtures.
    """
    from services.fulfillment_service.app.main import app

    async def _override_db():
        try:
            yield db_session
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_async_db] = _override_db
    app.dependency_overrides[get_notification_dispatcher] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
