"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator

import pytest

# Set testing environment BEFORE any other imports
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/1")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tests.helpers import OWNER_ID, SESSION_NAME, epoch, make_token
from wahub.models import Base, Membership, Organization
from wahub.models.organization import MemberRole

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'wahub.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def organization(session_factory) -> Organization:
    """Organization with a configured gateway and bound session name."""
    async with session_factory() as session:
        org = Organization(
            name="Acme",
            slug="acme",
            gateway_base_url="http://waha.test",
            gateway_api_key="waha-secret",
            gateway_session_name=SESSION_NAME,
        )
        session.add(org)
        await session.commit()
        return org


@pytest_asyncio.fixture
async def owner(session_factory, organization) -> Membership:
    async with session_factory() as session:
        membership = Membership(
            organization_id=organization.id,
            user_id=OWNER_ID,
            role=MemberRole.OWNER.value,
        )
        session.add(membership)
        await session.commit()
        return membership


@pytest.fixture
def auth_headers(owner) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(OWNER_ID, 'owner@example.com')}"}


@pytest.fixture
def message_event():
    """Build a WAHA ``message`` webhook body."""

    def _build(
        message_id: str = "wamid.ABC",
        sender: str = "4915112345678@c.us",
        body: str = "Hello",
        timestamp: int | None = None,
        session: str = SESSION_NAME,
        event: str = "message",
        from_me: bool = False,
        to: str | None = None,
        notify_name: str | None = None,
    ) -> dict:
        payload = {
            "id": message_id,
            "from": sender,
            "body": body,
            "timestamp": timestamp if timestamp is not None else epoch(2026, 3, 10, 10, 0),
            "type": "chat",
            "fromMe": from_me,
        }
        if to:
            payload["to"] = to
        if notify_name:
            payload["notifyName"] = notify_name
        return {"event": event, "session": session, "payload": payload}

    return _build


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async test client bound to the per-test database."""
    from wahub.api.main import app
    from wahub.database import get_session, get_session_factory_dependency

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_session_factory():
        return session_factory

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_session_factory_dependency] = override_session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()
