"""
Shared fixtures: in-memory database, fake AI adapter and an HTTP client.
"""

import os

# Must be set before the application modules read their settings
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DEEPSEEK_API_KEY"] = ""

from typing import List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from aichat import models  # noqa: F401
from aichat.database import Base, get_db, get_session_factory, set_sqlite_pragma
from aichat.main import app
from aichat.models.user import User
from aichat.routers.chat import get_ai_service
from aichat.services.chat_service import ChatService
from aichat.services.deepseek_service import StreamDelta
from aichat.utils.security import get_password_hash


class FakeAIService:
    """Stands in for DeepSeekService; replays canned deltas."""

    def __init__(self, deltas: Optional[List[StreamDelta]] = None, error: Optional[Exception] = None):
        self.deltas = deltas if deltas is not None else [StreamDelta(content="Hello "), StreamDelta(content="world")]
        self.error = error
        self.prompts = []

    async def stream_completion(self, prompt: str, deep_thinking: bool = False):
        self.prompts.append((prompt, deep_thinking))
        for delta in self.deltas:
            yield delta
        if self.error is not None:
            raise self.error

    async def completion(self, prompt: str, deep_thinking: bool = False) -> str:
        self.prompts.append((prompt, deep_thinking))
        if self.error is not None:
            raise self.error
        return "".join(delta.content for delta in self.deltas)

    async def list_models(self):
        return [{"id": "deepseek-chat", "owned_by": "deepseek", "created": None}]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    event.listen(engine.sync_engine, "connect", set_sqlite_pragma)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def user(db):
    user = User(
        username="alice",
        hashed_password=get_password_hash("secret123"),
        email="alice@example.com",
        login_type=1,
        status=1
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest.fixture
async def chat_session(db, user):
    return await ChatService(db).create_session(user.id, "Test Chat")


@pytest.fixture
def ai_service():
    return FakeAIService()


@pytest.fixture
async def client(session_factory, ai_service):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_ai_service] = lambda: ai_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Register an email account and return its bearer headers."""

    async def register_and_login(username="alice", email="alice@example.com", password="secret123"):
        response = await client.post("/api/auth/register", json={
            "username": username,
            "password": password,
            "email": email,
            "login_type": 1
        })
        assert response.status_code == 201

        response = await client.post("/api/auth/login", json={
            "account": email,
            "password": password,
            "login_type": 1
        })
        assert response.status_code == 200
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return register_and_login


@pytest.fixture
async def auth_headers(login):
    return await login()
