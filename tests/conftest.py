import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"

import pytest
from fakeredis import aioredis as fake_aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core import redis_client as redis_module
from app.core.database import Base, get_db
from app.core.security import get_password_hash
from app.models.user import User
from app.services.mindmap_service import MindMapService
from main import app as fastapi_app

PASSWORD = "secret123"
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False}
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def service(db):
    return MindMapService(db)


@pytest.fixture
def make_user(db):
    async def factory(username: str, subscription_type: str = "free") -> int:
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=PASSWORD_HASH,
            subscription_type=subscription_type
        )
        db.add(user)
        await db.commit()
        return user.id
    return factory


@pytest.fixture
async def fake_redis(monkeypatch):
    client = fake_aioredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_module, "redis_client", client)
    yield client
    await client.aclose()


@pytest.fixture
async def client(session_factory, fake_redis):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    """Register a user through the API and return bearer headers for it"""
    async def factory(username: str) -> dict:
        response = await client.post("/api/v1/auth/register", json={
            "username": username,
            "email": f"{username}@example.com",
            "password": PASSWORD,
        })
        assert response.status_code == 200, response.text

        response = await client.post("/api/v1/auth/login", data={"username": username, "password": PASSWORD})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return factory
