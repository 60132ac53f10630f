"""
Pytest configuration and fixtures for Fanova API tests
"""

import os

# Must be set before config.config is imported anywhere
os.environ["ENVIRONMENT"] = "development"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ALLOW_DEV_USER_HEADER"] = "true"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-for-fanova-tests"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""
os.environ["GOOGLE_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["FAL_AI_KEY"] = ""
os.environ["WAVESPEED_API_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["SENTRY_DSN"] = ""
os.environ["LOG_TO_FILE"] = "false"

import time
import uuid
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.database import engine as engine_module
from src.database.models import Base, Profile


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_JWT_SECRET = os.environ["SUPABASE_JWT_SECRET"]


def make_token(user_id: str, email: Optional[str] = None, expires_in: int = 3600) -> str:
    """Supabase-style access token signed with the test secret"""
    claims = {
        "sub": user_id,
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(user_id: str, email: Optional[str] = None) -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(test_db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def make_profile(session_maker):
    """
    Factory for profiles written in their own session

    Usage:
        user = await make_profile(credits=100, subscription_plan="essential")
    """

    async def _make(**fields) -> Profile:
        fields.setdefault("id", str(uuid.uuid4()))
        fields.setdefault("email", f"{fields['id'][:8]}@example.com")
        fields.setdefault("credits", 0)
        async with session_maker() as session:
            profile = Profile(**fields)
            session.add(profile)
            await session.commit()
            await session.refresh(profile)
            return profile

    return _make


@pytest.fixture(scope="function")
async def app_client(test_db_engine, session_maker, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client for the FastAPI app bound to the test database

    Background tasks use get_session_maker(), so the engine module globals
    point at the test engine too.
    """
    from api_server import app
    from src.database.engine import get_session

    monkeypatch.setattr(engine_module, "engine", test_db_engine)
    monkeypatch.setattr(engine_module, "AsyncSessionLocal", session_maker)

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    app.dependency_overrides.clear()
