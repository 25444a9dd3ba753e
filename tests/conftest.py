"""
Pytest configuration and shared fixtures.

Tests run against TEST_DATABASE_URL when it is set (e.g. a PostgreSQL
database), otherwise against a fresh SQLite file per test.
"""

import os
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from job_engine.api.main import create_app
from job_engine.db import get_async_session
from job_engine.db.connection import create_session_factory, get_test_engine
from job_engine.db.models import Base
from job_engine.queue import JobQueue

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def database_url(tmp_path) -> str:
    """Get the test database URL."""
    if TEST_DATABASE_URL:
        return TEST_DATABASE_URL
    return f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"


@pytest_asyncio.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async database engine with a fresh schema."""
    engine = get_test_engine(database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return create_session_factory(async_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a database session for tests."""
    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes
        await session.rollback()


@pytest.fixture
def queue(db_session: AsyncSession) -> JobQueue:
    """Job queue over the test session."""
    return JobQueue(db_session)


@pytest_asyncio.fixture
async def app(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app whose requests use the test database."""

    async def override_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_async_session] = override_session
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_job() -> dict[str, Any]:
    """A minimal job definition."""
    return {"type": "echo", "params": {"message": "Hello, World!"}}
