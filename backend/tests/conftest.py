import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import tripwise.models  # noqa: F401
from tripwise.database import Base, get_db
from tripwise.main import app
from tripwise.services.cache_service import cache_service
from tripwise.services.llm_client import llm_client
from tripwise.services.quote_sourcing import DemoQuoteProvider, quote_sourcing_service


@pytest.fixture
def session_factory(tmp_path):
    """Session factory on a throwaway SQLite database with foreign keys enforced."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tripwise.db'}", poolclass=NullPool
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async def _create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_schema())

    yield async_sessionmaker(engine, expire_on_commit=False)

    asyncio.run(engine.dispose())


@pytest.fixture
def client(session_factory, monkeypatch):
    """API client backed by the throwaway database, with Redis and LLMs switched off."""

    async def _get_test_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_test_db
    monkeypatch.setattr(cache_service, "_disabled", True)
    monkeypatch.setattr(quote_sourcing_service, "_provider", DemoQuoteProvider())
    monkeypatch.setattr(llm_client, "_openai", None)
    monkeypatch.setattr(llm_client, "_anthropic", None)

    yield TestClient(app)

    app.dependency_overrides.clear()
