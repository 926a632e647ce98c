import os

os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_BACKEND"] = "memory"
os.environ["LOG_FORMAT"] = "console"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import crm.models  # noqa: F401  registers tables on Base.metadata
from crm.db import session as db_session_module
from crm.db.base import Base
from crm.db.session import configure_sqlite_engine

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def _memory_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    configure_sqlite_engine(engine)
    return engine


@pytest_asyncio.fixture
async def db_session():
    engine = _memory_engine()
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def client(monkeypatch):
    """TestClient whose app lifespan builds tables on a private in-memory database."""
    from crm.main import app

    engine = _memory_engine()
    monkeypatch.setattr(db_session_module, "engine", engine)
    monkeypatch.setattr(
        db_session_module,
        "AsyncSessionLocal",
        async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False),
    )

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def buyer_payload():
    return {
        "fullName": "Asha Verma",
        "email": "asha@example.com",
        "phone": "9876543210",
        "city": "Chandigarh",
        "propertyType": "Apartment",
        "bhk": "2",
        "purpose": "Buy",
        "budgetMin": 5000000,
        "budgetMax": 7000000,
        "timeline": "0-3m",
        "source": "Website",
        "notes": "Prefers a park-facing unit",
        "tags": ["hot", "family"],
    }
