"""Shared fixtures: an isolated database and a small vocabulary catalog."""

import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path

# Must be set before backend.config is imported anywhere
_TMP_DIR = tempfile.mkdtemp(prefix="vocab_srs_test_")
os.environ.setdefault(
    "VOCAB_SRS_DATABASE_URL", f"sqlite+aiosqlite:///{Path(_TMP_DIR) / 'test.db'}"
)
os.environ.setdefault("VOCAB_SRS_ANTHROPIC_API_KEY", "")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from backend.models import Base, Learner, Vocabulary  # noqa: E402
from backend.models.vocabulary import SOFTWARE, TRAVEL  # noqa: E402

NOW = datetime(2025, 3, 10, 9, 0, 0)


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """A sessionmaker bound to a fresh in-memory database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def learner(db: AsyncSession) -> Learner:
    learner = Learner(name="Test Learner", daily_new_words=10, travel_weight=0.5)
    db.add(learner)
    await db.commit()
    return learner


def make_vocabulary(category: str, count: int, tier: int = 1, prefix: str = "") -> list[Vocabulary]:
    prefix = prefix or category
    return [
        Vocabulary(
            word=f"{prefix}-{i}",
            definition=f"definition of {prefix}-{i}",
            category=category,
            difficulty_tier=tier,
        )
        for i in range(count)
    ]


@pytest_asyncio.fixture
async def catalog(db: AsyncSession) -> list[Vocabulary]:
    """Ten travel and ten software words, all tier 1."""
    items = make_vocabulary(TRAVEL, 10) + make_vocabulary(SOFTWARE, 10)
    db.add_all(items)
    await db.commit()
    return items
