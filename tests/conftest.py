"""Pytest configuration and fixtures."""

import asyncio
import pytest
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from casino_bot.database.session import Base
from tests.fakes import FixedClock, FlakyRollStore, make_casino, never_wake


@pytest.fixture
async def test_db() -> AsyncGenerator:
    """In-memory SQLite database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # register models on Base.metadata
    from casino_bot.database import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)

    yield session_maker

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def roll_store():
    return FlakyRollStore()


@pytest.fixture
async def casino(clock, roll_store):
    """Casino whose timers fire instantly; coin lands heads."""
    c = make_casino(clock=clock, store=roll_store, random_values=[0.1])
    yield c
    c.shutdown()
    await asyncio.sleep(0)


@pytest.fixture
async def lobby_casino(clock, roll_store):
    """Casino whose join timers never fire on their own."""
    c = make_casino(sleep=never_wake, clock=clock, store=roll_store, random_values=[0.1])
    yield c
    c.shutdown()
    await asyncio.sleep(0)
