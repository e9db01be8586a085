from __future__ import annotations

import asyncio
import os

# Must be set before crm.config builds its settings singleton
os.environ.setdefault("DB_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")

from typing import Awaitable, Callable, TypeVar

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from crm.models import Base

T = TypeVar("T")


@pytest.fixture
def run_db() -> Callable[[Callable[[AsyncSession], Awaitable[T]]], T]:
    """Run a scenario against a fresh in-memory database.

    The whole scenario runs inside one event loop, so the aiosqlite
    connection never crosses loops.
    """

    def runner(scenario: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def main() -> T:
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
            try:
                async with maker() as session:
                    return await scenario(session)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return runner
