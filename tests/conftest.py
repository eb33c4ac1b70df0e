"""Pytest fixtures for salary engine tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from salary_engine.calculators.engine import PayrollEngine
from salary_engine.calculators.rate_tables import RateTables, default_rate_tables
from salary_engine.config import Settings
from salary_engine.models import Base

# Use in-memory SQLite for tests (with async support)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    """Explicit settings so tests never depend on the environment."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        engine_version="1.0.0",
        log_level="INFO",
        personal_deduction=Decimal("11000000"),
        dependent_deduction=Decimal("4400000"),
    )


@pytest.fixture
def rate_tables(settings: Settings) -> RateTables:
    """Default Vietnamese configuration."""
    return default_rate_tables(
        personal_deduction=settings.personal_deduction,
        dependent_deduction=settings.dependent_deduction,
    )


@pytest.fixture
def payroll_engine(rate_tables: RateTables, settings: Settings) -> PayrollEngine:
    return PayrollEngine(rate_tables, settings=settings)


@pytest_asyncio.fixture
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()
