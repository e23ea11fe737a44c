"""Test configuration and fixtures for the quest tracker."""

from __future__ import annotations

import os
import tempfile
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from quest_tracker.services.progress_engine import ProgressEngine
from quest_tracker.shared.config import Settings
from quest_tracker.shared.config import override_settings
from quest_tracker.shared.database import Base
from quest_tracker.shared.database import create_test_engine
from quest_tracker.shared.database import create_session_maker
from quest_tracker.shared.date_provider import MockDateProvider
from quest_tracker.web.crud import QuestCatalogOperations, QuestProgressOperations
from quest_tracker.web.models import Quest, QuestProgress


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings."""
    return override_settings(
        environment="testing",
        database_url="sqlite+aiosqlite:///:memory:",
        debug=True,
        log_level="DEBUG",
        quest_timezone="America/New_York",
        max_update_retries=10,
        seed_default_quests=False,
    )


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create a file-backed test database engine.

    Every session opens its own connection, so concurrent tasks in a test
    behave like concurrent requests against a real database.
    """
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, f"test_db_{uuid.uuid4().hex}.db")
    engine = create_test_engine(f"sqlite+aiosqlite:///{db_path}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()
        if os.path.exists(db_path):
            os.remove(db_path)
        for suffix in ("-wal", "-shm", "-journal"):
            if os.path.exists(db_path + suffix):
                os.remove(db_path + suffix)
        os.rmdir(temp_dir)


@pytest.fixture
def session_maker(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session maker bound to the test engine."""
    return create_session_maker(test_engine)


@pytest.fixture
def store(session_maker) -> QuestProgressOperations:
    return QuestProgressOperations(session_maker)


@pytest.fixture
def catalog(session_maker) -> QuestCatalogOperations:
    return QuestCatalogOperations(session_maker)


@pytest.fixture
def mock_date_provider() -> MockDateProvider:
    """Wednesday 2024-01-17 15:00 UTC (10:00 in New York)."""
    return MockDateProvider(fixed_datetime=datetime(2024, 1, 17, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def progress_engine(store, catalog, test_settings, mock_date_provider) -> ProgressEngine:
    return ProgressEngine(
        store=store,
        catalog=catalog,
        settings=test_settings,
        date_provider=mock_date_provider,
    )


@pytest.fixture
def add_quest(session_maker):
    """Insert or replace a quest definition for a company."""

    async def _add_quest(
        company_id: str,
        quest_type: str,
        objectives: List[Dict[str, Any]],
        quest_id: str | None = None,
        is_active: bool = True,
    ) -> None:
        quest_id = quest_id or f"{quest_type}_quest"
        async with session_maker.begin() as session:
            result = await session.execute(
                select(Quest).where(Quest.company_id == company_id, Quest.quest_id == quest_id)
            )
            existing = result.scalar_one_or_none()
            if existing is not None:
                existing.objectives = objectives
                existing.is_active = is_active
            else:
                session.add(Quest(
                    company_id=company_id,
                    quest_id=quest_id,
                    quest_type=quest_type,
                    title=f"{quest_type.title()} Quest",
                    objectives=objectives,
                    is_active=is_active,
                ))

    return _add_quest


@pytest.fixture
def insert_progress_row(session_maker):
    """Write a progress row as is, bypassing document validation."""

    async def _insert(company_id: str, user_id: str, period_key: str, quest_type: str, **columns: Any) -> None:
        async with session_maker.begin() as session:
            session.add(QuestProgress(
                company_id=company_id,
                user_id=user_id,
                period_key=period_key,
                quest_type=quest_type,
                **columns,
            ))

    return _insert


@pytest.fixture(scope="function")
def unique_company_id() -> str:
    """Generate unique company ID per test function."""
    return f"test_company_{uuid.uuid4().hex[:8]}"


@pytest.fixture(scope="function")
def unique_user_id() -> str:
    """Generate unique user ID per test function."""
    return f"test_user_{uuid.uuid4().hex[:8]}"
