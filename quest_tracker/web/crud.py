"""Database operations for quest configuration and progress.

This module provides the quest catalog reads and the progress store used by
the progress engine. All operations are async and use SQLAlchemy 2.0 syntax.
Each operation runs in its own short transaction: a progress update reads the
row, applies a pure mutation in memory and writes it back with a single
``UPDATE ... WHERE version = :read_version`` statement.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quest_tracker.services.exceptions import (
    CatalogUnavailableError,
    NotFoundError,
    PreconditionFailedError,
    ServiceError,
    StoreUnavailableError,
    ValidationError,
)
from quest_tracker.services.models import (
    ObjectiveDefinition,
    ProgressDocument,
    ProgressListing,
    ReconciliationFailure,
)
from quest_tracker.services.period_keys import DAILY, WEEKLY, quest_type_for_key
from quest_tracker.shared.database import get_session_maker
from quest_tracker.web.models import Quest, QuestProgress, document_values

logger = logging.getLogger(__name__)

Mutation = Callable[[ProgressDocument], ProgressDocument]

DEFAULT_QUESTS = [
    {
        "quest_id": "daily_quest",
        "quest_type": DAILY,
        "title": "Daily Quest",
        "description": "Complete daily objectives in order",
        "objectives": [
            {"id": "daily_success1", "message_threshold": 0, "success_threshold": 1, "xp_reward": 10, "order": 1},
            {"id": "daily_send10", "message_threshold": 10, "success_threshold": 0, "xp_reward": 15, "order": 2},
        ],
    },
    {
        "quest_id": "weekly_quest",
        "quest_type": WEEKLY,
        "title": "Weekly Quest",
        "description": "Complete weekly objectives in order",
        "objectives": [
            {"id": "weekly_send100", "message_threshold": 100, "success_threshold": 0, "xp_reward": 15, "order": 1},
            {"id": "weekly_success10", "message_threshold": 0, "success_threshold": 10, "xp_reward": 50, "order": 2},
        ],
    },
]


class QuestCatalogOperations:
    """Read access to the quest catalog of a company.

    Quest definitions are maintained elsewhere; this class only reads them
    and seeds the default configuration for companies that have none.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or get_session_maker()

    async def list_active_quests(self, company_id: str, quest_type: str) -> List[ObjectiveDefinition]:
        """Get the objectives of the first active quest of a type.

        Args:
            company_id: Company (tenant) identifier
            quest_type: ``daily`` or ``weekly``

        Returns:
            List[ObjectiveDefinition]: Objectives ordered by rank, empty if no active quest

        Raises:
            CatalogUnavailableError: If the catalog cannot be read
        """
        try:
            async with self._session_maker() as session:
                stmt = (
                    select(Quest)
                    .where(
                        Quest.company_id == company_id,
                        Quest.quest_type == quest_type,
                        Quest.is_active == True,
                    )
                    .order_by(Quest.quest_id)
                    .limit(1)
                )
                result = await session.execute(stmt)
                quest = result.scalar_one_or_none()
                return quest.objective_definitions() if quest else []
        except Exception as e:
            logger.error(f"Failed to list {quest_type} quests for company {company_id}: {e}")
            raise CatalogUnavailableError("list_active_quests") from e

    async def list_all_quests(self, company_id: str) -> List[Tuple[str, List[ObjectiveDefinition]]]:
        """Get every quest of a company with its objectives.

        Returns:
            List of (quest_type, objectives) ordered by quest type then quest id

        Raises:
            CatalogUnavailableError: If the catalog cannot be read
        """
        try:
            async with self._session_maker() as session:
                stmt = (
                    select(Quest)
                    .where(Quest.company_id == company_id)
                    .order_by(Quest.quest_type, Quest.quest_id)
                )
                result = await session.execute(stmt)
                return [
                    (quest.quest_type, quest.objective_definitions())
                    for quest in result.scalars().all()
                ]
        except Exception as e:
            logger.error(f"Failed to list quests for company {company_id}: {e}")
            raise CatalogUnavailableError("list_all_quests") from e

    async def find_objective(
        self,
        company_id: str,
        objective_id: str
    ) -> Optional[Tuple[str, ObjectiveDefinition]]:
        """Find which quest type an objective belongs to.

        Returns:
            (quest_type, definition) or None if no quest defines the objective
        """
        for quest_type, objectives in await self.list_all_quests(company_id):
            for definition in objectives:
                if definition.id == objective_id:
                    return quest_type, definition
        return None

    async def ensure_default_quests(self, company_id: str) -> bool:
        """Create the default daily and weekly quests if the company has none.

        Returns:
            bool: True if the defaults were created by this call

        Raises:
            CatalogUnavailableError: If the catalog cannot be read or written
        """
        try:
            async with self._session_maker() as session:
                result = await session.execute(
                    select(func.count()).select_from(Quest).where(Quest.company_id == company_id)
                )
                if result.scalar_one() > 0:
                    return False

            async with self._session_maker.begin() as session:
                session.add_all([
                    Quest(company_id=company_id, is_active=True, **quest)
                    for quest in DEFAULT_QUESTS
                ])
            logger.info(f"Seeded default quests for company {company_id}")
            return True

        except IntegrityError:
            # Another request seeded the same company first
            return False
        except Exception as e:
            logger.error(f"Failed to seed default quests for company {company_id}: {e}")
            raise CatalogUnavailableError("ensure_default_quests") from e


class QuestProgressOperations:
    """Durable storage for per-period progress documents.

    Documents are unique per (company, user, period key). Writes are
    compare-and-set on the row version, so a caller that read a stale
    document gets PreconditionFailedError instead of overwriting a newer one.
    """

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or get_session_maker()

    async def get(self, company_id: str, user_id: str, period_key: str) -> Optional[ProgressDocument]:
        """Get a progress document.

        Returns:
            Optional[ProgressDocument]: The stored document or None

        Raises:
            StoreUnavailableError: If the query fails
        """
        try:
            async with self._session_maker() as session:
                row = await self._get_row(session, company_id, user_id, period_key)
                return row.to_document() if row else None
        except Exception as e:
            logger.error(f"Failed to get progress {period_key} for user {user_id}: {e}")
            raise StoreUnavailableError("get") from e

    async def find_or_init(
        self,
        company_id: str,
        user_id: str,
        period_key: str,
        quest_type: str,
        seed_objectives: List[ObjectiveDefinition]
    ) -> ProgressDocument:
        """Get a progress document, creating it from the seed objectives if missing.

        Concurrent callers for the same key all end up with the same stored
        document: a losing insert hits the unique constraint and re-reads.

        Raises:
            ValidationError: If the period key does not belong to the quest type
            StoreUnavailableError: If the store cannot be read or written
        """
        if quest_type_for_key(period_key) != quest_type:
            raise ValidationError("quest_type", f"Period key {period_key} is not a {quest_type} key")

        existing = await self.get(company_id, user_id, period_key)
        if existing is not None:
            return existing

        document = ProgressDocument.new(company_id, user_id, period_key, quest_type, seed_objectives)
        try:
            async with self._session_maker.begin() as session:
                session.add(QuestProgress.from_document(document))
            logger.info(f"Created {quest_type} progress {period_key} for user {user_id} in company {company_id}")
            return replace(document, version=1)

        except IntegrityError:
            existing = await self.get(company_id, user_id, period_key)
            if existing is None:
                raise StoreUnavailableError("find_or_init")
            return existing
        except Exception as e:
            logger.error(f"Failed to create progress {period_key} for user {user_id}: {e}")
            raise StoreUnavailableError("find_or_init") from e

    async def atomic_update(
        self,
        company_id: str,
        user_id: str,
        period_key: str,
        mutation: Mutation
    ) -> ProgressDocument:
        """Apply a pure mutation to a stored document with a version-guarded write.

        The mutation receives the current document and returns the new one;
        it may raise a ServiceError to reject the change. When it returns an
        equal document nothing is written.

        Returns:
            ProgressDocument: The document as stored after the update

        Raises:
            NotFoundError: If the document doesn't exist
            PreconditionFailedError: If the document changed since it was read
            StoreUnavailableError: If the store cannot be read or written
        """
        current = await self.get(company_id, user_id, period_key)
        if current is None:
            raise NotFoundError("quest progress", period_key)

        updated = mutation(current)
        if updated == current:
            return current
        self._check_transition(current, updated)

        try:
            async with self._session_maker.begin() as session:
                stmt = (
                    update(QuestProgress)
                    .where(
                        QuestProgress.company_id == company_id,
                        QuestProgress.user_id == user_id,
                        QuestProgress.period_key == period_key,
                        QuestProgress.version == current.version,
                    )
                    .values(**document_values(updated), version=QuestProgress.version + 1)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    raise PreconditionFailedError(period_key, current.version)

            return replace(updated, version=current.version + 1)

        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Failed to update progress {period_key} for user {user_id}: {e}")
            raise StoreUnavailableError("atomic_update") from e

    async def list_all(self, company_id: str) -> ProgressListing:
        """Get every progress document of a company.

        Rows are decoded one by one. A row whose stored state no longer
        passes validation is reported in ``failures`` instead of failing the
        whole listing.

        Raises:
            StoreUnavailableError: If the query fails
        """
        try:
            async with self._session_maker() as session:
                stmt = (
                    select(QuestProgress)
                    .where(QuestProgress.company_id == company_id)
                    .order_by(QuestProgress.period_key, QuestProgress.user_id)
                )
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except Exception as e:
            logger.error(f"Failed to list progress for company {company_id}: {e}")
            raise StoreUnavailableError("list_all") from e

        documents: List[ProgressDocument] = []
        failures: List[ReconciliationFailure] = []
        for row in rows:
            try:
                documents.append(row.to_document())
            except ValidationError as e:
                logger.warning(f"Skipping unreadable progress {row.period_key} for user {row.user_id}: {e}")
                failures.append(ReconciliationFailure(
                    user_id=row.user_id,
                    period_key=row.period_key,
                    error=e.error_code,
                ))

        return ProgressListing(documents=tuple(documents), failures=tuple(failures))

    async def _get_row(
        self,
        session: AsyncSession,
        company_id: str,
        user_id: str,
        period_key: str
    ) -> Optional[QuestProgress]:
        stmt = select(QuestProgress).where(
            QuestProgress.company_id == company_id,
            QuestProgress.user_id == user_id,
            QuestProgress.period_key == period_key,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _check_transition(current: ProgressDocument, updated: ProgressDocument) -> None:
        """Reject mutations that would break document invariants."""
        if (updated.company_id, updated.user_id, updated.period_key, updated.quest_type) != (
            current.company_id, current.user_id, current.period_key, current.quest_type
        ):
            raise ValidationError("period_key", "A progress document's identity cannot change")
        if (
            updated.total_messages < current.total_messages
            or updated.total_success_messages < current.total_success_messages
        ):
            raise ValidationError("total_messages", "Progress counters cannot decrease")
        for state in current.objective_states:
            after = updated.find_state(state.objective_id)
            if after is None:
                raise ValidationError("objective_states", f"Objective state {state.objective_id} cannot be removed")
            if (state.completed and not after.completed) or (state.claimed and not after.claimed):
                raise ValidationError("objective_states", f"Objective {state.objective_id} cannot be reset")
