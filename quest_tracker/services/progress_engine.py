"""Quest progress engine.

This module implements the business logic for daily and weekly quests:
counting message events into the current period's progress documents,
completing objectives whose thresholds are reached, claiming rewards and
building the read model shown to users.

Every write goes through the store's version-guarded update, retried on
conflict, so concurrent events for the same user never lose a count and a
reward can only be claimed once.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Set

from quest_tracker.services.base import BaseQuestService
from quest_tracker.services.base import ObjectiveCatalogProtocol
from quest_tracker.services.base import ProgressStoreProtocol
from quest_tracker.services.exceptions import NotFoundError
from quest_tracker.services.migration import MigrationReconciler
from quest_tracker.services.migration import reconcile_document
from quest_tracker.services.migration import refresh_document
from quest_tracker.services.models import ClaimResult
from quest_tracker.services.models import EventResult
from quest_tracker.services.models import ObjectiveDefinition
from quest_tracker.services.models import ProgressDocument
from quest_tracker.services.models import QuestSnapshot
from quest_tracker.services.models import ReconciliationReport
from quest_tracker.services.period_keys import DAILY, WEEKLY
from quest_tracker.services.period_keys import period_key_for
from quest_tracker.services.period_keys import period_keys
from quest_tracker.services.snapshot import build_quest_view
from quest_tracker.services.transitions import apply_event
from quest_tracker.services.transitions import check_completion
from quest_tracker.services.transitions import claim_objective
from quest_tracker.services.transitions import mark_seen
from quest_tracker.services.transitions import newly_completed
from quest_tracker.shared.config import Settings
from quest_tracker.shared.date_provider import DateProvider
from quest_tracker.web.crud import QuestCatalogOperations
from quest_tracker.web.crud import QuestProgressOperations

logger = logging.getLogger(__name__)


class ProgressEngine(BaseQuestService):
    """Tracks quest progress for the users of a company.

    Period keys are computed in the configured quest timezone. Catalog reads
    seed the default quests first for companies that have none, unless
    ``seed_default_quests`` is disabled.
    """

    seeded_cache_size = 1024

    def __init__(
        self,
        store: Optional[ProgressStoreProtocol] = None,
        catalog: Optional[ObjectiveCatalogProtocol] = None,
        settings: Optional[Settings] = None,
        date_provider: Optional[DateProvider] = None,
    ):
        super().__init__(
            store or QuestProgressOperations(),
            catalog or QuestCatalogOperations(),
            settings=settings,
            date_provider=date_provider,
        )
        # Companies already checked for a quest configuration. Deleting a
        # company's quests later does not reseed it until the entry is evicted.
        self._seeded_companies: Set[str] = set()

    async def record_event(
        self,
        company_id: str,
        user_id: str,
        is_success_event: bool = False,
        now: Optional[datetime] = None
    ) -> EventResult:
        """Count a message toward the user's current daily and weekly quests.

        Args:
            company_id: Company (tenant) identifier
            user_id: User who sent the message
            is_success_event: True for a message in a success channel
            now: Instant of the event, defaults to the date provider's now

        Returns:
            EventResult: Both updated documents and the objectives this event completed

        Raises:
            CatalogUnavailableError: If the quest catalog cannot be read
            StoreUnavailableError: If progress cannot be stored
        """
        keys = period_keys(self._now(now), self._settings.quest_zone)
        documents = {}
        completed: List[str] = []

        for quest_type, period_key in ((DAILY, keys.daily), (WEEKLY, keys.weekly)):
            objectives = await self._objectives(company_id, quest_type)
            await self._store.find_or_init(company_id, user_id, period_key, quest_type, objectives)

            seen: List[ProgressDocument] = []

            def count_event(current: ProgressDocument, objectives=objectives, seen=seen) -> ProgressDocument:
                seen.append(current)
                reconciled = reconcile_document(current, objectives)
                return check_completion(apply_event(reconciled, is_success_event))

            updated = await self._update_with_retry(company_id, user_id, period_key, count_event)
            just_completed = newly_completed(seen[-1], updated)
            for objective_id in just_completed:
                logger.info(f"User {user_id} completed {quest_type} objective {objective_id} in company {company_id}")
            completed.extend(just_completed)
            documents[quest_type] = updated

        return EventResult(
            daily=documents[DAILY],
            weekly=documents[WEEKLY],
            completed_objectives=tuple(completed),
        )

    async def claim(
        self,
        company_id: str,
        user_id: str,
        objective_id: str,
        now: Optional[datetime] = None
    ) -> ClaimResult:
        """Claim the reward of a completed objective in the current period.

        The reward paid is the one recorded in the user's progress document,
        not a fresh read of the catalog.

        Raises:
            NotFoundError: If the objective, the progress document or the objective state is missing
            NotCompletedError: If the objective is not completed yet
            AlreadyClaimedError: If the reward was already claimed
            CatalogUnavailableError: If the quest catalog cannot be read
            StoreUnavailableError: If progress cannot be stored
        """
        await self._ensure_catalog(company_id)
        found = await self._catalog.find_objective(company_id, objective_id)
        if found is None:
            raise NotFoundError("objective", objective_id)

        quest_type, _ = found
        period_key = period_key_for(quest_type, self._now(now), self._settings.quest_zone)
        updated = await self._update_with_retry(
            company_id,
            user_id,
            period_key,
            lambda current: claim_objective(current, objective_id),
        )

        state = updated.find_state(objective_id)
        logger.info(f"User {user_id} claimed {quest_type} objective {objective_id} for {state.xp_reward} XP")
        return ClaimResult(objective_id=objective_id, quest_type=quest_type, xp_reward=state.xp_reward)

    async def mark_seen(
        self,
        company_id: str,
        user_id: str,
        quest_type: str,
        now: Optional[datetime] = None
    ) -> bool:
        """Clear the unseen-completion badge for the current period of a quest type.

        Returns:
            bool: False if the user has no progress document for the period yet

        Raises:
            ValidationError: If the quest type is not daily or weekly
            StoreUnavailableError: If progress cannot be stored
        """
        period_key = period_key_for(quest_type, self._now(now), self._settings.quest_zone)
        try:
            await self._update_with_retry(company_id, user_id, period_key, mark_seen)
        except NotFoundError:
            return False
        return True

    async def get_snapshot(
        self,
        company_id: str,
        user_id: str,
        now: Optional[datetime] = None
    ) -> QuestSnapshot:
        """Build the user's daily and weekly quest views for the current periods.

        Both documents are created if missing and reconciled with the current
        catalog before the views are built, so the snapshot always reflects
        the latest quest configuration.

        Raises:
            CatalogUnavailableError: If the quest catalog cannot be read
            StoreUnavailableError: If progress cannot be stored
        """
        keys = period_keys(self._now(now), self._settings.quest_zone)
        views = {}

        for quest_type, period_key in ((DAILY, keys.daily), (WEEKLY, keys.weekly)):
            objectives = await self._objectives(company_id, quest_type)
            await self._store.find_or_init(company_id, user_id, period_key, quest_type, objectives)
            document = await self._update_with_retry(
                company_id,
                user_id,
                period_key,
                lambda current, objectives=objectives: refresh_document(current, objectives),
            )
            views[quest_type] = build_quest_view(document, objectives)

        return QuestSnapshot(daily=views[DAILY], weekly=views[WEEKLY])

    async def reconcile_catalog_changes(self, company_id: str) -> ReconciliationReport:
        """Reconcile all stored progress of a company with the current catalog."""
        reconciler = MigrationReconciler(
            self._store,
            self._catalog,
            settings=self._settings,
            date_provider=self._date_provider,
        )
        return await reconciler.reconcile_catalog_changes(company_id)

    async def _ensure_catalog(self, company_id: str) -> None:
        if not self._settings.seed_default_quests or company_id in self._seeded_companies:
            return
        await self._catalog.ensure_default_quests(company_id)
        if len(self._seeded_companies) >= self.seeded_cache_size:
            self._seeded_companies.clear()
        self._seeded_companies.add(company_id)

    async def _objectives(self, company_id: str, quest_type: str) -> List[ObjectiveDefinition]:
        await self._ensure_catalog(company_id)
        return await self._catalog.list_active_quests(company_id, quest_type)
