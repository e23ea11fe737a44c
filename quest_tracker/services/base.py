"""Base service class and collaborator interfaces for quest services.

The progress engine and the migration reconciler depend on two
collaborators: the objective catalog (read-only quest configuration) and the
progress store (versioned per-period documents). Both are described as
protocols so tests and alternative backends can be substituted.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Protocol, Tuple

from quest_tracker.services.exceptions import PreconditionFailedError
from quest_tracker.services.exceptions import StoreUnavailableError
from quest_tracker.services.models import ObjectiveDefinition
from quest_tracker.services.models import ProgressDocument
from quest_tracker.services.models import ProgressListing
from quest_tracker.shared.config import Settings
from quest_tracker.shared.config import get_settings
from quest_tracker.shared.date_provider import DateProvider
from quest_tracker.shared.date_provider import get_date_provider

logger = logging.getLogger(__name__)

Mutation = Callable[[ProgressDocument], ProgressDocument]


class ObjectiveCatalogProtocol(Protocol):
    """Read access to the quest configuration of a company."""

    async def list_active_quests(self, company_id: str, quest_type: str) -> List[ObjectiveDefinition]:
        """Objectives of the first active quest of a type, ordered by rank.

        Raises:
            CatalogUnavailableError: On catalog failures
        """
        ...

    async def list_all_quests(self, company_id: str) -> List[Tuple[str, List[ObjectiveDefinition]]]:
        """Every quest of the company as (quest_type, objectives).

        Raises:
            CatalogUnavailableError: On catalog failures
        """
        ...

    async def find_objective(
        self,
        company_id: str,
        objective_id: str
    ) -> Optional[Tuple[str, ObjectiveDefinition]]:
        ...

    async def ensure_default_quests(self, company_id: str) -> bool:
        ...


class ProgressStoreProtocol(Protocol):
    """Versioned storage of progress documents."""

    async def get(self, company_id: str, user_id: str, period_key: str) -> Optional[ProgressDocument]:
        ...

    async def find_or_init(
        self,
        company_id: str,
        user_id: str,
        period_key: str,
        quest_type: str,
        seed_objectives: List[ObjectiveDefinition]
    ) -> ProgressDocument:
        """Get the document for a key, creating it with zeroed counters if missing."""
        ...

    async def atomic_update(
        self,
        company_id: str,
        user_id: str,
        period_key: str,
        mutation: Mutation
    ) -> ProgressDocument:
        """Apply ``mutation`` and write the result only if the version is unchanged.

        Raises:
            NotFoundError: If the document doesn't exist
            PreconditionFailedError: If the document changed since it was read
            StoreUnavailableError: On store failures
        """
        ...

    async def list_all(self, company_id: str) -> ProgressListing:
        """Every stored document of a company; undecodable rows come back as failures."""
        ...


class BaseQuestService:
    """Shared wiring for services that read the catalog and write progress."""

    def __init__(
        self,
        store: ProgressStoreProtocol,
        catalog: ObjectiveCatalogProtocol,
        settings: Optional[Settings] = None,
        date_provider: Optional[DateProvider] = None,
    ):
        """Initialize the service.

        Args:
            store: Progress document store
            catalog: Quest catalog
            settings: Application settings, defaults to the global settings
            date_provider: Source of "now", defaults to the global provider
        """
        self._store = store
        self._catalog = catalog
        self._settings = settings or get_settings()
        self._date_provider = date_provider or get_date_provider()
        self._service_name = self.__class__.__name__

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return now if now is not None else self._date_provider.utcnow()

    async def _update_with_retry(
        self,
        company_id: str,
        user_id: str,
        period_key: str,
        mutation: Mutation
    ) -> ProgressDocument:
        """Apply a mutation, re-reading and retrying when a concurrent write wins.

        Raises:
            StoreUnavailableError: If every attempt lost the race
        """
        attempts = self._settings.max_update_retries
        for attempt in range(1, attempts + 1):
            try:
                return await self._store.atomic_update(company_id, user_id, period_key, mutation)
            except PreconditionFailedError:
                logger.debug(
                    f"{self._service_name}: version conflict on {period_key} for user {user_id} "
                    f"(attempt {attempt}/{attempts})"
                )

        logger.warning(
            f"{self._service_name}: gave up updating {period_key} for user {user_id} "
            f"after {attempts} conflicting writes"
        )
        raise StoreUnavailableError("atomic_update", context={"period_key": period_key, "attempts": attempts})
