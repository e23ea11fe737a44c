"""Reconciliation of stored progress with the current quest catalog.

When a company edits its quests, documents created under the old
configuration still hold the old objective snapshots. Reconciliation brings
them in line without losing anything the user earned:

- objectives added to the catalog are appended as fresh, unclaimed states;
- objectives still in the catalog get their thresholds, reward and order
  refreshed while keeping ``completed`` and ``claimed``;
- objectives removed from the catalog stay in the document untouched.

Counters are shared by all objectives, so a newly added objective whose
threshold the running totals already exceed completes immediately.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, List, Sequence

from quest_tracker.services.base import BaseQuestService
from quest_tracker.services.exceptions import ServiceError
from quest_tracker.services.models import ObjectiveDefinition
from quest_tracker.services.models import ObjectiveState
from quest_tracker.services.models import ProgressDocument
from quest_tracker.services.models import ReconciliationFailure
from quest_tracker.services.models import ReconciliationReport
from quest_tracker.services.period_keys import QUEST_TYPES
from quest_tracker.services.transitions import check_completion

logger = logging.getLogger(__name__)


def reconcile_document(
    document: ProgressDocument,
    catalog_objectives: Sequence[ObjectiveDefinition]
) -> ProgressDocument:
    """Align a document's objective states with the catalog objectives of its quest type.

    Args:
        document: Stored progress document
        catalog_objectives: Current objectives for the document's quest type

    Returns:
        ProgressDocument: The reconciled document, or the same one if nothing differs
    """
    catalog_by_id = {definition.id: definition for definition in catalog_objectives}
    changed = False

    states: List[ObjectiveState] = []
    for state in document.objective_states:
        definition = catalog_by_id.get(state.objective_id)
        if definition is not None and not state.matches(definition):
            state = replace(
                state,
                message_threshold=definition.message_threshold,
                success_threshold=definition.success_threshold,
                xp_reward=definition.xp_reward,
                order=definition.order,
            )
            changed = True
            logger.debug(f"Refreshed objective {state.objective_id} in {document.period_key} for user {document.user_id}")
        states.append(state)

    present = {state.objective_id for state in document.objective_states}
    for definition in catalog_objectives:
        if definition.id not in present:
            states.append(ObjectiveState.from_definition(definition))
            present.add(definition.id)
            changed = True
            logger.debug(f"Added objective {definition.id} to {document.period_key} for user {document.user_id}")

    if not changed:
        return document
    return document.with_states(states)


def refresh_document(
    document: ProgressDocument,
    catalog_objectives: Sequence[ObjectiveDefinition]
) -> ProgressDocument:
    """Reconcile a document and re-evaluate completion against its totals."""
    return check_completion(reconcile_document(document, catalog_objectives))


class MigrationReconciler(BaseQuestService):
    """Sweeps a company's stored progress and reconciles it with the catalog.

    Each document is reconciled independently with its own version-guarded
    write. A document that cannot be updated is logged and reported; the
    sweep carries on with the rest.
    """

    async def reconcile_catalog_changes(self, company_id: str) -> ReconciliationReport:
        """Reconcile every progress document of a company.

        Args:
            company_id: Company (tenant) identifier

        Returns:
            ReconciliationReport: Counts of examined and updated documents plus failures

        Raises:
            CatalogUnavailableError: If the catalog cannot be read
            StoreUnavailableError: If the documents cannot be listed
        """
        catalog: Dict[str, List[ObjectiveDefinition]] = {
            quest_type: await self._catalog.list_active_quests(company_id, quest_type)
            for quest_type in QUEST_TYPES
        }
        if not any(catalog.values()):
            logger.info(f"No quest configuration for company {company_id}; nothing to reconcile")
            return ReconciliationReport(company_id=company_id)

        listing = await self._store.list_all(company_id)
        documents = listing.documents
        examined = len(documents) + len(listing.failures)
        logger.info(f"Reconciling {examined} progress documents for company {company_id}")

        updated = 0
        failed: List[ReconciliationFailure] = list(listing.failures)
        for document in documents:
            objectives = catalog.get(document.quest_type)
            if not objectives:
                continue
            if refresh_document(document, objectives) == document:
                continue

            try:
                await self._update_with_retry(
                    document.company_id,
                    document.user_id,
                    document.period_key,
                    lambda current, objectives=objectives: refresh_document(current, objectives),
                )
                updated += 1
            except ServiceError as e:
                logger.warning(
                    f"Failed to reconcile {document.period_key} for user {document.user_id} "
                    f"in company {company_id}: {e}"
                )
                failed.append(ReconciliationFailure(
                    user_id=document.user_id,
                    period_key=document.period_key,
                    error=e.error_code,
                ))

        logger.info(
            f"Reconciliation for company {company_id} finished: "
            f"{updated} updated, {len(failed)} failed out of {examined}"
        )
        return ReconciliationReport(
            company_id=company_id,
            examined=examined,
            updated=updated,
            failed=tuple(failed),
        )
