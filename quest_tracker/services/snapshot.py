"""Read models for displaying quest progress."""

from __future__ import annotations

from typing import Sequence

from quest_tracker.services.models import MessageGoal
from quest_tracker.services.models import ObjectiveDefinition
from quest_tracker.services.models import ObjectiveView
from quest_tracker.services.models import ProgressDocument
from quest_tracker.services.models import QuestView


def build_objective_view(definition: ObjectiveDefinition, document: ProgressDocument) -> ObjectiveView:
    # Objectives without an active metric render as a zero-message goal
    goal = definition.goal or MessageGoal(0)
    state = document.find_state(definition.id)
    current = goal.current(document.total_messages, document.total_success_messages)
    return ObjectiveView(
        id=definition.id,
        title=goal.title,
        description=goal.description,
        progress=min(current, goal.count),
        target=goal.count,
        completed=state.completed if state else False,
        claimed=state.claimed if state else False,
        xp=definition.xp_reward,
        order=definition.order,
    )


def build_quest_view(
    document: ProgressDocument,
    catalog_objectives: Sequence[ObjectiveDefinition]
) -> QuestView:
    """Build the display model for one quest type.

    Objectives are listed from the catalog in rank order. States the catalog
    no longer defines stay in the document but are not shown.
    """
    objectives = tuple(
        build_objective_view(definition, document)
        for definition in sorted(catalog_objectives, key=lambda d: d.order)
    )
    return QuestView(
        msg_count=document.total_messages,
        success_msg_count=document.total_success_messages,
        objectives=objectives,
        quest_seen=document.quest_seen,
        notification_count=sum(1 for objective in objectives if objective.completed and not objective.claimed),
    )
