"""Pure state transitions for progress documents.

Each function takes a document and returns a new one; none of them touch
storage. The progress engine composes them into mutations that the store
applies with a version-guarded write.
"""

from __future__ import annotations

from dataclasses import replace

from quest_tracker.services.exceptions import AlreadyClaimedError
from quest_tracker.services.exceptions import NotCompletedError
from quest_tracker.services.exceptions import NotFoundError
from quest_tracker.services.models import ObjectiveState
from quest_tracker.services.models import ProgressDocument


def apply_event(document: ProgressDocument, is_success_event: bool) -> ProgressDocument:
    """Count one message toward the document's totals."""
    if is_success_event:
        return replace(document, total_success_messages=document.total_success_messages + 1)
    return replace(document, total_messages=document.total_messages + 1)


def check_completion(document: ProgressDocument) -> ProgressDocument:
    """Mark every objective whose goal the totals now satisfy as completed.

    Objectives are evaluated independently of their order. Any new completion
    clears ``quest_seen`` so the user gets an unseen-completion badge; when
    nothing changes the document is returned as is.
    """
    changed = False
    states = []
    for state in document.objective_states:
        goal = state.goal
        if (
            not state.completed
            and goal is not None
            and goal.is_met(document.total_messages, document.total_success_messages)
        ):
            state = replace(state, completed=True)
            changed = True
        states.append(state)

    if not changed:
        return document
    return document.with_states(states, quest_seen=False)


def newly_completed(before: ProgressDocument, after: ProgressDocument) -> tuple[str, ...]:
    """Ids of objectives completed in ``after`` but not in ``before``."""
    already = before.completed_objective_ids
    return tuple(
        state.objective_id
        for state in after.objective_states
        if state.completed and state.objective_id not in already
    )


def claim_objective(document: ProgressDocument, objective_id: str) -> ProgressDocument:
    """Mark a completed objective as claimed.

    Raises:
        NotFoundError: If the document has no state for the objective
        NotCompletedError: If the objective is not completed yet
        AlreadyClaimedError: If the objective was claimed before
    """
    target = document.find_state(objective_id)
    if target is None:
        raise NotFoundError("objective progress", objective_id)
    if not target.completed:
        raise NotCompletedError(objective_id)
    if target.claimed:
        raise AlreadyClaimedError(objective_id)

    states: list[ObjectiveState] = [
        replace(state, claimed=True) if state.objective_id == objective_id else state
        for state in document.objective_states
    ]
    return document.with_states(states)


def mark_seen(document: ProgressDocument) -> ProgressDocument:
    if document.quest_seen:
        return document
    return replace(document, quest_seen=True)
