"""Tests for the pure progress document transitions."""

from __future__ import annotations

import pytest

from quest_tracker.services.exceptions import AlreadyClaimedError, NotCompletedError, NotFoundError
from quest_tracker.services.models import ObjectiveDefinition, ProgressDocument
from quest_tracker.services.transitions import (
    apply_event,
    check_completion,
    claim_objective,
    mark_seen,
    newly_completed,
)


@pytest.fixture
def document() -> ProgressDocument:
    """Fresh daily document seeded with the default daily objectives."""
    return ProgressDocument.new(
        "test_company",
        "test_user",
        "2024-01-17",
        "daily",
        [
            ObjectiveDefinition(id="daily_success1", success_threshold=1, xp_reward=10, order=1),
            ObjectiveDefinition(id="daily_send10", message_threshold=10, xp_reward=15, order=2),
        ],
    )


class TestApplyEvent:
    """Tests for counting events."""

    def test_message_event_increments_messages(self, document):
        result = apply_event(document, is_success_event=False)

        assert result.total_messages == 1
        assert result.total_success_messages == 0

    def test_success_event_increments_success_messages(self, document):
        result = apply_event(document, is_success_event=True)

        assert result.total_messages == 0
        assert result.total_success_messages == 1

    def test_counters_never_decrease(self, document):
        current = document
        for is_success in [False, True, True, False, True]:
            after = apply_event(current, is_success)
            assert after.total_messages >= current.total_messages
            assert after.total_success_messages >= current.total_success_messages
            current = after

        assert (current.total_messages, current.total_success_messages) == (2, 3)

    def test_original_document_is_unchanged(self, document):
        apply_event(document, is_success_event=True)

        assert document.total_success_messages == 0


class TestCheckCompletion:
    """Tests for objective completion."""

    def test_no_change_below_thresholds(self, document):
        assert check_completion(document) is document

    def test_success_objective_completes(self, document):
        result = check_completion(apply_event(document, is_success_event=True))

        assert result.find_state("daily_success1").completed is True
        assert result.find_state("daily_send10").completed is False
        assert result.quest_seen is False
        assert result.notification_count == 1

    def test_objectives_complete_independently_of_order(self, document):
        current = document
        for _ in range(10):
            current = apply_event(current, is_success_event=False)

        result = check_completion(current)

        assert result.find_state("daily_send10").completed is True
        assert result.find_state("daily_success1").completed is False

    def test_idempotent(self, document):
        once = check_completion(apply_event(document, is_success_event=True))
        seen = mark_seen(once)
        twice = check_completion(seen)

        assert twice == seen
        assert twice.quest_seen is True

    def test_objective_without_goal_never_completes(self):
        document = ProgressDocument.new(
            "test_company", "test_user", "2024-01-17", "daily",
            [ObjectiveDefinition(id="inactive", xp_reward=5, order=1)],
        )
        for _ in range(3):
            document = apply_event(document, is_success_event=False)
            document = apply_event(document, is_success_event=True)

        assert check_completion(document).find_state("inactive").completed is False

    def test_completed_objective_stays_completed(self, document):
        completed = check_completion(apply_event(document, is_success_event=True))

        assert check_completion(completed).find_state("daily_success1").completed is True

    def test_newly_completed(self, document):
        before = apply_event(document, is_success_event=True)
        after = check_completion(before)

        assert newly_completed(before, after) == ("daily_success1",)
        assert newly_completed(after, check_completion(after)) == ()


class TestClaimObjective:
    """Tests for the claim transition."""

    def test_claim_completed_objective(self, document):
        completed = check_completion(apply_event(document, is_success_event=True))

        result = claim_objective(completed, "daily_success1")

        assert result.find_state("daily_success1").claimed is True
        assert result.notification_count == 0

    def test_claim_unknown_objective(self, document):
        with pytest.raises(NotFoundError) as exc_info:
            claim_objective(document, "does_not_exist")

        assert exc_info.value.error_code == "NOT_FOUND"

    def test_claim_before_completion(self, document):
        with pytest.raises(NotCompletedError):
            claim_objective(document, "daily_send10")

    def test_claim_twice(self, document):
        claimed = claim_objective(check_completion(apply_event(document, True)), "daily_success1")

        with pytest.raises(AlreadyClaimedError) as exc_info:
            claim_objective(claimed, "daily_success1")

        assert exc_info.value.objective_id == "daily_success1"
        assert exc_info.value.get_user_message() == "You've already claimed this reward!"


class TestMarkSeen:
    """Tests for clearing the unseen badge."""

    def test_mark_seen_sets_flag(self, document):
        unseen = check_completion(apply_event(document, is_success_event=True))

        assert unseen.quest_seen is False
        assert mark_seen(unseen).quest_seen is True

    def test_mark_seen_when_already_seen_is_noop(self, document):
        assert mark_seen(document) is document
