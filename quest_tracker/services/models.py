"""Service layer models for quest progress.

This module defines immutable dataclasses for objective definitions, the
per-period progress document and the read models built from it. State
changes never mutate these values; transition functions return new ones.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from typing import Any
from typing import Iterable
from typing import Union

from quest_tracker.services.exceptions import ValidationError


@dataclass(frozen=True)
class MessageGoal:
    """Objective met once the document has seen ``count`` messages."""

    count: int

    def current(self, total_messages: int, total_success_messages: int) -> int:
        return total_messages

    def is_met(self, total_messages: int, total_success_messages: int) -> bool:
        return total_messages >= self.count

    @property
    def title(self) -> str:
        return f"Send {self.count} Message{'s' if self.count > 1 else ''}"

    @property
    def description(self) -> str:
        return f"Send {self.count} message{'s' if self.count > 1 else ''} in any channel"


@dataclass(frozen=True)
class SuccessGoal:
    """Objective met once the document has seen ``count`` success messages."""

    count: int

    def current(self, total_messages: int, total_success_messages: int) -> int:
        return total_success_messages

    def is_met(self, total_messages: int, total_success_messages: int) -> bool:
        return total_success_messages >= self.count

    @property
    def title(self) -> str:
        return f"Send {self.count} Success Message{'s' if self.count > 1 else ''}"

    @property
    def description(self) -> str:
        return f"Send {self.count} message{'s' if self.count > 1 else ''} in success channels"


Goal = Union[MessageGoal, SuccessGoal]


def goal_for(message_threshold: int, success_threshold: int) -> Goal | None:
    """Build the goal for a pair of thresholds.

    The message threshold wins when both are set; ``None`` means the
    objective has no active metric and can never complete.
    """
    if message_threshold > 0:
        return MessageGoal(message_threshold)
    if success_threshold > 0:
        return SuccessGoal(success_threshold)
    return None


def _require_non_negative(name: str, value: int) -> None:
    if value < 0:
        raise ValidationError(name, f"{name.replace('_', ' ').capitalize()} cannot be negative")


@dataclass(frozen=True)
class ObjectiveDefinition:
    """An objective as configured in the quest catalog."""

    id: str
    message_threshold: int = 0
    success_threshold: int = 0
    xp_reward: int = 0
    order: int = 1

    def __post_init__(self):
        """Validate definition data after initialization."""
        if not self.id or not self.id.strip():
            raise ValidationError("id", "Objective ID is required")
        _require_non_negative("message_threshold", self.message_threshold)
        _require_non_negative("success_threshold", self.success_threshold)
        _require_non_negative("xp_reward", self.xp_reward)
        if self.message_threshold > 0 and self.success_threshold > 0:
            raise ValidationError(
                "success_threshold",
                "An objective tracks either messages or success messages, not both"
            )
        if self.order < 1:
            raise ValidationError("order", "Order must be at least 1")

    @property
    def goal(self) -> Goal | None:
        return goal_for(self.message_threshold, self.success_threshold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message_threshold": self.message_threshold,
            "success_threshold": self.success_threshold,
            "xp_reward": self.xp_reward,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectiveDefinition:
        return cls(
            id=data["id"],
            message_threshold=int(data.get("message_threshold", 0)),
            success_threshold=int(data.get("success_threshold", 0)),
            xp_reward=int(data.get("xp_reward", 0)),
            order=int(data.get("order", 1)),
        )


def normalize_objectives(raw_objectives: Iterable[dict[str, Any]]) -> list[ObjectiveDefinition]:
    """Turn loosely-typed objective data into valid, densely ordered definitions.

    Negative values clamp to zero. When both thresholds are set the larger
    one is kept (messages win ties). Missing ids become ``objective_{n}`` and
    a missing or non-positive order falls back to the position in the input.
    The result is sorted by order and renumbered from 1.
    """
    normalized = []
    for index, raw in enumerate(raw_objectives):
        message = max(0, int(raw.get("message_threshold") or 0))
        success = max(0, int(raw.get("success_threshold") or 0))
        if message > 0 and success > 0:
            if message >= success:
                success = 0
            else:
                message = 0
        order = int(raw.get("order") or 0)
        normalized.append({
            "id": raw.get("id") or f"objective_{index + 1}",
            "message_threshold": message,
            "success_threshold": success,
            "xp_reward": max(0, int(raw.get("xp_reward") or 0)),
            "order": order if order > 0 else index + 1,
        })

    normalized.sort(key=lambda obj: obj["order"])
    return [
        ObjectiveDefinition.from_dict({**obj, "order": position})
        for position, obj in enumerate(normalized, start=1)
    ]


@dataclass(frozen=True)
class ObjectiveState:
    """A snapshot of one objective inside a progress document.

    The definition fields are copied from the catalog when the state is
    created and refreshed by reconciliation; ``completed`` and ``claimed``
    belong to the user.
    """

    objective_id: str
    message_threshold: int
    success_threshold: int
    xp_reward: int
    order: int
    completed: bool = False
    claimed: bool = False

    def __post_init__(self):
        """Validate objective state after initialization."""
        _require_non_negative("message_threshold", self.message_threshold)
        _require_non_negative("success_threshold", self.success_threshold)
        _require_non_negative("xp_reward", self.xp_reward)
        if self.claimed and not self.completed:
            raise ValidationError("claimed", "An objective cannot be claimed before it is completed")

    @property
    def goal(self) -> Goal | None:
        return goal_for(self.message_threshold, self.success_threshold)

    @property
    def is_claimable(self) -> bool:
        return self.completed and not self.claimed

    @classmethod
    def from_definition(cls, definition: ObjectiveDefinition) -> ObjectiveState:
        return cls(
            objective_id=definition.id,
            message_threshold=definition.message_threshold,
            success_threshold=definition.success_threshold,
            xp_reward=definition.xp_reward,
            order=definition.order,
        )

    def matches(self, definition: ObjectiveDefinition) -> bool:
        """Check whether the copied definition fields equal the catalog's."""
        return (
            self.message_threshold == definition.message_threshold
            and self.success_threshold == definition.success_threshold
            and self.xp_reward == definition.xp_reward
            and self.order == definition.order
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "objective_id": self.objective_id,
            "message_threshold": self.message_threshold,
            "success_threshold": self.success_threshold,
            "xp_reward": self.xp_reward,
            "order": self.order,
            "completed": self.completed,
            "claimed": self.claimed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectiveState:
        return cls(
            objective_id=data["objective_id"],
            message_threshold=int(data.get("message_threshold", 0)),
            success_threshold=int(data.get("success_threshold", 0)),
            xp_reward=int(data.get("xp_reward", 0)),
            order=int(data.get("order", 1)),
            completed=bool(data.get("completed", False)),
            claimed=bool(data.get("claimed", False)),
        )


def count_claimable(states: Iterable[ObjectiveState]) -> int:
    """Count objectives that are completed but not yet claimed."""
    return sum(1 for state in states if state.is_claimable)


@dataclass(frozen=True)
class ProgressDocument:
    """Immutable representation of a user's progress for one period.

    Identified by ``(company_id, user_id, period_key)``. ``version`` is the
    optimistic concurrency token of the stored row; 0 means never stored.
    """

    company_id: str
    user_id: str
    period_key: str
    quest_type: str
    total_messages: int = 0
    total_success_messages: int = 0
    objective_states: tuple[ObjectiveState, ...] = field(default_factory=tuple)
    quest_seen: bool = True
    notification_count: int = 0
    version: int = 0

    def __post_init__(self):
        """Validate progress data after initialization."""
        if not self.company_id.strip():
            raise ValidationError("company_id", "Company ID is required")
        if not self.user_id.strip():
            raise ValidationError("user_id", "User ID is required")
        _require_non_negative("total_messages", self.total_messages)
        _require_non_negative("total_success_messages", self.total_success_messages)
        _require_non_negative("notification_count", self.notification_count)
        if not isinstance(self.objective_states, tuple):
            object.__setattr__(self, "objective_states", tuple(self.objective_states))

    @classmethod
    def new(
        cls,
        company_id: str,
        user_id: str,
        period_key: str,
        quest_type: str,
        seed_objectives: Iterable[ObjectiveDefinition],
    ) -> ProgressDocument:
        """Create a fresh document with zeroed counters seeded from the catalog."""
        return cls(
            company_id=company_id,
            user_id=user_id,
            period_key=period_key,
            quest_type=quest_type,
            objective_states=tuple(
                ObjectiveState.from_definition(definition) for definition in seed_objectives
            ),
        )

    def find_state(self, objective_id: str) -> ObjectiveState | None:
        for state in self.objective_states:
            if state.objective_id == objective_id:
                return state
        return None

    def with_states(self, states: Iterable[ObjectiveState], **changes: Any) -> ProgressDocument:
        """Return a copy holding ``states`` with the notification count kept in step."""
        states = tuple(states)
        return replace(
            self,
            objective_states=states,
            notification_count=count_claimable(states),
            **changes,
        )

    @property
    def completed_objective_ids(self) -> frozenset[str]:
        return frozenset(state.objective_id for state in self.objective_states if state.completed)


@dataclass(frozen=True)
class EventResult:
    """Result of recording one message event."""

    daily: ProgressDocument
    weekly: ProgressDocument
    completed_objectives: tuple[str, ...] = ()


@dataclass(frozen=True)
class ClaimResult:
    """Result of a successful objective claim."""

    objective_id: str
    quest_type: str
    xp_reward: int

    def __post_init__(self):
        _require_non_negative("xp_reward", self.xp_reward)


@dataclass(frozen=True)
class ObjectiveView:
    """Display model for one objective."""

    id: str
    title: str
    description: str
    progress: int
    target: int
    completed: bool
    claimed: bool
    xp: int
    order: int


@dataclass(frozen=True)
class QuestView:
    """Display model for one quest type in the current period."""

    msg_count: int
    success_msg_count: int
    objectives: tuple[ObjectiveView, ...]
    quest_seen: bool
    notification_count: int


@dataclass(frozen=True)
class QuestSnapshot:
    """Daily and weekly quest views for one user."""

    daily: QuestView
    weekly: QuestView


@dataclass(frozen=True)
class ReconciliationFailure:
    """A document the reconciliation sweep could not update."""

    user_id: str
    period_key: str
    error: str


@dataclass(frozen=True)
class ProgressListing:
    """Every stored document of a company, plus the rows that could not be decoded."""

    documents: tuple[ProgressDocument, ...] = ()
    failures: tuple[ReconciliationFailure, ...] = ()


@dataclass(frozen=True)
class ReconciliationReport:
    """Summary of a tenant-wide reconciliation sweep."""

    company_id: str
    examined: int = 0
    updated: int = 0
    failed: tuple[ReconciliationFailure, ...] = ()

    @property
    def succeeded(self) -> bool:
        return not self.failed
