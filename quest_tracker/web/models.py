"""Database models for quest configuration and progress."""

from __future__ import annotations

from typing import Any
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean
from sqlalchemy import Index, UniqueConstraint
from sqlalchemy import Integer
from sqlalchemy import JSON
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy import Uuid
from sqlalchemy.orm import Mapped
from sqlalchemy.orm import mapped_column

from quest_tracker.services.exceptions import ValidationError
from quest_tracker.services.models import ObjectiveDefinition
from quest_tracker.services.models import ObjectiveState
from quest_tracker.services.models import ProgressDocument
from quest_tracker.services.models import normalize_objectives
from quest_tracker.shared.database import Base


class Quest(Base):
    """Quest configuration for a company.

    A quest groups an ordered list of objectives under a quest type (daily or
    weekly). Only the first active quest of each type, ordered by quest_id,
    drives progress tracking.
    """

    __tablename__ = "quests"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        doc="Unique quest record identifier"
    )
    company_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="Company (tenant) identifier"
    )
    quest_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Human-readable quest identifier, unique per company"
    )
    quest_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Quest period type: daily or weekly"
    )
    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Quest display title"
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Quest display description"
    )
    objectives: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Objective definitions as a list of dicts"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Whether the quest is currently tracked"
    )

    __table_args__ = (
        UniqueConstraint("company_id", "quest_id", name="uq_quests_company_quest"),
        Index("ix_quests_company_type", "company_id", "quest_type"),
    )

    def __init__(self, **kwargs):
        """Initialize Quest with default values."""
        kwargs.setdefault('id', uuid4())
        kwargs.setdefault('objectives', [])
        kwargs.setdefault('is_active', True)
        super().__init__(**kwargs)

    def objective_definitions(self) -> list[ObjectiveDefinition]:
        """Get the quest's objectives as validated definitions ordered by rank."""
        return normalize_objectives(self.objectives or [])


class QuestProgress(Base):
    """A user's progress toward the quests of one period.

    One row per (company, user, period key). The two counters are shared by
    every objective; objective_states holds the per-objective snapshot of the
    catalog plus the user's completed/claimed flags. ``version`` guards every
    write so concurrent updates never overwrite each other.
    """

    __tablename__ = "quest_progress"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        doc="Unique progress record identifier"
    )
    company_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="Company (tenant) identifier"
    )
    user_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="User identifier"
    )
    period_key: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        doc="Daily (YYYY-MM-DD) or weekly (YYYY-Www) period key"
    )
    quest_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Quest period type: daily or weekly"
    )
    total_messages: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Messages sent during the period"
    )
    total_success_messages: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Success messages sent during the period"
    )
    objective_states: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Ordered objective states as a list of dicts"
    )
    quest_seen: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="False while a completed objective has not been seen by the user"
    )
    notification_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Number of completed objectives waiting to be claimed"
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        doc="Optimistic concurrency token, incremented on every update"
    )

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", "period_key", name="uq_quest_progress_company_user_period"),
        Index("ix_quest_progress_company_type", "company_id", "quest_type"),
    )

    def __init__(self, **kwargs):
        """Initialize QuestProgress with default values."""
        kwargs.setdefault('id', uuid4())
        kwargs.setdefault('total_messages', 0)
        kwargs.setdefault('total_success_messages', 0)
        kwargs.setdefault('objective_states', [])
        kwargs.setdefault('quest_seen', True)
        kwargs.setdefault('notification_count', 0)
        kwargs.setdefault('version', 1)
        super().__init__(**kwargs)

    @classmethod
    def from_document(cls, document: ProgressDocument) -> QuestProgress:
        """Build a new row from a document that has never been stored."""
        return cls(
            company_id=document.company_id,
            user_id=document.user_id,
            period_key=document.period_key,
            quest_type=document.quest_type,
            **document_values(document),
            version=1,
        )

    def to_document(self) -> ProgressDocument:
        """Convert the row into an immutable progress document.

        Raises:
            ValidationError: If the stored state violates document invariants
        """
        try:
            states = tuple(
                ObjectiveState.from_dict(state) for state in (self.objective_states or [])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError("objective_states", f"Malformed objective state: {e!r}") from e

        return ProgressDocument(
            company_id=self.company_id,
            user_id=self.user_id,
            period_key=self.period_key,
            quest_type=self.quest_type,
            total_messages=self.total_messages,
            total_success_messages=self.total_success_messages,
            objective_states=states,
            quest_seen=self.quest_seen,
            notification_count=self.notification_count,
            version=self.version,
        )


def document_values(document: ProgressDocument) -> dict[str, Any]:
    """Column values for the mutable part of a progress document."""
    return {
        "total_messages": document.total_messages,
        "total_success_messages": document.total_success_messages,
        "objective_states": [state.to_dict() for state in document.objective_states],
        "quest_seen": document.quest_seen,
        "notification_count": document.notification_count,
    }
