"""Daily planner model.

This module defines the Planner model, the per-day container that owns a
user's brain dump items, top priorities and time blocks, plus the snapshot
schema returned when a whole day is assembled for display.
"""

from datetime import UTC, date, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from timebox.models.item import ItemRead
from timebox.models.priority import PriorityRead
from timebox.models.time_block import TimeBlockRead

if TYPE_CHECKING:
    from timebox.models.item import Item
    from timebox.models.priority import Priority
    from timebox.models.time_block import TimeBlock


class Planner(SQLModel, table=True):
    """One planning day for one user.

    Planners are created lazily the first time a user opens a date and are
    never deleted by the planner itself. The (user_id, planner_date) pair is
    unique; two requests racing to create the same day end up sharing one
    row.

    Attributes:
        id: Unique identifier (UUID).
        user_id: Opaque id supplied by the identity provider.
        planner_date: The calendar day this planner covers.
        created_at: When the planner was first opened.
        updated_at: Last modification time.
        items: Brain dump items captured on this day.
        priorities: Occupied top priority slots.
        time_blocks: Scheduled intervals.
    """
    __table_args__ = (
        UniqueConstraint("user_id", "planner_date", name="uq_planner_user_date"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True)
    planner_date: date
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationships
    items: list["Item"] = Relationship(back_populates="planner")
    priorities: list["Priority"] = Relationship(back_populates="planner")
    time_blocks: list["TimeBlock"] = Relationship(back_populates="planner")


class PlannerRead(SQLModel):
    id: UUID
    user_id: str
    planner_date: date
    created_at: datetime
    updated_at: datetime


class PlannerStats(SQLModel):
    """Counters shown in the planner header."""
    total_items: int = 0
    completed_items: int = 0
    total_priorities: int = 0
    completed_priorities: int = 0
    total_time_blocks: int = 0
    completed_time_blocks: int = 0
    scheduled_minutes: int = 0


class FullPlannerRead(PlannerRead):
    """A planner with every collection joined and ordered for display."""
    items: list[ItemRead] = Field(default_factory=list)
    priorities: list[PriorityRead] = Field(default_factory=list)
    time_blocks: list[TimeBlockRead] = Field(default_factory=list)
    stats: PlannerStats = Field(default_factory=PlannerStats)
