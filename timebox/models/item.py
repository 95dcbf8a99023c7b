"""Brain dump item model.

This module defines the Item model, one captured thought or task on a
planner day. Items are the single source of truth that top priorities and
time blocks point at; the two ``is_*`` flags record whether anything
currently does.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from sqlalchemy import Index
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from timebox.models.planner import Planner


class Item(SQLModel, table=True):
    """A brain dump entry on a planner day.

    Items are ordered manually by ``sequence``. Sequence values are unique
    within a planner but need not be contiguous; only their relative order
    matters. Uniqueness is checked by the planner operations rather than by a
    database constraint, so a bulk reorder may pass through intermediate
    states.

    Attributes:
        id: Unique identifier (UUID).
        planner_id: Foreign key to the owning Planner.
        user_id: Owner, copied from the planner for row-level filtering.
        text: The captured thought.
        is_completed: Whether the user has checked the item off.
        is_priority: Derived. True while a Priority in the same planner
            references this item. Never set directly.
        is_scheduled: Derived. True while at least one TimeBlock in the same
            planner references this item. Never set directly.
        sequence: Manual sort key within the planner.
        planner: Reference to the owning Planner.
    """
    __table_args__ = (Index("ix_item_planner_sequence", "planner_id", "sequence"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    planner_id: UUID = Field(foreign_key="planner.id", index=True)
    user_id: str = Field(index=True)
    text: str
    is_completed: bool = Field(default=False)
    is_priority: bool = Field(default=False)
    is_scheduled: bool = Field(default=False)
    sequence: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    planner: Optional["Planner"] = Relationship(back_populates="items")


class ItemCreate(SQLModel):
    text: str = Field(min_length=1)
    sequence: int | None = None


class ItemUpdate(SQLModel):
    """Editable fields. The derived flags are deliberately absent."""
    text: str | None = Field(default=None, min_length=1)
    is_completed: bool | None = None
    sequence: int | None = None


class ItemSequence(SQLModel):
    """One entry of a bulk reorder request."""
    id: UUID
    sequence: int


class ItemRead(SQLModel):
    id: UUID
    planner_id: UUID
    text: str
    is_completed: bool
    is_priority: bool
    is_scheduled: bool
    sequence: int
    created_at: datetime
    updated_at: datetime
