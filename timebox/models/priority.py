"""Top priority model.

This module defines the Priority model, one of the three focus slots of a
planner day. A slot shows either a brain dump Item or custom text.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from pydantic import model_validator
from sqlalchemy import CheckConstraint, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from timebox.models.item import ItemRead

if TYPE_CHECKING:
    from timebox.models.planner import Planner

PRIORITY_SLOTS = (1, 2, 3)


class Priority(SQLModel, table=True):
    """An occupied top priority slot.

    There is at most one row per (planner, slot); assigning to an occupied
    slot replaces its content. An item occupies at most one slot per
    planner. Empty slots have no row at all.

    Attributes:
        id: Unique identifier (UUID).
        planner_id: Foreign key to the owning Planner.
        user_id: Owner, copied from the planner for row-level filtering.
        slot: Position 1, 2 or 3.
        item_id: Referenced brain dump Item. Mutually exclusive with
            ``custom_text``. Null with null ``custom_text`` means the item
            was deleted and the slot shows a placeholder.
        custom_text: Free text shown instead of an item.
        is_completed: Whether the priority has been done.
        planner: Reference to the owning Planner.
    """
    __table_args__ = (
        UniqueConstraint("planner_id", "slot", name="uq_priority_planner_slot"),
        UniqueConstraint("planner_id", "item_id", name="uq_priority_planner_item"),
        CheckConstraint(
            "item_id IS NULL OR custom_text IS NULL", name="ck_priority_single_content"
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    planner_id: UUID = Field(foreign_key="planner.id", index=True)
    user_id: str = Field(index=True)
    slot: int
    item_id: UUID | None = Field(default=None, foreign_key="item.id", index=True)
    custom_text: str | None = None
    is_completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    planner: Optional["Planner"] = Relationship(back_populates="priorities")


class PriorityAssign(SQLModel):
    """Content for a slot: exactly one of ``item_id`` or ``custom_text``."""
    item_id: UUID | None = None
    custom_text: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self):
        has_text = bool(self.custom_text and self.custom_text.strip())
        if (self.item_id is None) == (not has_text):
            raise ValueError("Provide exactly one of item_id or custom_text")
        return self


class PriorityUpdate(SQLModel):
    item_id: UUID | None = None
    custom_text: str | None = None
    is_completed: bool | None = None


class PrioritySlotMove(SQLModel):
    """One entry of a slot reorder request."""
    id: UUID
    new_slot: int = Field(ge=1, le=3)


class PriorityRead(SQLModel):
    id: UUID
    planner_id: UUID
    slot: int
    item_id: UUID | None
    custom_text: str | None
    is_completed: bool
    created_at: datetime
    updated_at: datetime
    item: ItemRead | None = None
