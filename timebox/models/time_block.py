"""Time block model for the day schedule.

This module defines the TimeBlock model which represents a scheduled
interval on a planner day. Blocks may overlap; laying them out side by side
is up to the presentation layer.
"""

from datetime import UTC, datetime, time
from enum import Enum
from typing import TYPE_CHECKING, Optional
from uuid import UUID, uuid4

from pydantic import field_validator, model_validator
from sqlalchemy import CheckConstraint
from sqlmodel import Field, Relationship, SQLModel

from timebox.models.item import ItemRead
from timebox.planner.timeutils import truncate_to_minute

if TYPE_CHECKING:
    from timebox.models.planner import Planner


class ColorTag(str, Enum):
    BLUE = "blue"
    ORANGE = "orange"
    PINK = "pink"
    TEAL = "teal"
    PURPLE = "purple"


class TimeBlock(SQLModel, table=True):
    """A scheduled interval on a planner day.

    Attributes:
        id: Unique identifier (UUID).
        planner_id: Foreign key to the owning Planner.
        user_id: Owner, copied from the planner for row-level filtering.
        start_time: Start of the interval, minute granularity.
        end_time: End of the interval, strictly after ``start_time`` on the
            same day.
        item_id: Referenced brain dump Item. Mutually exclusive with
            ``custom_text``.
        custom_text: Free text shown instead of an item.
        color_tag: Palette color used when rendering the block.
        notes: Optional notes shown in the block details.
        is_completed: Whether the block has been done.
        planner: Reference to the owning Planner.
    """
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_timeblock_positive_span"),
        CheckConstraint(
            "item_id IS NULL OR custom_text IS NULL", name="ck_timeblock_single_content"
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    planner_id: UUID = Field(foreign_key="planner.id", index=True)
    user_id: str = Field(index=True)
    start_time: time
    end_time: time
    item_id: UUID | None = Field(default=None, foreign_key="item.id", index=True)
    custom_text: str | None = None
    color_tag: ColorTag = Field(default=ColorTag.BLUE)
    notes: str | None = None
    is_completed: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    # Relationship
    planner: Optional["Planner"] = Relationship(back_populates="time_blocks")


class TimeBlockCreate(SQLModel):
    start_time: time
    end_time: time
    item_id: UUID | None = None
    custom_text: str | None = None
    color_tag: ColorTag = ColorTag.BLUE
    notes: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _minute_granularity(cls, value: time) -> time:
        return truncate_to_minute(value)

    @model_validator(mode="after")
    def _check_block(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        has_text = bool(self.custom_text and self.custom_text.strip())
        if (self.item_id is None) == (not has_text):
            raise ValueError("Provide exactly one of item_id or custom_text")
        return self


class TimeBlockUpdate(SQLModel):
    """Partial update. Times are checked against the stored block."""
    start_time: time | None = None
    end_time: time | None = None
    item_id: UUID | None = None
    custom_text: str | None = None
    color_tag: ColorTag | None = None
    notes: str | None = None
    is_completed: bool | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _minute_granularity(cls, value: time | None) -> time | None:
        return truncate_to_minute(value) if value is not None else None


class TimeBlockRead(SQLModel):
    id: UUID
    planner_id: UUID
    start_time: time
    end_time: time
    item_id: UUID | None
    custom_text: str | None
    color_tag: ColorTag
    notes: str | None
    is_completed: bool
    created_at: datetime
    updated_at: datetime
    item: ItemRead | None = None
