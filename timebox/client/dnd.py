"""Drag-and-drop intent classification.

The presentation layer reports a drop as a source and a target, each tagged
with a kind. The (source kind, target kind) pair decides what the drop
means; any other pair is ignored.
"""
from dataclasses import dataclass
from datetime import time
from enum import Enum


class DragKind(str, Enum):
    ITEM = "brain-dump-item"
    PRIORITY_SLOT = "priority-slot"
    TIME_SLOT = "time-slot"


class DragIntent(str, Enum):
    ITEM_REORDER = "item-reorder"
    ITEM_TO_PRIORITY = "item-to-priority"
    PRIORITY_REORDER = "priority-reorder"
    ITEM_TO_TIMESLOT = "item-to-timeslot"


_INTENTS = {
    (DragKind.ITEM.value, DragKind.ITEM.value): DragIntent.ITEM_REORDER,
    (DragKind.ITEM.value, DragKind.PRIORITY_SLOT.value): DragIntent.ITEM_TO_PRIORITY,
    (DragKind.PRIORITY_SLOT.value, DragKind.PRIORITY_SLOT.value): DragIntent.PRIORITY_REORDER,
    (DragKind.ITEM.value, DragKind.TIME_SLOT.value): DragIntent.ITEM_TO_TIMESLOT,
}


@dataclass(frozen=True)
class DragTarget:
    """One end of a drag.

    Attributes:
        kind: A DragKind, or whatever string the presentation layer sent.
        id: Id of the dragged or hovered element (item id for items).
        slot: Priority slot number for priority-slot targets.
        start: Time of day for time-slot targets.
    """
    kind: DragKind | str
    id: str
    slot: int | None = None
    start: time | None = None


@dataclass(frozen=True)
class DragEvent:
    active: DragTarget
    over: DragTarget | None = None


def classify_drag(source_kind: DragKind | str, target_kind: DragKind | str) -> DragIntent | None:
    """Map a (source, target) kind pair to an intent, or None if it means nothing."""
    source = getattr(source_kind, "value", source_kind)
    target = getattr(target_kind, "value", target_kind)
    return _INTENTS.get((source, target))
