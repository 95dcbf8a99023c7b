"""Optimistic mutations for a planner day.

A presentation layer applies each user intent to its local view right away
and only then asks the server. Every mutation runs through a small state
machine:

    idle -> applied_locally -> confirmed          (server accepted)
    idle -> applied_locally -> rejected -> reverted  (server refused)

On confirmation the authoritative planner is fetched again and replaces the
local view. On rejection the whole local view is replaced with the last
confirmed server snapshot taken before the mutation; there is no fine-grained
undo. A partial failure (409) means some of the batch was committed, so the
planner is fetched again after the revert.

Item flags in the local view are always rederived from the local priority and
time block lists, never read off the item payload.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time
from enum import Enum
from typing import Protocol
from uuid import UUID, uuid4

from timebox.client.api import PlannerClientError
from timebox.client.dnd import DragEvent, DragIntent, classify_drag
from timebox.models.item import ItemRead
from timebox.models.planner import FullPlannerRead
from timebox.models.priority import PriorityRead
from timebox.models.time_block import ColorTag, TimeBlockRead
from timebox.planner.flags import derive_reference_flags
from timebox.planner.timeutils import add_minutes

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_MINUTES = 60


class MutationState(str, Enum):
    IDLE = "idle"
    APPLIED_LOCALLY = "applied_locally"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    REVERTED = "reverted"


_TRANSITIONS = {
    MutationState.IDLE: {MutationState.APPLIED_LOCALLY},
    MutationState.APPLIED_LOCALLY: {MutationState.CONFIRMED, MutationState.REJECTED},
    MutationState.REJECTED: {MutationState.REVERTED},
    MutationState.CONFIRMED: set(),
    MutationState.REVERTED: set(),
}


class InvalidTransition(RuntimeError):
    pass


@dataclass
class PendingMutation:
    """One optimistic mutation and the snapshot needed to undo it."""
    kind: DragIntent | str
    snapshot: FullPlannerRead
    state: MutationState = MutationState.IDLE
    error: PlannerClientError | None = None

    def transition(self, new_state: MutationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"{self.kind}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    @property
    def finished(self) -> bool:
        return self.state in (MutationState.CONFIRMED, MutationState.REVERTED)


@dataclass
class LocalView:
    items: list[ItemRead] = field(default_factory=list)
    priorities: list[PriorityRead] = field(default_factory=list)
    time_blocks: list[TimeBlockRead] = field(default_factory=list)

    def copy(self) -> "LocalView":
        return LocalView(list(self.items), list(self.priorities), list(self.time_blocks))

    def item(self, item_id: UUID) -> ItemRead | None:
        return next((i for i in self.items if i.id == item_id), None)

    def priority_in_slot(self, slot: int) -> PriorityRead | None:
        return next((p for p in self.priorities if p.slot == slot), None)


def with_derived_flags(view: LocalView) -> LocalView:
    """Rederive every item's flags from the view's own priorities and blocks."""
    flags = derive_reference_flags(
        [item.id for item in view.items], view.priorities, view.time_blocks
    )
    items = [
        item.model_copy(
            update={
                "is_priority": flags[item.id].is_priority,
                "is_scheduled": flags[item.id].is_scheduled,
            }
        )
        for item in view.items
    ]
    return LocalView(
        items=items,
        priorities=sorted(view.priorities, key=lambda p: p.slot),
        time_blocks=sorted(view.time_blocks, key=lambda b: (b.start_time, b.end_time)),
    )


def view_from_snapshot(snapshot: FullPlannerRead) -> LocalView:
    return with_derived_flags(
        LocalView(list(snapshot.items), list(snapshot.priorities), list(snapshot.time_blocks))
    )


class PlannerBackend(Protocol):
    """The calls the coordinator makes; PlannerApiClient provides them."""

    def get_full_planner(self, day: date) -> FullPlannerRead: ...

    def reorder_items(self, entries: list[tuple[UUID, int]]) -> None: ...

    def update_item(self, item_id: UUID, **fields) -> ItemRead: ...

    def assign_priority(self, planner_id: UUID, slot: int, item_id: UUID) -> PriorityRead: ...

    def update_priority(self, priority_id: UUID, **fields) -> PriorityRead: ...

    def reorder_priority_slots(self, planner_id: UUID, moves: list[tuple[UUID, int]]) -> None: ...

    def create_time_block(
        self,
        planner_id: UUID,
        start_time: time,
        end_time: time,
        item_id: UUID | None = None,
        custom_text: str | None = None,
        color_tag: ColorTag = ColorTag.BLUE,
        notes: str | None = None,
    ) -> TimeBlockRead: ...


def _now() -> datetime:
    return datetime.now(UTC)


class PlannerCoordinator:
    """Local state of one planner day with optimistic mutations.

    Args:
        backend: Server calls, usually a PlannerApiClient.
        day: The planner date shown.
        on_failure: Called with a user-facing message when a mutation is
            rolled back.
    """

    def __init__(
        self,
        backend: PlannerBackend,
        day: date,
        on_failure: Callable[[str], None] | None = None,
    ):
        self.backend = backend
        self.day = day
        self.on_failure = on_failure
        self.confirmed: FullPlannerRead | None = None
        self.view = LocalView()
        self.history: list[PendingMutation] = []

    @property
    def planner_id(self) -> UUID:
        if self.confirmed is None:
            raise RuntimeError("Planner not loaded; call load() first")
        return self.confirmed.id

    def load(self) -> LocalView:
        self.sync(self.backend.get_full_planner(self.day))
        return self.view

    def sync(self, snapshot: FullPlannerRead) -> None:
        """Adopt a new authoritative snapshot, rebuilding the local view."""
        self.confirmed = snapshot
        self.view = view_from_snapshot(snapshot)

    def refresh(self) -> None:
        try:
            self.sync(self.backend.get_full_planner(self.day))
        except PlannerClientError as e:
            logger.warning(f"Refresh of {self.day} failed, keeping local view: {e}")

    def _mutate(
        self,
        kind: DragIntent | str,
        apply_local: Callable[[LocalView], LocalView],
        send: Callable[[], object],
    ) -> PendingMutation:
        if self.confirmed is None:
            raise RuntimeError("Planner not loaded; call load() first")
        mutation = PendingMutation(kind=kind, snapshot=self.confirmed)

        self.view = with_derived_flags(apply_local(self.view.copy()))
        mutation.transition(MutationState.APPLIED_LOCALLY)

        try:
            send()
        except PlannerClientError as e:
            mutation.error = e
            mutation.transition(MutationState.REJECTED)
            logger.warning(
                f"{getattr(kind, 'value', kind)} rejected ({e}), reverting local view"
            )
            self.view = view_from_snapshot(mutation.snapshot)
            mutation.transition(MutationState.REVERTED)
            if e.status_code == 409:
                # Part of the batch was committed; the snapshot is already stale
                self.refresh()
            if self.on_failure:
                self.on_failure(f"Could not save your change: {e.detail}")
        else:
            mutation.transition(MutationState.CONFIRMED)
            self.refresh()

        self.history.append(mutation)
        return mutation

    # Drag and drop

    def handle_drag(self, event: DragEvent) -> PendingMutation | None:
        """Dispatch a drop. Drops on nothing or between unrelated kinds do nothing."""
        if event.over is None:
            return None

        intent = classify_drag(event.active.kind, event.over.kind)
        if intent is DragIntent.ITEM_REORDER:
            return self.reorder_item(UUID(event.active.id), UUID(event.over.id))
        if intent is DragIntent.ITEM_TO_PRIORITY and event.over.slot is not None:
            return self.assign_to_slot(UUID(event.active.id), event.over.slot)
        if intent is DragIntent.PRIORITY_REORDER:
            if event.active.slot is not None and event.over.slot is not None:
                return self.reorder_priorities(event.active.slot, event.over.slot)
        if intent is DragIntent.ITEM_TO_TIMESLOT and event.over.start is not None:
            return self.schedule_item(UUID(event.active.id), event.over.start)

        logger.debug(f"No drag scenario for {event.active.kind} -> {event.over.kind}")
        return None

    def reorder_item(self, active_id: UUID, over_id: UUID) -> PendingMutation | None:
        """Move ``active_id`` to the position of ``over_id``."""
        if active_id == over_id:
            return None
        ids = [item.id for item in self.view.items]
        if active_id not in ids or over_id not in ids:
            logger.error(f"Reorder of unknown item {active_id} -> {over_id}")
            return None

        old_index, new_index = ids.index(active_id), ids.index(over_id)
        ids.insert(new_index, ids.pop(old_index))
        entries = [(item_id, index) for index, item_id in enumerate(ids)]

        def apply_local(view: LocalView) -> LocalView:
            by_id = {item.id: item for item in view.items}
            view.items = [
                by_id[item_id].model_copy(update={"sequence": index})
                for item_id, index in entries
            ]
            return view

        return self._mutate(
            DragIntent.ITEM_REORDER,
            apply_local,
            lambda: self.backend.reorder_items(entries),
        )

    def assign_to_slot(self, item_id: UUID, slot: int) -> PendingMutation | None:
        """Put an item into a priority slot, replacing its occupant."""
        item = self.view.item(item_id)
        if item is None:
            return None
        existing = self.view.priority_in_slot(slot)
        if existing is not None and existing.item_id == item_id:
            return None
        planner_id = self.planner_id

        def apply_local(view: LocalView) -> LocalView:
            # An item holds one slot: drop it from wherever it was
            priorities = [
                p for p in view.priorities if p.item_id != item_id or p.slot == slot
            ]
            if existing is not None:
                priorities = [
                    p.model_copy(
                        update={
                            "item_id": item_id,
                            "custom_text": None,
                            "item": item,
                            "is_completed": False,
                        }
                    )
                    if p.slot == slot
                    else p
                    for p in priorities
                ]
            else:
                now = _now()
                priorities.append(
                    PriorityRead(
                        id=uuid4(),
                        planner_id=planner_id,
                        slot=slot,
                        item_id=item_id,
                        custom_text=None,
                        is_completed=False,
                        created_at=now,
                        updated_at=now,
                        item=item,
                    )
                )
            view.priorities = priorities
            return view

        return self._mutate(
            DragIntent.ITEM_TO_PRIORITY,
            apply_local,
            lambda: self.backend.assign_priority(planner_id, slot, item_id),
        )

    def reorder_priorities(self, active_slot: int, over_slot: int) -> PendingMutation | None:
        """Move the priority in ``active_slot`` to ``over_slot``, swapping if occupied."""
        if active_slot == over_slot:
            return None
        active = self.view.priority_in_slot(active_slot)
        if active is None:
            logger.error(f"No priority in slot {active_slot} to move")
            return None
        over = self.view.priority_in_slot(over_slot)

        moves = [(active.id, over_slot)]
        if over is not None:
            moves.append((over.id, active_slot))
        new_slots = dict(moves)

        def apply_local(view: LocalView) -> LocalView:
            view.priorities = [
                p.model_copy(update={"slot": new_slots[p.id]}) if p.id in new_slots else p
                for p in view.priorities
            ]
            return view

        planner_id = self.planner_id
        return self._mutate(
            DragIntent.PRIORITY_REORDER,
            apply_local,
            lambda: self.backend.reorder_priority_slots(planner_id, moves),
        )

    def schedule_item(
        self, item_id: UUID, start: time, minutes: int = DEFAULT_BLOCK_MINUTES
    ) -> PendingMutation | None:
        """Create a time block for an item dropped on the schedule."""
        item = self.view.item(item_id)
        if item is None:
            return None
        end = add_minutes(start, minutes)
        if end <= start:
            logger.debug(f"No room to schedule item {item_id} at {start}")
            return None
        planner_id = self.planner_id

        def apply_local(view: LocalView) -> LocalView:
            now = _now()
            view.time_blocks.append(
                TimeBlockRead(
                    id=uuid4(),
                    planner_id=planner_id,
                    start_time=start,
                    end_time=end,
                    item_id=item_id,
                    custom_text=None,
                    color_tag=ColorTag.BLUE,
                    notes=None,
                    is_completed=False,
                    created_at=now,
                    updated_at=now,
                    item=item,
                )
            )
            return view

        return self._mutate(
            DragIntent.ITEM_TO_TIMESLOT,
            apply_local,
            lambda: self.backend.create_time_block(planner_id, start, end, item_id=item_id),
        )

    # Toggles

    def toggle_priority_complete(self, priority_id: UUID, completed: bool) -> PendingMutation:
        def apply_local(view: LocalView) -> LocalView:
            view.priorities = [
                p.model_copy(update={"is_completed": completed}) if p.id == priority_id else p
                for p in view.priorities
            ]
            return view

        return self._mutate(
            "toggle-priority",
            apply_local,
            lambda: self.backend.update_priority(priority_id, is_completed=completed),
        )

    def toggle_item_complete(self, item_id: UUID, completed: bool) -> PendingMutation:
        def apply_local(view: LocalView) -> LocalView:
            view.items = [
                i.model_copy(update={"is_completed": completed}) if i.id == item_id else i
                for i in view.items
            ]
            return view

        return self._mutate(
            "toggle-item",
            apply_local,
            lambda: self.backend.update_item(item_id, is_completed=completed),
        )
