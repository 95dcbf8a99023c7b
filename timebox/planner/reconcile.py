"""Reference reconciliation for brain dump items.

Priorities and time blocks point at items; items cache whether anything
points at them in ``is_priority`` and ``is_scheduled``. Every operation here
that adds, moves or drops a reference recomputes the flags of the items on
both ends from the stored references, inside the same commit as the
reference change. ``reconcile_planner`` rebuilds all flags of a planner from
scratch and is safe to run at any time.
"""
import logging
from collections.abc import Iterable
from datetime import time
from uuid import UUID

from sqlmodel import Session, select

from timebox.core.errors import AggregateFailure, ConstraintViolation, NotFound
from timebox.core.identity import RequestContext
from timebox.models import Item, Planner, Priority, TimeBlock
from timebox.models.content import (
    Content,
    CustomText,
    ItemReference,
    apply_content,
    content_from_columns,
    content_from_updates,
    referenced_item_id,
    row_content,
)
from timebox.models.item import ItemUpdate
from timebox.models.priority import PRIORITY_SLOTS, PriorityUpdate
from timebox.models.time_block import TimeBlockCreate, TimeBlockUpdate
from timebox.planner import store
from timebox.planner.flags import ReferenceFlags, derive_reference_flags
from timebox.planner.store import store_errors, touch

logger = logging.getLogger(__name__)


# Flag maintenance


def refresh_item_flags(session: Session, item_ids: Iterable[UUID | None]) -> None:
    """Recompute the derived flags of the given items from stored references.

    Pending changes are flushed first so the references being counted are
    the ones about to be committed.
    """
    session.flush()
    for item_id in {i for i in item_ids if i is not None}:
        item = session.get(Item, item_id)
        if item is None:
            continue

        is_priority = session.exec(
            select(Priority.id)
            .where(Priority.planner_id == item.planner_id)
            .where(Priority.item_id == item_id)
            .limit(1)
        ).first() is not None
        is_scheduled = session.exec(
            select(TimeBlock.id)
            .where(TimeBlock.planner_id == item.planner_id)
            .where(TimeBlock.item_id == item_id)
            .limit(1)
        ).first() is not None

        if item.is_priority != is_priority or item.is_scheduled != is_scheduled:
            item.is_priority = is_priority
            item.is_scheduled = is_scheduled
            session.add(item)


def flag_drift(session: Session, planner: Planner) -> list[tuple[Item, ReferenceFlags]]:
    """Items of a planner whose cached flags differ from their references."""
    items = store.list_items(session, planner.id)
    flags = derive_reference_flags(
        [item.id for item in items],
        store.list_priorities(session, planner.id),
        store.list_time_blocks(session, planner.id),
    )
    return [
        (item, flags[item.id])
        for item in items
        if (item.is_priority, item.is_scheduled) != flags[item.id]
    ]


def reconcile_planner(session: Session, planner: Planner) -> int:
    """
    Rebuild every item flag of a planner from its references.

    Returns the number of items whose flags had drifted. Commits.
    """
    drift = flag_drift(session, planner)
    for item, expected in drift:
        logger.warning(
            f"Item {item.id} flags drifted: "
            f"priority {item.is_priority}->{expected.is_priority}, "
            f"scheduled {item.is_scheduled}->{expected.is_scheduled}"
        )
        item.is_priority, item.is_scheduled = expected
        session.add(item)

    session.commit()
    return len(drift)


def repair_planner(session: Session, ctx: RequestContext, day) -> int:
    """Run the repair pass on the caller's planner for ``day``."""
    planner = store.get_or_create_planner(session, ctx, day)
    with store_errors(session, f"repair planner for {day}"):
        return reconcile_planner(session, planner)


def reconcile_all(session: Session) -> dict:
    """
    Repair pass over every planner of every user.

    Used by the background job and the maintenance script; not exposed
    through the API.
    """
    stats = {"planners": 0, "corrected": 0}
    with store_errors(session, "repair all planners"):
        for planner in session.exec(select(Planner)).all():
            stats["planners"] += 1
            stats["corrected"] += reconcile_planner(session, planner)
    return stats


# Items


def create_item(
    session: Session,
    ctx: RequestContext,
    planner_id: UUID,
    text: str,
    sequence: int | None = None,
) -> Item:
    """Capture a brain dump item, appended after the last one by default."""
    text = text.strip()
    if not text:
        raise ConstraintViolation("Item text cannot be empty")

    with store_errors(session, "create item"):
        planner = store.get_planner(session, ctx, planner_id)
        if sequence is None:
            sequence = store.next_sequence(session, planner.id)
        elif store.sequence_holder(session, planner.id, sequence) is not None:
            raise ConstraintViolation(f"Sequence {sequence} is already used in this planner")

        item = Item(
            planner_id=planner.id,
            user_id=planner.user_id,
            text=text,
            sequence=sequence,
        )
        session.add(item)
        session.commit()
        session.refresh(item)
    return item


def update_item(session: Session, ctx: RequestContext, item_id: UUID, updates: ItemUpdate) -> Item:
    """Edit text, completion or sequence of an item. Flags are not editable."""
    data = updates.model_dump(exclude_unset=True, exclude_none=True)

    with store_errors(session, f"update item {item_id}"):
        item = store.get_owned(session, ctx, Item, item_id)

        if "text" in data:
            text = data["text"].strip()
            if not text:
                raise ConstraintViolation("Item text cannot be empty")
            item.text = text
        if "is_completed" in data:
            item.is_completed = data["is_completed"]
        if "sequence" in data and data["sequence"] != item.sequence:
            holder = store.sequence_holder(session, item.planner_id, data["sequence"])
            if holder is not None and holder.id != item.id:
                raise ConstraintViolation(
                    f"Sequence {data['sequence']} is already used in this planner"
                )
            item.sequence = data["sequence"]

        touch(item)
        session.add(item)
        session.commit()
        session.refresh(item)
    return item


def delete_item(session: Session, ctx: RequestContext, item_id: UUID) -> None:
    """
    Delete an item, clearing every reference to it.

    Priorities and time blocks that showed the item are kept with empty
    content and render as a missing-reference placeholder.
    """
    with store_errors(session, f"delete item {item_id}"):
        item = store.get_owned(session, ctx, Item, item_id)
        priorities, blocks = store.references_to_item(session, item.id)
        for row in [*priorities, *blocks]:
            apply_content(row, None)
            touch(row)
            session.add(row)
        session.flush()

        session.delete(item)
        session.commit()

    logger.info(
        f"Deleted item {item_id}, cleared {len(priorities)} priority and "
        f"{len(blocks)} time block reference(s)"
    )


def _resolve_moves(
    candidates: dict[UUID, tuple[Item, int]], holders: dict[UUID, Item | None]
) -> set[UUID]:
    """Drop moves whose target sequence stays held by an item that is not moving."""
    moving = set(candidates)
    changed = True
    while changed:
        changed = False
        for item_id in list(moving):
            holder = holders[item_id]
            if holder is not None and holder.id != item_id and holder.id not in moving:
                moving.discard(item_id)
                changed = True
    return moving


def reorder_items(
    session: Session, ctx: RequestContext, entries: Iterable[tuple[UUID, int]]
) -> None:
    """
    Apply new sequence values to items of one planner.

    Each row is checked on its own. Rows that name an unknown item, an item
    of another planner than the batch's, or a sequence kept by an item
    outside the batch are skipped; the rest are written and an
    AggregateFailure names the skipped ids.
    """
    entries = list(entries)
    user_id = ctx.require_user()
    ids = [item_id for item_id, _ in entries]
    sequences = [sequence for _, sequence in entries]
    if len(set(ids)) != len(ids):
        raise ConstraintViolation("An item appears more than once in the reorder request")
    if len(set(sequences)) != len(sequences):
        raise ConstraintViolation("Two items cannot share a sequence")
    if not entries:
        return

    failed: list[UUID] = []
    with store_errors(session, "reorder items"):
        planner_id = None
        candidates: dict[UUID, tuple[Item, int]] = {}
        for item_id, sequence in entries:
            item = session.get(Item, item_id)
            if item is None or item.user_id != user_id:
                logger.warning(f"Reorder skipped item {item_id}: not found")
                failed.append(item_id)
                continue
            if planner_id is None:
                planner_id = item.planner_id
            elif item.planner_id != planner_id:
                logger.warning(f"Reorder skipped item {item_id}: belongs to another planner")
                failed.append(item_id)
                continue
            candidates[item_id] = (item, sequence)

        holders = {
            item_id: store.sequence_holder(session, item.planner_id, sequence)
            for item_id, (item, sequence) in candidates.items()
        }
        moving = _resolve_moves(candidates, holders)
        for item_id in candidates:
            if item_id not in moving:
                logger.warning(f"Reorder skipped item {item_id}: sequence is taken")
                failed.append(item_id)

        for item_id in moving:
            item, sequence = candidates[item_id]
            item.sequence = sequence
            touch(item)
            session.add(item)
        session.commit()

    if failed:
        logger.error(f"Failed to reorder {len(failed)} of {len(entries)} items")
        raise AggregateFailure("Failed to reorder items", failed)
    logger.info(f"Reordered {len(entries)} items")


# Priorities


def _check_slot(slot: int) -> None:
    if slot not in PRIORITY_SLOTS:
        raise ConstraintViolation(f"Priority slot must be one of {PRIORITY_SLOTS}, got {slot}")


def _release_item(session: Session, planner_id: UUID, item_id: UUID, keep: Priority | None) -> None:
    """Remove ``item_id`` from any slot other than ``keep``; an item holds one slot."""
    holder = store.find_priority_by_item(session, planner_id, item_id)
    if holder is not None and holder is not keep:
        logger.info(f"Moving item {item_id} out of slot {holder.slot}")
        session.delete(holder)
        session.flush()


def _set_slot_content(session: Session, planner: Planner, slot: int, content: Content) -> Priority:
    existing = store.find_priority_by_slot(session, planner.id, slot)
    if existing is not None and row_content(existing) == content:
        return existing

    new_item_id = referenced_item_id(content)
    if new_item_id is not None:
        _release_item(session, planner.id, new_item_id, keep=existing)

    priority, previous = store.upsert_priority(session, planner, slot, content)
    refresh_item_flags(session, [new_item_id, referenced_item_id(previous)])
    session.commit()
    session.refresh(priority)
    return priority


def assign_priority(
    session: Session, ctx: RequestContext, planner_id: UUID, slot: int, item_id: UUID
) -> Priority:
    """
    Put an item into a priority slot, replacing what the slot held.

    The newly assigned item becomes a priority; the previous occupant loses
    the flag unless another slot still holds it. Assigning the item that
    already fills the slot changes nothing.
    """
    _check_slot(slot)
    with store_errors(session, f"assign item {item_id} to slot {slot}"):
        planner = store.get_planner(session, ctx, planner_id)
        store.require_item_in_planner(session, ctx, planner.id, item_id)
        priority = _set_slot_content(session, planner, slot, ItemReference(item_id))

    logger.info(f"Priority slot {slot} -> item {item_id}")
    return priority


def set_priority_text(
    session: Session, ctx: RequestContext, planner_id: UUID, slot: int, text: str
) -> Priority:
    """Fill a priority slot with custom text, dropping any item it held."""
    _check_slot(slot)
    text = text.strip()
    if not text:
        raise ConstraintViolation("Priority text cannot be empty")

    with store_errors(session, f"set text of slot {slot}"):
        planner = store.get_planner(session, ctx, planner_id)
        return _set_slot_content(session, planner, slot, CustomText(text))


def update_priority(
    session: Session, ctx: RequestContext, priority_id: UUID, updates: PriorityUpdate
) -> Priority:
    """Change the content or completion of an occupied slot."""
    data = updates.model_dump(exclude_unset=True)

    with store_errors(session, f"update priority {priority_id}"):
        priority = store.get_owned(session, ctx, Priority, priority_id)
        current = row_content(priority)
        content = content_from_updates(current, data)

        affected: set[UUID | None] = set()
        if content != current:
            new_item_id = referenced_item_id(content)
            if new_item_id is not None:
                store.require_item_in_planner(session, ctx, priority.planner_id, new_item_id)
                _release_item(session, priority.planner_id, new_item_id, keep=priority)
            affected = {referenced_item_id(current), new_item_id}
            apply_content(priority, content)

        if data.get("is_completed") is not None:
            priority.is_completed = data["is_completed"]

        touch(priority)
        session.add(priority)
        refresh_item_flags(session, affected)
        session.commit()
        session.refresh(priority)
    return priority


def delete_priority(session: Session, ctx: RequestContext, priority_id: UUID) -> None:
    """Clear a slot."""
    with store_errors(session, f"delete priority {priority_id}"):
        priority = store.get_owned(session, ctx, Priority, priority_id)
        item_id = priority.item_id
        session.delete(priority)
        refresh_item_flags(session, [item_id])
        session.commit()


def reorder_priority_slots(
    session: Session,
    ctx: RequestContext,
    planner_id: UUID,
    moves: Iterable[tuple[UUID, int]],
) -> None:
    """
    Move priorities to new slots in one transaction.

    Swapping two occupied slots needs both rows moved together: each row is
    first parked on a negative slot number, then placed on its target, so no
    two rows ever share a slot. Flags are unaffected.
    """
    moves = list(moves)
    ids = [priority_id for priority_id, _ in moves]
    targets = [slot for _, slot in moves]
    for slot in targets:
        _check_slot(slot)
    if len(set(ids)) != len(ids):
        raise ConstraintViolation("A priority appears more than once in the slot mapping")
    if len(set(targets)) != len(targets):
        raise ConstraintViolation("Two priorities cannot move to the same slot")

    with store_errors(session, "reorder priority slots"):
        planner = store.get_planner(session, ctx, planner_id)
        if not moves:
            return

        rows: dict[UUID, Priority] = {}
        for priority_id in ids:
            priority = store.get_owned(session, ctx, Priority, priority_id)
            if priority.planner_id != planner.id:
                raise NotFound("Priority", priority_id)
            rows[priority_id] = priority

        occupied = {
            p.slot for p in store.list_priorities(session, planner.id) if p.id not in rows
        }
        clash = occupied & set(targets)
        if clash:
            raise ConstraintViolation(
                f"Slot(s) {sorted(clash)} are held by priorities outside the mapping"
            )

        for offset, priority in enumerate(rows.values(), start=1):
            priority.slot = -offset
            session.add(priority)
        session.flush()

        for priority_id, slot in moves:
            priority = rows[priority_id]
            priority.slot = slot
            touch(priority)
            session.add(priority)
        session.commit()

    logger.info(f"Reordered priority slots: {[(str(i), s) for i, s in moves]}")


# Time blocks


def _check_span(start: time, end: time) -> None:
    if end <= start:
        raise ConstraintViolation("end_time must be after start_time")


def create_time_block(
    session: Session, ctx: RequestContext, planner_id: UUID, data: TimeBlockCreate
) -> TimeBlock:
    """Schedule a block showing an item or custom text. Overlaps are allowed."""
    _check_span(data.start_time, data.end_time)
    content = content_from_columns(data.item_id, data.custom_text)
    if content is None:
        raise ConstraintViolation("Time block must reference an item or carry custom text")

    with store_errors(session, "create time block"):
        planner = store.get_planner(session, ctx, planner_id)
        item_id = referenced_item_id(content)
        if item_id is not None:
            store.require_item_in_planner(session, ctx, planner.id, item_id)

        block = TimeBlock(
            planner_id=planner.id,
            user_id=planner.user_id,
            start_time=data.start_time,
            end_time=data.end_time,
            color_tag=data.color_tag,
            notes=data.notes,
        )
        apply_content(block, content)
        session.add(block)
        refresh_item_flags(session, [item_id])
        session.commit()
        session.refresh(block)
    return block


def update_time_block(
    session: Session, ctx: RequestContext, block_id: UUID, updates: TimeBlockUpdate
) -> TimeBlock:
    """Edit, move, resize or toggle a block; reference changes are reconciled."""
    data = updates.model_dump(exclude_unset=True)

    with store_errors(session, f"update time block {block_id}"):
        block = store.get_owned(session, ctx, TimeBlock, block_id)

        start = data.get("start_time") or block.start_time
        end = data.get("end_time") or block.end_time
        _check_span(start, end)
        block.start_time, block.end_time = start, end

        current = row_content(block)
        content = content_from_updates(current, data)
        affected: set[UUID | None] = set()
        if content != current:
            new_item_id = referenced_item_id(content)
            if new_item_id is not None:
                store.require_item_in_planner(session, ctx, block.planner_id, new_item_id)
            affected = {referenced_item_id(current), new_item_id}
            apply_content(block, content)

        if data.get("color_tag") is not None:
            block.color_tag = data["color_tag"]
        if "notes" in data:
            block.notes = data["notes"]
        if data.get("is_completed") is not None:
            block.is_completed = data["is_completed"]

        touch(block)
        session.add(block)
        refresh_item_flags(session, affected)
        session.commit()
        session.refresh(block)
    return block


def delete_time_block(session: Session, ctx: RequestContext, block_id: UUID) -> None:
    with store_errors(session, f"delete time block {block_id}"):
        block = store.get_owned(session, ctx, TimeBlock, block_id)
        item_id = block.item_id
        session.delete(block)
        refresh_item_flags(session, [item_id])
        session.commit()
