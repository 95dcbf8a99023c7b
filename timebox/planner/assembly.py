"""Assemble a planner day into a single snapshot for display."""
import logging
from datetime import date

from sqlmodel import Session

from timebox.core.identity import RequestContext
from timebox.models import Item, Planner, Priority, TimeBlock
from timebox.models.item import ItemRead
from timebox.models.planner import FullPlannerRead, PlannerStats
from timebox.models.priority import PriorityRead
from timebox.models.time_block import TimeBlockRead
from timebox.planner import store
from timebox.planner.store import store_errors
from timebox.planner.timeutils import duration_minutes

logger = logging.getLogger(__name__)


def compute_stats(
    items: list[Item], priorities: list[Priority], time_blocks: list[TimeBlock]
) -> PlannerStats:
    return PlannerStats(
        total_items=len(items),
        completed_items=sum(1 for i in items if i.is_completed),
        total_priorities=len(priorities),
        completed_priorities=sum(1 for p in priorities if p.is_completed),
        total_time_blocks=len(time_blocks),
        completed_time_blocks=sum(1 for b in time_blocks if b.is_completed),
        scheduled_minutes=sum(duration_minutes(b.start_time, b.end_time) for b in time_blocks),
    )


def with_item(session: Session, row: Priority | TimeBlock) -> PriorityRead | TimeBlockRead:
    """Serialize a single priority or time block with its item attached."""
    read_model = PriorityRead if isinstance(row, Priority) else TimeBlockRead
    item = session.get(Item, row.item_id) if row.item_id is not None else None
    return read_model.model_validate(
        row, update={"item": ItemRead.model_validate(item) if item is not None else None}
    )


def build_snapshot(session: Session, planner: Planner) -> FullPlannerRead:
    """
    Load every collection of a planner and join item payloads in.

    Items come ordered by sequence, priorities by slot and time blocks by
    start time. Each priority and time block gets the Item it references
    attached as ``item``; a reference that no longer resolves to an item of
    this planner yields ``item=None`` instead of failing the snapshot.
    """
    items = store.list_items(session, planner.id)
    priorities = store.list_priorities(session, planner.id)
    time_blocks = store.list_time_blocks(session, planner.id)

    item_map = {item.id: ItemRead.model_validate(item) for item in items}

    def resolve(item_id):
        if item_id is None:
            return None
        item = item_map.get(item_id)
        if item is None:
            logger.warning(f"Unresolved item reference {item_id} in planner {planner.id}")
        return item

    return FullPlannerRead.model_validate(
        planner,
        update={
            "items": list(item_map.values()),
            "priorities": [
                PriorityRead.model_validate(p, update={"item": resolve(p.item_id)})
                for p in priorities
            ],
            "time_blocks": [
                TimeBlockRead.model_validate(b, update={"item": resolve(b.item_id)})
                for b in time_blocks
            ],
            "stats": compute_stats(items, priorities, time_blocks),
        },
    )


def get_full_planner(session: Session, ctx: RequestContext, day: date) -> FullPlannerRead:
    """Get-or-create the caller's planner for ``day`` and assemble it."""
    planner = store.get_or_create_planner(session, ctx, day)
    with store_errors(session, f"assemble planner for {day}"):
        snapshot = build_snapshot(session, planner)

    logger.debug(
        f"Planner {day} loaded: {len(snapshot.items)} items, "
        f"{len(snapshot.priorities)} priorities, {len(snapshot.time_blocks)} time blocks"
    )
    return snapshot
