"""Priority routes for the three focus slots."""
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Response
from sqlmodel import Session

from timebox.core.database import get_session
from timebox.core.identity import RequestContext, get_request_context
from timebox.models.priority import (
    PriorityAssign,
    PriorityRead,
    PrioritySlotMove,
    PriorityUpdate,
)
from timebox.planner import assembly, reconcile

router = APIRouter(tags=["priorities"])


@router.put("/planners/{planner_id}/priorities/{slot}", response_model=PriorityRead)
async def assign_priority(
    planner_id: UUID,
    payload: PriorityAssign,
    slot: int = Path(ge=1, le=3),
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Fill a priority slot with an item or custom text.

    An occupied slot is replaced. The replaced item loses its priority flag
    and the new item gains it; an item already in another slot moves here.
    """
    if payload.item_id is not None:
        priority = reconcile.assign_priority(session, ctx, planner_id, slot, payload.item_id)
    else:
        priority = reconcile.set_priority_text(
            session, ctx, planner_id, slot, payload.custom_text
        )
    return assembly.with_item(session, priority)


@router.post("/planners/{planner_id}/priorities/reorder", status_code=204)
async def reorder_priority_slots(
    planner_id: UUID,
    moves: list[PrioritySlotMove],
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Move priorities between slots.

    Swaps must list both priorities; all moves are applied together.
    """
    reconcile.reorder_priority_slots(
        session, ctx, planner_id, [(m.id, m.new_slot) for m in moves]
    )
    return Response(status_code=204)


@router.patch("/priorities/{priority_id}", response_model=PriorityRead)
async def update_priority(
    priority_id: UUID,
    payload: PriorityUpdate,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Toggle completion or change what a slot shows."""
    priority = reconcile.update_priority(session, ctx, priority_id, payload)
    return assembly.with_item(session, priority)


@router.delete("/priorities/{priority_id}", status_code=204)
async def delete_priority(
    priority_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Clear a priority slot."""
    reconcile.delete_priority(session, ctx, priority_id)
    return Response(status_code=204)
