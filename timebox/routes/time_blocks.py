"""Time block routes for the day schedule."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from timebox.core.database import get_session
from timebox.core.identity import RequestContext, get_request_context
from timebox.models.time_block import TimeBlockCreate, TimeBlockRead, TimeBlockUpdate
from timebox.planner import assembly, reconcile

router = APIRouter(tags=["time-blocks"])


@router.post(
    "/planners/{planner_id}/time-blocks", response_model=TimeBlockRead, status_code=201
)
async def create_time_block(
    planner_id: UUID,
    payload: TimeBlockCreate,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Schedule a time block.

    The block shows either an item or custom text. Overlapping blocks are
    accepted.
    """
    block = reconcile.create_time_block(session, ctx, planner_id, payload)
    return assembly.with_item(session, block)


@router.patch("/time-blocks/{block_id}", response_model=TimeBlockRead)
async def update_time_block(
    block_id: UUID,
    payload: TimeBlockUpdate,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Edit, move, resize or toggle a time block."""
    block = reconcile.update_time_block(session, ctx, block_id, payload)
    return assembly.with_item(session, block)


@router.delete("/time-blocks/{block_id}", status_code=204)
async def delete_time_block(
    block_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    reconcile.delete_time_block(session, ctx, block_id)
    return Response(status_code=204)
