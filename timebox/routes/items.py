"""Item routes for managing brain dump items."""
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from timebox.core.database import get_session
from timebox.core.identity import RequestContext, get_request_context
from timebox.models.item import ItemCreate, ItemRead, ItemSequence, ItemUpdate
from timebox.planner import reconcile

router = APIRouter(tags=["items"])


@router.post("/planners/{planner_id}/items", response_model=ItemRead, status_code=201)
async def create_item(
    planner_id: UUID,
    payload: ItemCreate,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Capture a new brain dump item.

    Without an explicit sequence the item goes after the last one.
    """
    return reconcile.create_item(session, ctx, planner_id, payload.text, payload.sequence)


@router.post("/items/reorder", status_code=204)
async def reorder_items(
    entries: list[ItemSequence],
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Apply new sequence values after a drag-and-drop reorder.

    Rows are written independently. If some fail, the others stay written
    and the response is 409 with the failed ids.
    """
    reconcile.reorder_items(session, ctx, [(e.id, e.sequence) for e in entries])
    return Response(status_code=204)


@router.patch("/items/{item_id}", response_model=ItemRead)
async def update_item(
    item_id: UUID,
    payload: ItemUpdate,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Edit the text, completion or sequence of an item."""
    return reconcile.update_item(session, ctx, item_id, payload)


@router.delete("/items/{item_id}", status_code=204)
async def delete_item(
    item_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Delete an item.

    Priorities and time blocks that referenced it are kept with their
    reference cleared.
    """
    reconcile.delete_item(session, ctx, item_id)
    return Response(status_code=204)
