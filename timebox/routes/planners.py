"""Planner routes for loading a day."""
from datetime import date

from fastapi import APIRouter, Depends
from sqlmodel import Session

from timebox.core.database import get_session
from timebox.core.identity import RequestContext, get_request_context
from timebox.models.planner import FullPlannerRead, PlannerRead
from timebox.planner import assembly, reconcile, store

router = APIRouter(prefix="/planners", tags=["planners"])


@router.get("/{day}", response_model=PlannerRead)
async def get_planner(
    day: date,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Get the planner for a date.

    The planner is created on first access, so any date can be opened.
    """
    return store.get_or_create_planner(session, ctx, day)


@router.get("/{day}/full", response_model=FullPlannerRead)
async def get_full_planner(
    day: date,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Get the planner for a date with items, priorities and time blocks.

    Priorities and time blocks carry the item they reference under ``item``.
    """
    return assembly.get_full_planner(session, ctx, day)


@router.post("/{day}/reconcile")
async def reconcile_planner(
    day: date,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """
    Rebuild the derived item flags of a planner.

    Returns how many items had flags that disagreed with their references.
    """
    corrected = reconcile.repair_planner(session, ctx, day)
    return {"date": day.isoformat(), "corrected": corrected}
