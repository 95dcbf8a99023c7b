"""Owner-scoped persistence for planners, items, priorities and time blocks.

Every lookup filters by the caller's user id. A row owned by someone else
is reported exactly like a missing row.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from timebox.core.errors import ConstraintViolation, NotFound, PlannerError, StoreError
from timebox.core.identity import RequestContext
from timebox.models import Item, Planner, Priority, TimeBlock
from timebox.models.content import Content, apply_content, row_content

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


def is_unique_violation(error: IntegrityError) -> bool:
    """Tell a duplicate-key failure apart from other integrity errors."""
    orig = error.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == UNIQUE_VIOLATION:
        return True
    return "UNIQUE constraint failed" in str(orig)


@contextmanager
def store_errors(session: Session, action: str) -> Iterator[None]:
    """Translate SQLAlchemy failures raised while doing ``action``.

    Integrity errors become ConstraintViolation, anything else from the
    database becomes StoreError. The session is rolled back on any failure,
    including planner errors raised by the operation itself, so half-applied
    changes are never flushed later.
    """
    try:
        yield
    except PlannerError:
        session.rollback()
        raise
    except IntegrityError as e:
        session.rollback()
        logger.warning(f"Integrity error while trying to {action}: {e.orig}")
        raise ConstraintViolation(f"Could not {action}: conflicting data") from e
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Store failure while trying to {action}: {e}")
        raise StoreError(f"Could not {action}") from e


def touch(row) -> None:
    row.updated_at = datetime.now(UTC)


def get_owned(session: Session, ctx: RequestContext, model, entity_id: UUID):
    """Load a row by id, failing closed unless the caller owns it."""
    user_id = ctx.require_user()
    row = session.get(model, entity_id)
    if row is None or row.user_id != user_id:
        raise NotFound(model.__name__, entity_id)
    return row


# Planners


def find_planner(session: Session, user_id: str, day: date) -> Planner | None:
    statement = (
        select(Planner)
        .where(Planner.user_id == user_id)
        .where(Planner.planner_date == day)
    )
    return session.exec(statement).first()


def get_or_create_planner(session: Session, ctx: RequestContext, day: date) -> Planner:
    """
    Return the caller's planner for ``day``, creating it on first access.

    Two requests opening the same new day can both miss the initial read and
    both insert. The loser's insert trips the (user_id, planner_date) unique
    constraint; that specific failure means the row now exists, so it is
    read again and returned. Any other insert failure is raised.
    """
    user_id = ctx.require_user()

    with store_errors(session, f"load planner for {day}"):
        planner = find_planner(session, user_id, day)
        if planner:
            return planner

        planner = Planner(user_id=user_id, planner_date=day)
        session.add(planner)
        try:
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if not is_unique_violation(e):
                logger.error(f"Failed to create planner for {day}: {e.orig}")
                raise StoreError(f"Failed to create planner for {day}") from e

            logger.warning(f"Race detected creating planner for {day}, re-reading")
            planner = find_planner(session, user_id, day)
            if planner is None:
                raise StoreError(f"Planner for {day} missing after duplicate insert") from e
            return planner

        session.refresh(planner)
        logger.info(f"Created planner {planner.id} for {day}")
        return planner


def get_planner(session: Session, ctx: RequestContext, planner_id: UUID) -> Planner:
    return get_owned(session, ctx, Planner, planner_id)


# Items


def list_items(session: Session, planner_id: UUID) -> list[Item]:
    statement = (
        select(Item)
        .where(Item.planner_id == planner_id)
        .order_by(Item.sequence, Item.created_at)
    )
    return list(session.exec(statement).all())


def next_sequence(session: Session, planner_id: UUID) -> int:
    """One past the highest sequence in the planner, 0 when it is empty."""
    statement = select(func.max(Item.sequence)).where(Item.planner_id == planner_id)
    highest = session.exec(statement).one()
    return 0 if highest is None else highest + 1


def sequence_holder(session: Session, planner_id: UUID, sequence: int) -> Item | None:
    statement = (
        select(Item)
        .where(Item.planner_id == planner_id)
        .where(Item.sequence == sequence)
    )
    return session.exec(statement).first()


def require_item_in_planner(
    session: Session, ctx: RequestContext, planner_id: UUID, item_id: UUID
) -> Item:
    """Load an item that a priority or time block of ``planner_id`` may reference."""
    item = get_owned(session, ctx, Item, item_id)
    if item.planner_id != planner_id:
        raise ConstraintViolation(f"Item {item_id} belongs to a different planner")
    return item


# Priorities


def list_priorities(session: Session, planner_id: UUID) -> list[Priority]:
    statement = (
        select(Priority)
        .where(Priority.planner_id == planner_id)
        .order_by(Priority.slot)
    )
    return list(session.exec(statement).all())


def find_priority_by_slot(session: Session, planner_id: UUID, slot: int) -> Priority | None:
    statement = (
        select(Priority)
        .where(Priority.planner_id == planner_id)
        .where(Priority.slot == slot)
    )
    return session.exec(statement).first()


def find_priority_by_item(session: Session, planner_id: UUID, item_id: UUID) -> Priority | None:
    statement = (
        select(Priority)
        .where(Priority.planner_id == planner_id)
        .where(Priority.item_id == item_id)
    )
    return session.exec(statement).first()


def upsert_priority(
    session: Session, planner: Planner, slot: int, content: Content
) -> tuple[Priority, Content]:
    """
    Insert or replace the content of a slot.

    Returns the row and the content it held before (None for a new row).
    Replacing content resets completion, since the slot now shows something
    else.
    """
    priority = find_priority_by_slot(session, planner.id, slot)
    previous = None
    if priority is None:
        priority = Priority(planner_id=planner.id, user_id=planner.user_id, slot=slot)
    else:
        previous = row_content(priority)
        priority.is_completed = False
        touch(priority)

    apply_content(priority, content)
    session.add(priority)
    return priority, previous


# Time blocks


def list_time_blocks(session: Session, planner_id: UUID) -> list[TimeBlock]:
    statement = (
        select(TimeBlock)
        .where(TimeBlock.planner_id == planner_id)
        .order_by(TimeBlock.start_time, TimeBlock.end_time)
    )
    return list(session.exec(statement).all())


def references_to_item(session: Session, item_id: UUID) -> tuple[list[Priority], list[TimeBlock]]:
    priorities = session.exec(select(Priority).where(Priority.item_id == item_id)).all()
    blocks = session.exec(select(TimeBlock).where(TimeBlock.item_id == item_id)).all()
    return list(priorities), list(blocks)
