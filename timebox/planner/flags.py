"""Derived reference flags.

``is_priority`` and ``is_scheduled`` on an Item are a cache of this pure
function over the current priorities and time blocks. The server uses it for
the repair pass and the client uses it to rederive flags on every snapshot.
"""
from collections.abc import Iterable
from typing import NamedTuple, Protocol
from uuid import UUID


class ReferenceFlags(NamedTuple):
    is_priority: bool
    is_scheduled: bool


class References(Protocol):
    item_id: UUID | None


def derive_reference_flags(
    item_ids: Iterable[UUID],
    priorities: Iterable[References],
    time_blocks: Iterable[References],
) -> dict[UUID, ReferenceFlags]:
    """Compute the flags of each item from the references held on it.

    Only the references passed in count, so callers must pass the priorities
    and time blocks of the same planner as the items.
    """
    prioritized = {p.item_id for p in priorities if p.item_id is not None}
    scheduled = {b.item_id for b in time_blocks if b.item_id is not None}
    return {
        item_id: ReferenceFlags(item_id in prioritized, item_id in scheduled)
        for item_id in item_ids
    }
