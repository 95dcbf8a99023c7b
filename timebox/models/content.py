"""Either/or content shared by priorities and time blocks.

Priorities and time blocks show either an Item from the brain dump or a
piece of custom text, never both. Storage uses two nullable columns
(``item_id`` and ``custom_text``); the planner logic works with the tagged
variant defined here so the rule cannot be broken by assigning one column and
forgetting the other.

``None`` is the cleared state: the referenced item was deleted and the row
renders as a missing-reference placeholder.
"""
from dataclasses import dataclass
from typing import Any, Protocol, Union
from uuid import UUID

from timebox.core.errors import ConstraintViolation


@dataclass(frozen=True)
class ItemReference:
    item_id: UUID


@dataclass(frozen=True)
class CustomText:
    text: str


Content = Union[ItemReference, CustomText, None]


class HasContent(Protocol):
    item_id: UUID | None
    custom_text: str | None


def _clean_text(text: str | None) -> str | None:
    if text is None:
        return None
    text = text.strip()
    return text or None


def content_from_columns(item_id: UUID | None, custom_text: str | None) -> Content:
    """Build the variant from the stored columns."""
    custom_text = _clean_text(custom_text)
    if item_id is not None and custom_text is not None:
        raise ConstraintViolation("Content cannot reference an item and carry custom text")
    if item_id is not None:
        return ItemReference(item_id)
    if custom_text is not None:
        return CustomText(custom_text)
    return None


def content_to_columns(content: Content) -> tuple[UUID | None, str | None]:
    """Translate the variant into ``(item_id, custom_text)``."""
    if isinstance(content, ItemReference):
        return content.item_id, None
    if isinstance(content, CustomText):
        return None, content.text
    return None, None


def row_content(row: HasContent) -> Content:
    return content_from_columns(row.item_id, row.custom_text)


def apply_content(row: HasContent, content: Content) -> None:
    """Write the variant onto a row, always clearing the other column."""
    row.item_id, row.custom_text = content_to_columns(content)


def referenced_item_id(content: Content) -> UUID | None:
    if isinstance(content, ItemReference):
        return content.item_id
    return None


def content_from_updates(current: Content, updates: dict[str, Any]) -> Content:
    """Resolve a partial update of ``item_id`` / ``custom_text``.

    Setting either side replaces the content and clears the other side.
    Keys absent from ``updates`` leave ``current`` untouched. Nulling the
    side that is set, without setting the other, is rejected: an occupied
    priority or time block always shows something.
    """
    if "item_id" not in updates and "custom_text" not in updates:
        return current

    item_id = updates.get("item_id")
    custom_text = _clean_text(updates.get("custom_text"))

    if item_id is not None and custom_text is not None:
        raise ConstraintViolation("Set either item_id or custom_text, not both")
    if item_id is not None:
        return ItemReference(item_id)
    if custom_text is not None:
        return CustomText(custom_text)
    raise ConstraintViolation("Content must reference an item or carry custom text")
