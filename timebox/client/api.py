"""HTTP client for the planner API."""
import logging
from datetime import date, time
from uuid import UUID

import httpx

from timebox.core.config import settings
from timebox.models.item import ItemCreate, ItemRead, ItemUpdate
from timebox.models.planner import FullPlannerRead, PlannerRead
from timebox.models.priority import PriorityAssign, PriorityRead, PriorityUpdate
from timebox.models.time_block import (
    ColorTag,
    TimeBlockCreate,
    TimeBlockRead,
    TimeBlockUpdate,
)

logger = logging.getLogger(__name__)


class PlannerClientError(Exception):
    """A planner API call failed.

    Attributes:
        status_code: HTTP status, or 0 when the request never got a response.
        detail: Message from the server or the transport.
        failed_ids: Ids named by a partial bulk failure.
    """

    def __init__(self, status_code: int, detail: str, failed_ids: list[UUID] | None = None):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.failed_ids = failed_ids or []


class PlannerApiClient:
    """Thin typed wrapper over the JSON API.

    Takes any ``httpx.Client``; FastAPI's TestClient works too.
    """

    def __init__(self, http: httpx.Client):
        self._http = http

    @classmethod
    def from_url(
        cls,
        base_url: str,
        user_id: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> "PlannerApiClient":
        http = httpx.Client(
            base_url=base_url,
            headers={settings.user_id_header: user_id},
            timeout=timeout,
            transport=transport,
        )
        return cls(http)

    def _request(self, method: str, url: str, json=None) -> httpx.Response:
        try:
            response = self._http.request(method, url, json=json)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise PlannerClientError(0, str(e)) from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            detail = body.get("detail", response.text)
            failed_ids = [UUID(i) for i in body.get("failed_ids", [])]
            raise PlannerClientError(response.status_code, str(detail), failed_ids)
        return response

    # Planners

    def get_planner(self, day: date) -> PlannerRead:
        response = self._request("GET", f"/planners/{day.isoformat()}")
        return PlannerRead.model_validate(response.json())

    def get_full_planner(self, day: date) -> FullPlannerRead:
        response = self._request("GET", f"/planners/{day.isoformat()}/full")
        return FullPlannerRead.model_validate(response.json())

    def reconcile(self, day: date) -> int:
        response = self._request("POST", f"/planners/{day.isoformat()}/reconcile")
        return response.json()["corrected"]

    # Items

    def create_item(self, planner_id: UUID, text: str, sequence: int | None = None) -> ItemRead:
        payload = ItemCreate(text=text, sequence=sequence).model_dump(mode="json", exclude_none=True)
        response = self._request("POST", f"/planners/{planner_id}/items", json=payload)
        return ItemRead.model_validate(response.json())

    def update_item(self, item_id: UUID, **fields) -> ItemRead:
        payload = ItemUpdate(**fields).model_dump(mode="json", exclude_unset=True)
        response = self._request("PATCH", f"/items/{item_id}", json=payload)
        return ItemRead.model_validate(response.json())

    def delete_item(self, item_id: UUID) -> None:
        self._request("DELETE", f"/items/{item_id}")

    def reorder_items(self, entries: list[tuple[UUID, int]]) -> None:
        payload = [{"id": str(item_id), "sequence": sequence} for item_id, sequence in entries]
        self._request("POST", "/items/reorder", json=payload)

    # Priorities

    def assign_priority(self, planner_id: UUID, slot: int, item_id: UUID) -> PriorityRead:
        payload = PriorityAssign(item_id=item_id).model_dump(mode="json", exclude_none=True)
        response = self._request("PUT", f"/planners/{planner_id}/priorities/{slot}", json=payload)
        return PriorityRead.model_validate(response.json())

    def set_priority_text(self, planner_id: UUID, slot: int, text: str) -> PriorityRead:
        payload = PriorityAssign(custom_text=text).model_dump(mode="json", exclude_none=True)
        response = self._request("PUT", f"/planners/{planner_id}/priorities/{slot}", json=payload)
        return PriorityRead.model_validate(response.json())

    def update_priority(self, priority_id: UUID, **fields) -> PriorityRead:
        payload = PriorityUpdate(**fields).model_dump(mode="json", exclude_unset=True)
        response = self._request("PATCH", f"/priorities/{priority_id}", json=payload)
        return PriorityRead.model_validate(response.json())

    def delete_priority(self, priority_id: UUID) -> None:
        self._request("DELETE", f"/priorities/{priority_id}")

    def reorder_priority_slots(self, planner_id: UUID, moves: list[tuple[UUID, int]]) -> None:
        payload = [{"id": str(priority_id), "new_slot": slot} for priority_id, slot in moves]
        self._request("POST", f"/planners/{planner_id}/priorities/reorder", json=payload)

    # Time blocks

    def create_time_block(
        self,
        planner_id: UUID,
        start_time: time,
        end_time: time,
        item_id: UUID | None = None,
        custom_text: str | None = None,
        color_tag: ColorTag = ColorTag.BLUE,
        notes: str | None = None,
    ) -> TimeBlockRead:
        payload = TimeBlockCreate(
            start_time=start_time,
            end_time=end_time,
            item_id=item_id,
            custom_text=custom_text,
            color_tag=color_tag,
            notes=notes,
        ).model_dump(mode="json", exclude_none=True)
        response = self._request("POST", f"/planners/{planner_id}/time-blocks", json=payload)
        return TimeBlockRead.model_validate(response.json())

    def update_time_block(self, block_id: UUID, **fields) -> TimeBlockRead:
        payload = TimeBlockUpdate(**fields).model_dump(mode="json", exclude_unset=True)
        response = self._request("PATCH", f"/time-blocks/{block_id}", json=payload)
        return TimeBlockRead.model_validate(response.json())

    def delete_time_block(self, block_id: UUID) -> None:
        self._request("DELETE", f"/time-blocks/{block_id}")
