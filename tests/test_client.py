"""Tests for the API client, drag classification and optimistic coordinator."""

from datetime import UTC, date, datetime, time
from uuid import uuid4

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from timebox.client.api import PlannerApiClient, PlannerClientError
from timebox.client.dnd import DragEvent, DragIntent, DragKind, DragTarget, classify_drag
from timebox.client.optimistic import (
    InvalidTransition,
    MutationState,
    PendingMutation,
    PlannerCoordinator,
)
from timebox.core.identity import RequestContext
from timebox.models import Item, Planner
from timebox.models.item import ItemRead
from timebox.models.planner import FullPlannerRead
from timebox.models.priority import PriorityRead
from timebox.planner import reconcile


@pytest.fixture(name="api")
def api_fixture(client: TestClient) -> PlannerApiClient:
    return PlannerApiClient(client)


@pytest.fixture(name="failures")
def failures_fixture() -> list[str]:
    return []


@pytest.fixture(name="coordinator")
def coordinator_fixture(
    api: PlannerApiClient, planner: Planner, items: list[Item], failures: list[str]
) -> PlannerCoordinator:
    coordinator = PlannerCoordinator(api, planner.planner_date, on_failure=failures.append)
    coordinator.load()
    return coordinator


class RejectingBackend:
    """Serves snapshots from the real API but refuses every mutation."""

    def __init__(self, api: PlannerApiClient):
        self.api = api
        self.calls = []

    def get_full_planner(self, day):
        return self.api.get_full_planner(day)

    def __getattr__(self, name):
        def reject(*args, **kwargs):
            self.calls.append(name)
            raise PlannerClientError(503, "Could not reach the database")

        return reject


def item_target(item: Item) -> DragTarget:
    return DragTarget(DragKind.ITEM, str(item.id))


class TestClassifyDrag:
    def test_known_pairs(self):
        assert classify_drag(DragKind.ITEM, DragKind.ITEM) is DragIntent.ITEM_REORDER
        assert classify_drag(DragKind.ITEM, DragKind.PRIORITY_SLOT) is DragIntent.ITEM_TO_PRIORITY
        assert (
            classify_drag(DragKind.PRIORITY_SLOT, DragKind.PRIORITY_SLOT)
            is DragIntent.PRIORITY_REORDER
        )
        assert classify_drag(DragKind.ITEM, DragKind.TIME_SLOT) is DragIntent.ITEM_TO_TIMESLOT

    def test_plain_strings(self):
        assert classify_drag("brain-dump-item", "time-slot") is DragIntent.ITEM_TO_TIMESLOT

    def test_unknown_pairs(self):
        assert classify_drag(DragKind.PRIORITY_SLOT, DragKind.ITEM) is None
        assert classify_drag(DragKind.TIME_SLOT, DragKind.PRIORITY_SLOT) is None
        assert classify_drag("calendar-event", DragKind.ITEM) is None


class TestApiClient:
    """Tests for PlannerApiClient against a mocked transport."""

    def test_sends_identity_header(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["user"] = request.headers.get("X-User-Id")
            seen["path"] = request.url.path
            return httpx.Response(
                200,
                json={
                    "id": str(uuid4()),
                    "user_id": "user_1",
                    "planner_date": "2025-06-01",
                    "created_at": "2025-06-01T08:00:00",
                    "updated_at": "2025-06-01T08:00:00",
                },
            )

        api = PlannerApiClient.from_url(
            "http://planner.test", "user_1", transport=httpx.MockTransport(handler)
        )
        planner = api.get_planner(date(2025, 6, 1))

        assert planner.planner_date == date(2025, 6, 1)
        assert seen == {"user": "user_1", "path": "/planners/2025-06-01"}

    def test_partial_failure_carries_ids(self):
        failed = uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                409,
                json={
                    "detail": "Failed to reorder items (1 failed)",
                    "error": "aggregate_failure",
                    "failed_ids": [str(failed)],
                },
            )

        api = PlannerApiClient.from_url(
            "http://planner.test", "user_1", transport=httpx.MockTransport(handler)
        )

        with pytest.raises(PlannerClientError) as exc_info:
            api.reorder_items([(uuid4(), 0), (failed, 1)])

        assert exc_info.value.status_code == 409
        assert exc_info.value.failed_ids == [failed]

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        api = PlannerApiClient.from_url(
            "http://planner.test", "user_1", transport=httpx.MockTransport(handler)
        )

        with pytest.raises(PlannerClientError) as exc_info:
            api.get_full_planner(date(2025, 6, 1))

        assert exc_info.value.status_code == 0

    def test_non_json_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad gateway")

        api = PlannerApiClient.from_url(
            "http://planner.test", "user_1", transport=httpx.MockTransport(handler)
        )

        with pytest.raises(PlannerClientError) as exc_info:
            api.delete_item(uuid4())

        assert exc_info.value.status_code == 502
        assert exc_info.value.detail == "Bad gateway"

    def test_round_trip_against_app(self, api: PlannerApiClient):
        planner = api.get_planner(date(2025, 6, 1))
        item = api.create_item(planner.id, "Plan sprint")
        priority = api.assign_priority(planner.id, 1, item.id)
        block = api.create_time_block(planner.id, time(9, 0), time(9, 30), item_id=item.id)

        snapshot = api.get_full_planner(date(2025, 6, 1))

        assert priority.item.text == "Plan sprint"
        assert block.item.is_scheduled is True
        assert snapshot.items[0].is_priority is True
        assert snapshot.items[0].is_scheduled is True


class TestMutationState:
    def _snapshot(self) -> FullPlannerRead:
        now = datetime.now(UTC)
        return FullPlannerRead(
            id=uuid4(),
            user_id="user_1",
            planner_date=date(2025, 6, 1),
            created_at=now,
            updated_at=now,
        )

    def test_confirm_path(self):
        mutation = PendingMutation("toggle-item", self._snapshot())
        mutation.transition(MutationState.APPLIED_LOCALLY)
        mutation.transition(MutationState.CONFIRMED)
        assert mutation.finished

    def test_revert_path(self):
        mutation = PendingMutation("toggle-item", self._snapshot())
        mutation.transition(MutationState.APPLIED_LOCALLY)
        mutation.transition(MutationState.REJECTED)
        assert not mutation.finished
        mutation.transition(MutationState.REVERTED)
        assert mutation.finished

    def test_illegal_transitions(self):
        mutation = PendingMutation("toggle-item", self._snapshot())
        with pytest.raises(InvalidTransition):
            mutation.transition(MutationState.CONFIRMED)

        mutation.transition(MutationState.APPLIED_LOCALLY)
        mutation.transition(MutationState.CONFIRMED)
        with pytest.raises(InvalidTransition):
            mutation.transition(MutationState.REJECTED)


class TestCoordinator:
    """Tests for optimistic mutations against the real app."""

    def test_load(self, coordinator: PlannerCoordinator, planner: Planner):
        assert coordinator.planner_id == planner.id
        assert [i.text for i in coordinator.view.items] == ["Item A", "Item B", "Item C"]

    def test_mutation_before_load(self, api: PlannerApiClient):
        coordinator = PlannerCoordinator(api, date(2025, 6, 1))
        with pytest.raises(RuntimeError):
            coordinator.toggle_item_complete(uuid4(), True)

    def test_drag_reorder(self, coordinator: PlannerCoordinator, items: list[Item]):
        a, b, c = items

        mutation = coordinator.handle_drag(DragEvent(item_target(c), item_target(a)))

        assert mutation.state is MutationState.CONFIRMED
        assert [i.text for i in coordinator.view.items] == ["Item C", "Item A", "Item B"]
        assert [i.sequence for i in coordinator.view.items] == [0, 1, 2]

    def test_drag_to_priority_slot(self, coordinator: PlannerCoordinator, items: list[Item]):
        over = DragTarget(DragKind.PRIORITY_SLOT, "priority-slot-2", slot=2)

        mutation = coordinator.handle_drag(DragEvent(item_target(items[1]), over))

        assert mutation.state is MutationState.CONFIRMED
        slot = coordinator.view.priority_in_slot(2)
        assert slot.item_id == items[1].id
        assert slot.item.text == "Item B"
        assert coordinator.view.item(items[1].id).is_priority is True

    def test_assign_same_item_again_is_noop(
        self, coordinator: PlannerCoordinator, items: list[Item]
    ):
        coordinator.assign_to_slot(items[0].id, 1)
        assert coordinator.assign_to_slot(items[0].id, 1) is None

    def test_drag_swaps_priorities(self, coordinator: PlannerCoordinator, items: list[Item]):
        coordinator.assign_to_slot(items[0].id, 1)
        coordinator.assign_to_slot(items[1].id, 2)

        mutation = coordinator.handle_drag(
            DragEvent(
                DragTarget(DragKind.PRIORITY_SLOT, "p1", slot=1),
                DragTarget(DragKind.PRIORITY_SLOT, "p2", slot=2),
            )
        )

        assert mutation.state is MutationState.CONFIRMED
        assert [p.item_id for p in coordinator.view.priorities] == [items[1].id, items[0].id]

    def test_drag_to_time_slot(self, coordinator: PlannerCoordinator, items: list[Item]):
        over = DragTarget(DragKind.TIME_SLOT, "slot-0900", start=time(9, 0))

        mutation = coordinator.handle_drag(DragEvent(item_target(items[2]), over))

        assert mutation.state is MutationState.CONFIRMED
        block = coordinator.view.time_blocks[0]
        assert (block.start_time, block.end_time) == (time(9, 0), time(10, 0))
        assert block.item_id == items[2].id
        assert coordinator.view.item(items[2].id).is_scheduled is True

    def test_no_room_at_end_of_day(self, coordinator: PlannerCoordinator, items: list[Item]):
        assert coordinator.schedule_item(items[0].id, time(23, 59)) is None
        assert coordinator.view.time_blocks == []

    def test_ignored_drops(self, coordinator: PlannerCoordinator, items: list[Item]):
        assert coordinator.handle_drag(DragEvent(item_target(items[0]), None)) is None
        assert (
            coordinator.handle_drag(
                DragEvent(item_target(items[0]), DragTarget("calendar-event", "x"))
            )
            is None
        )
        assert coordinator.history == []

    def test_toggles(self, coordinator: PlannerCoordinator, items: list[Item]):
        coordinator.assign_to_slot(items[0].id, 1)
        priority = coordinator.view.priority_in_slot(1)

        coordinator.toggle_item_complete(items[1].id, True)
        coordinator.toggle_priority_complete(priority.id, True)

        assert coordinator.view.item(items[1].id).is_completed is True
        assert coordinator.view.priority_in_slot(1).is_completed is True

    def test_server_rejection_reverts(
        self,
        coordinator: PlannerCoordinator,
        session: Session,
        ctx: RequestContext,
        items: list[Item],
        failures: list[str],
    ):
        """The item was deleted elsewhere; assigning it fails and the view reverts."""
        before = coordinator.view
        reconcile.delete_item(session, ctx, items[0].id)

        mutation = coordinator.assign_to_slot(items[0].id, 1)

        assert mutation.state is MutationState.REVERTED
        assert mutation.error.status_code == 404
        assert coordinator.view == before
        assert coordinator.view.priorities == []
        assert len(failures) == 1
        assert failures[0].startswith("Could not save your change")


class TestCoordinatorRollback:
    """Tests for local application and rollback with a refusing server."""

    @pytest.fixture(name="rejecting")
    def rejecting_fixture(
        self, api: PlannerApiClient, planner: Planner, items: list[Item], failures: list[str]
    ) -> PlannerCoordinator:
        coordinator = PlannerCoordinator(
            RejectingBackend(api), planner.planner_date, on_failure=failures.append
        )
        coordinator.load()
        return coordinator

    def test_change_is_applied_before_sending(
        self, api: PlannerApiClient, planner: Planner, items: list[Item]
    ):
        seen = []

        class InspectingBackend(RejectingBackend):
            def assign_priority(self, planner_id, slot, item_id):
                seen.append(coordinator.view.priority_in_slot(slot).item_id)
                seen.append(coordinator.view.item(item_id).is_priority)
                raise PlannerClientError(500, "boom")

        coordinator = PlannerCoordinator(InspectingBackend(api), planner.planner_date)
        coordinator.load()

        mutation = coordinator.assign_to_slot(items[0].id, 1)

        assert seen == [items[0].id, True]
        assert mutation.state is MutationState.REVERTED
        assert coordinator.view.priorities == []
        assert coordinator.view.item(items[0].id).is_priority is False

    def test_reorder_reverts(
        self, rejecting: PlannerCoordinator, items: list[Item], failures: list[str]
    ):
        mutation = rejecting.reorder_item(items[2].id, items[0].id)

        assert mutation.state is MutationState.REVERTED
        assert [i.text for i in rejecting.view.items] == ["Item A", "Item B", "Item C"]
        assert failures == ["Could not save your change: Could not reach the database"]

    def test_rejection_log_names_intent(
        self, rejecting: PlannerCoordinator, items: list[Item], caplog
    ):
        rejecting.reorder_item(items[2].id, items[0].id)

        assert "item-reorder rejected" in caplog.text
        assert "DragIntent" not in caplog.text

    def test_schedule_reverts(self, rejecting: PlannerCoordinator, items: list[Item]):
        mutation = rejecting.schedule_item(items[0].id, time(14, 0))

        assert mutation.state is MutationState.REVERTED
        assert rejecting.view.time_blocks == []
        assert rejecting.view.item(items[0].id).is_scheduled is False
        assert rejecting.backend.calls == ["create_time_block"]

    def test_toggle_reverts(self, rejecting: PlannerCoordinator, items: list[Item]):
        rejecting.toggle_item_complete(items[0].id, True)

        assert rejecting.view.item(items[0].id).is_completed is False
        assert [m.state for m in rejecting.history] == [MutationState.REVERTED]

    def test_refresh_failure_keeps_view(
        self, api: PlannerApiClient, planner: Planner, items: list[Item]
    ):
        coordinator = PlannerCoordinator(api, planner.planner_date)
        coordinator.load()
        before = coordinator.view

        def unreachable(day):
            raise PlannerClientError(0, "connection refused")

        coordinator.backend = RejectingBackend(api)
        coordinator.backend.get_full_planner = unreachable
        coordinator.refresh()

        assert coordinator.view == before

    def test_partial_reorder_adopts_committed_rows(
        self,
        coordinator: PlannerCoordinator,
        session: Session,
        ctx: RequestContext,
        items: list[Item],
        failures: list[str],
    ):
        """Item A was deleted elsewhere; B and C still move on the server."""
        a, b, c = items
        reconcile.delete_item(session, ctx, a.id)

        mutation = coordinator.handle_drag(DragEvent(item_target(c), item_target(b)))

        assert mutation.state is MutationState.REVERTED
        assert mutation.error.status_code == 409
        assert mutation.error.failed_ids == [a.id]
        assert [(i.text, i.sequence) for i in coordinator.view.items] == [
            ("Item C", 1),
            ("Item B", 2),
        ]
        assert coordinator.confirmed.items == coordinator.view.items
        assert len(failures) == 1


class TestLocalFlags:
    """Item flags in the local view come from the lists, not the item payload."""

    def _snapshot(self, is_priority: bool, referenced: bool) -> FullPlannerRead:
        now = datetime.now(UTC)
        planner_id = uuid4()
        item = ItemRead(
            id=uuid4(),
            planner_id=planner_id,
            text="Write report",
            is_completed=False,
            is_priority=is_priority,
            is_scheduled=False,
            sequence=0,
            created_at=now,
            updated_at=now,
        )
        priorities = []
        if referenced:
            priorities.append(
                PriorityRead(
                    id=uuid4(),
                    planner_id=planner_id,
                    slot=1,
                    item_id=item.id,
                    custom_text=None,
                    is_completed=False,
                    created_at=now,
                    updated_at=now,
                )
            )
        return FullPlannerRead(
            id=planner_id,
            user_id="user_1",
            planner_date=date(2025, 6, 1),
            created_at=now,
            updated_at=now,
            items=[item],
            priorities=priorities,
        )

    def test_stale_priority_flag_cleared(self, api: PlannerApiClient):
        coordinator = PlannerCoordinator(api, date(2025, 6, 1))

        coordinator.sync(self._snapshot(is_priority=True, referenced=False))

        assert coordinator.view.items[0].is_priority is False

    def test_missing_priority_flag_set(self, api: PlannerApiClient):
        coordinator = PlannerCoordinator(api, date(2025, 6, 1))

        coordinator.sync(self._snapshot(is_priority=False, referenced=True))

        assert coordinator.view.items[0].is_priority is True
