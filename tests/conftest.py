"""Shared test fixtures."""

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine
from sqlmodel.pool import StaticPool

from timebox.core.config import settings
from timebox.core.database import get_session
from timebox.core.identity import RequestContext
from timebox.main import app
from timebox.models import Item, Planner
from timebox.planner import reconcile, store

USER_ID = "user_test_1"
OTHER_USER_ID = "user_test_2"
PLANNER_DATE = date(2025, 6, 1)


@pytest.fixture(name="engine")
def engine_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="session")
def session_fixture(engine):
    """Create a new database session for each test."""
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Create a test client, signed in as USER_ID, with the test database session."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    client.headers[settings.user_id_header] = USER_ID
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="anonymous_client")
def anonymous_client_fixture(session: Session):
    """Create a test client without an identity header."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="ctx")
def ctx_fixture() -> RequestContext:
    return RequestContext(user_id=USER_ID)


@pytest.fixture(name="other_ctx")
def other_ctx_fixture() -> RequestContext:
    return RequestContext(user_id=OTHER_USER_ID)


@pytest.fixture(name="planner")
def planner_fixture(session: Session, ctx: RequestContext) -> Planner:
    """The planner for 2025-06-01."""
    return store.get_or_create_planner(session, ctx, PLANNER_DATE)


@pytest.fixture(name="items")
def items_fixture(session: Session, ctx: RequestContext, planner: Planner) -> list[Item]:
    """Three brain dump items A, B and C with sequences 0, 1 and 2."""
    return [
        reconcile.create_item(session, ctx, planner.id, text)
        for text in ("Item A", "Item B", "Item C")
    ]
