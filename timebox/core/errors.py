"""Error taxonomy for planner operations.

Core operations raise these instead of HTTP errors so they can be called from
routes, the background repair job and scripts alike. ``register_error_handlers``
maps them onto JSON responses for the API.
"""
from collections.abc import Iterable
from uuid import UUID

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class PlannerError(Exception):
    """Base class for all planner errors."""

    status_code = 500
    code = "planner_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.code}


class Unauthenticated(PlannerError):
    """No verified user identity on the request."""

    status_code = 401
    code = "unauthenticated"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFound(PlannerError):
    """Entity is absent or owned by another user.

    Both cases look the same to the caller so that foreign ids never leak.
    """

    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: object):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConstraintViolation(PlannerError):
    """A write would break a data invariant (either/or content, slots, times)."""

    status_code = 400
    code = "constraint_violation"


class AggregateFailure(PlannerError):
    """Some rows of a bulk operation were not written.

    The rows that succeeded stay written; ``failed_ids`` names the rest so the
    caller can retry them or tell the user.
    """

    status_code = 409
    code = "aggregate_failure"

    def __init__(self, message: str, failed_ids: Iterable[UUID]):
        self.failed_ids = list(failed_ids)
        super().__init__(f"{message} ({len(self.failed_ids)} failed)")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["failed_ids"] = [str(i) for i in self.failed_ids]
        return data


class StoreError(PlannerError):
    """The backing store failed unexpectedly."""

    status_code = 503
    code = "store_error"


async def planner_error_handler(request: Request, exc: PlannerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    """Render every PlannerError subclass as JSON with its status code."""
    app.add_exception_handler(PlannerError, planner_error_handler)
