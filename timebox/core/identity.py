"""Request identity.

The user id comes from a header set by the authenticating proxy in front of
the app. It is wrapped in a ``RequestContext`` that every planner operation
receives explicitly, so tests can hand in any identity they like.
"""
from dataclasses import dataclass

from fastapi import Request

from timebox.core.config import settings
from timebox.core.errors import Unauthenticated


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller of a planner operation.

    Attributes:
        user_id: Opaque id from the identity provider, or None when the
            request carried no identity.
    """
    user_id: str | None = None

    def require_user(self) -> str:
        """Return the user id, raising Unauthenticated if there is none."""
        if not self.user_id:
            raise Unauthenticated()
        return self.user_id


def get_request_context(request: Request) -> RequestContext:
    """Dependency building the context from the identity header."""
    user_id = request.headers.get(settings.user_id_header, "").strip()
    return RequestContext(user_id=user_id or None)
