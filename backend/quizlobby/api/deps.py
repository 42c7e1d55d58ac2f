"""
Shared FastAPI dependencies.
"""

from fastapi import Query, Request

from quizlobby.core.broadcaster import LobbyBroadcaster


def get_broadcaster(request: Request) -> LobbyBroadcaster:
    """The broadcaster created by the application lifespan."""
    return request.app.state.broadcaster


def get_current_user_id(
    user_id: int = Query(..., ge=1, description="Authenticated user ID supplied by the identity service"),
) -> int:
    """
    Identity of the caller.

    Authentication happens upstream; the core trusts this value as-is.
    """
    return user_id
