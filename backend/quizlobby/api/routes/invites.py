"""
REST API endpoints for invite codes.

- GET /invites/{code} - Preview the lobby behind a code
- POST /invites/{code}/join - Join the lobby behind a code
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quizlobby.api.deps import get_broadcaster, get_current_user_id
from quizlobby.core.broadcaster import LobbyBroadcaster
from quizlobby.database import get_db
from quizlobby.schemas import LobbySnapshot
from quizlobby.services import invite_service, lobby_service, notifications

router = APIRouter(prefix="/invites", tags=["invites"])


@router.get("/{code}", response_model=LobbySnapshot)
async def resolve_invite(code: str, db: Session = Depends(get_db)):
    """
    Resolve an invite code to its lobby. Does not consume the code.

    Raises:
        404: Unknown code or lobby deleted
        410: Code expired
    """
    lobby = invite_service.resolve_invite(db, code)
    return lobby_service.build_snapshot(db, lobby)


@router.post("/{code}/join", response_model=LobbySnapshot)
async def join_via_invite(
    code: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    Join the lobby behind an invite code.

    Raises:
        404: Unknown code or lobby deleted
        410: Code expired
        400: Lobby not waiting
        409: Already joined, or lobby full
    """
    lobby = invite_service.join_via_invite(db, code, user_id)
    return await notifications.lobby_updated(db, broadcaster, lobby)
