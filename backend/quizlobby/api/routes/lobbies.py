"""
REST API endpoints for lobby management.

Provides the lobby lifecycle over HTTP:
- Create, list, and get lobbies
- Join, leave, start, end (host) and delete (host)
- Issue invite codes (host)
- Submit completed attempts to the lobby race
- Lobby stats (snapshot + standings)

Every successful mutation is pushed to the lobby's live channel.
"""

from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
import logging

from quizlobby.api.deps import get_broadcaster, get_current_user_id
from quizlobby.config import get_settings
from quizlobby.core.broadcaster import LobbyBroadcaster
from quizlobby.core.lobby import LobbyStatus
from quizlobby.database import get_db
from quizlobby.schemas import LobbySnapshot, LobbyStatsResponse, WinnerInfo
from quizlobby.services import invite_service, lobby_service, notifications, race_service

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/lobbies")


# ===== Pydantic Models =====

class CreateLobbyRequest(BaseModel):
    """Request to create a new lobby."""
    quiz_id: int = Field(..., ge=1, description="Quiz to play")
    participant_limit: int = Field(
        ..., ge=1, le=settings.lobby.MAX_PARTICIPANT_LIMIT, description="Maximum participants, host included"
    )
    scheduled_start: Optional[datetime] = Field(default=None, description="Optional auto-start time")


class CompletionRequest(BaseModel):
    """A completed, scored attempt played in this lobby."""
    attempt_id: int = Field(..., ge=1)


class CompletionResponse(BaseModel):
    """Outcome of a completion. Losing the race is a normal response."""
    won: bool
    winner: Optional[WinnerInfo] = None


class InviteResponse(BaseModel):
    """Issued invite code."""
    code: str
    lobby_id: str
    expires_at: datetime


class LobbyListItemResponse(BaseModel):
    """Lobby list item for browse views."""
    id: str
    quiz_id: int
    host_user_id: int
    participant_count: int
    participant_limit: int
    status: str
    start_time: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


# ===== REST Endpoints =====

@router.post("", response_model=LobbySnapshot, status_code=201)
async def create_lobby(
    request: CreateLobbyRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Create a new lobby hosted by the caller.

    Raises:
        404: Quiz not found
        422: participant_limit outside 1..MAX_PARTICIPANT_LIMIT
    """
    lobby = lobby_service.create_lobby(
        db,
        quiz_id=request.quiz_id,
        host_user_id=user_id,
        participant_limit=request.participant_limit,
        scheduled_start=request.scheduled_start,
    )

    return lobby_service.build_snapshot(db, lobby)


@router.get("", response_model=List[LobbyListItemResponse])
async def list_lobbies(
    status: Optional[str] = Query(default=None, description="Filter by status (waiting, started, ended)"),
    db: Session = Depends(get_db),
):
    """List all lobbies (newest first), optionally filtered by status."""
    status_filter = None
    if status:
        try:
            status_filter = LobbyStatus(status)
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status: {status}. Must be one of: waiting, started, ended"
            )

    return lobby_service.list_lobbies(db, status=status_filter)


@router.get("/hosted", response_model=List[LobbyListItemResponse])
async def list_hosted_lobbies(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Lobbies hosted by the caller."""
    return lobby_service.list_hosted_lobbies(db, user_id)


@router.get("/joined", response_model=List[LobbyListItemResponse])
async def list_joined_lobbies(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Lobbies the caller joined but does not host."""
    return lobby_service.list_joined_lobbies(db, user_id)


@router.get("/{lobby_id}", response_model=LobbySnapshot)
async def get_lobby(lobby_id: str, db: Session = Depends(get_db)):
    """
    Get the full lobby snapshot.

    Raises:
        404: Lobby not found
    """
    lobby = lobby_service.require_lobby(db, lobby_id)
    return lobby_service.build_snapshot(db, lobby)


@router.get("/{lobby_id}/stats", response_model=LobbyStatsResponse)
async def get_lobby_stats(lobby_id: str, db: Session = Depends(get_db)):
    """Lobby snapshot with the race standings of its participants."""
    lobby = lobby_service.require_lobby(db, lobby_id)
    return LobbyStatsResponse(
        lobby=lobby_service.build_snapshot(db, lobby),
        attempts=race_service.get_standings(db, lobby_id),
    )


@router.post("/{lobby_id}/join", response_model=LobbySnapshot)
async def join_lobby(
    lobby_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    Join a waiting lobby.

    Raises:
        404: Lobby not found
        400: Lobby not waiting
        409: Already joined, or lobby full
    """
    lobby = lobby_service.join_lobby(db, lobby_id, user_id)
    return await notifications.lobby_updated(db, broadcaster, lobby)


@router.post("/{lobby_id}/leave", response_model=LobbySnapshot)
async def leave_lobby(
    lobby_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    Leave a lobby. The lobby ends if the host leaves or nobody is left.

    Raises:
        404: Lobby not found or caller not a member
    """
    result = lobby_service.leave_lobby(db, lobby_id, user_id)
    snapshot = await notifications.lobby_updated(db, broadcaster, result.lobby)
    if result.ended:
        await notifications.lobby_ended(broadcaster, lobby_id, reason=result.ended_reason)
    return snapshot


@router.post("/{lobby_id}/start", response_model=LobbySnapshot)
async def start_lobby(
    lobby_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    Start the race (host only).

    Raises:
        404: Lobby not found
        403: Caller is not the host
        400: Lobby not waiting
    """
    lobby = lobby_service.start_lobby(db, lobby_id, user_id)
    return await notifications.lobby_started(db, broadcaster, lobby)


@router.post("/{lobby_id}/end", response_model=LobbySnapshot)
async def end_lobby(
    lobby_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    End the lobby (host only). The record is kept for stats.

    Raises:
        404: Lobby not found
        403: Caller is not the host
        400: Lobby already ended
    """
    lobby = lobby_service.end_lobby(db, lobby_id, user_id)
    await notifications.lobby_ended(broadcaster, lobby_id, reason="host_ended")
    return await notifications.lobby_updated(db, broadcaster, lobby)


@router.delete("/{lobby_id}", status_code=204)
async def delete_lobby(
    lobby_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    Delete the lobby permanently (host only).

    Raises:
        404: Lobby not found
        403: Caller is not the host
    """
    lobby_service.delete_lobby(db, lobby_id, user_id)
    await notifications.lobby_ended(broadcaster, lobby_id, reason="deleted")
    broadcaster.drop_channel(lobby_id)

    # 204 No Content - no response body
    return None


@router.post("/{lobby_id}/invites", response_model=InviteResponse, status_code=201)
async def issue_invite(
    lobby_id: str,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Issue an invite code for the lobby (host only).

    Raises:
        404: Lobby not found
        403: Caller is not the host
    """
    invite = invite_service.issue_invite(db, lobby_id, user_id)
    return InviteResponse(code=invite.code, lobby_id=invite.lobby_id, expires_at=invite.expires_at)


@router.post("/{lobby_id}/completions", response_model=CompletionResponse)
async def submit_completion(
    lobby_id: str,
    request: CompletionRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    broadcaster: LobbyBroadcaster = Depends(get_broadcaster),
):
    """
    Enter a completed attempt into the lobby race.

    Returns ``won: true`` only for the completion that set the winner.
    Everyone else gets ``won: false`` with the current winner.

    Raises:
        404: Lobby or attempt not found
        403: Caller is not a participant
        400: Lobby not started
    """
    won = race_service.submit_completion(db, lobby_id, user_id, request.attempt_id)
    lobby = lobby_service.require_lobby(db, lobby_id)
    winner = lobby.winner

    if won:
        await notifications.winner_declared(broadcaster, lobby_id, winner)

    return CompletionResponse(
        won=won,
        winner=WinnerInfo(
            user_id=winner.user_id,
            attempt_id=winner.attempt_id,
            finished_at=winner.finished_at,
        ) if winner else None,
    )
