"""
Helpers that turn committed lobby changes into broadcaster events.

Called after a mutation succeeds, in the order the events should reach
subscribers.
"""

from typing import Optional

from sqlalchemy.orm import Session

from quizlobby.core.broadcaster import LobbyBroadcaster
from quizlobby.core.events import (
    LobbyEndedEvent,
    LobbyStartedEvent,
    LobbyUpdatedEvent,
    LobbyWinnerDeclaredEvent,
)
from quizlobby.core.lobby import Winner
from quizlobby.models.lobby import Lobby
from quizlobby.schemas import LobbySnapshot
from quizlobby.services import lobby_service


async def lobby_updated(db: Session, broadcaster: LobbyBroadcaster, lobby: Lobby) -> LobbySnapshot:
    """Publish the full snapshot and return it."""
    snapshot = lobby_service.build_snapshot(db, lobby)
    await broadcaster.publish(lobby.id, LobbyUpdatedEvent(lobby=snapshot))
    return snapshot


async def lobby_started(db: Session, broadcaster: LobbyBroadcaster, lobby: Lobby) -> LobbySnapshot:
    await broadcaster.publish(lobby.id, LobbyStartedEvent(lobby_id=lobby.id, start_time=lobby.start_time))
    return await lobby_updated(db, broadcaster, lobby)


async def lobby_ended(broadcaster: LobbyBroadcaster, lobby_id: str, reason: Optional[str] = None) -> None:
    await broadcaster.publish(lobby_id, LobbyEndedEvent(lobby_id=lobby_id, reason=reason))


async def winner_declared(broadcaster: LobbyBroadcaster, lobby_id: str, winner: Winner) -> None:
    await broadcaster.publish(
        lobby_id,
        LobbyWinnerDeclaredEvent(
            lobby_id=lobby_id,
            user_id=winner.user_id,
            attempt_id=winner.attempt_id,
            finished_at=winner.finished_at,
        ),
    )
