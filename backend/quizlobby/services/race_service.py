"""
Race resolver: exactly-once winner declaration for lobby races.

When a lobby-tagged attempt completes, its submitter competes to set
the lobby's winner with one conditional UPDATE
(``status = 'started' AND winner_user_id IS NULL`` and the submitter
is still a participant). The database applies such writes one at a
time, so among any number of concurrent completions exactly one
matches a row.

"First" means first in the store's serialization order. ``finished_at``
is recorded but never compared: a later write carrying an earlier
timestamp (clock skew) still loses.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from quizlobby.core.clock import to_naive_utc, utcnow
from quizlobby.core.errors import ForbiddenError, InvalidStateError, NotFoundError
from quizlobby.core.lobby import LobbyStatus
from quizlobby.models.lobby import Lobby, LobbyParticipant
from quizlobby.schemas import StandingEntry, UserRef
from quizlobby.services import directory, lobby_service

logger = logging.getLogger(__name__)


def declare_if_winner(
    db: Session,
    lobby_id: str,
    user_id: int,
    attempt_id: int,
    finished_at: datetime,
    now: Optional[datetime] = None,
) -> bool:
    """
    Try to record this completion as the lobby's winner.

    Args:
        db: Database session
        lobby_id: Lobby the attempt was played in
        user_id: Participant who completed the attempt
        attempt_id: Completed attempt (scored by the quiz service)
        finished_at: Completion time reported by the quiz service
        now: Declaration time (defaults to current UTC time)

    Returns:
        True only for the call whose write set the winner; False for
        every other completion (winner already set or lobby ended)

    Raises:
        NotFoundError: Lobby missing
        ForbiddenError: User is not a participant
        InvalidStateError: Lobby has not started yet
    """
    now = to_naive_utc(now) or utcnow()
    finished_at = to_naive_utc(finished_at)

    # Membership is part of the guard: a participant who leaves
    # concurrently cannot be recorded as the winner
    is_member = (
        select(LobbyParticipant.id)
        .where(LobbyParticipant.lobby_id == lobby_id, LobbyParticipant.user_id == user_id)
        .exists()
    )
    result = db.execute(
        update(Lobby)
        .where(
            Lobby.id == lobby_id,
            Lobby.status == LobbyStatus.STARTED.value,
            Lobby.winner_user_id.is_(None),
            is_member,
        )
        .values(
            winner_user_id=user_id,
            winner_attempt_id=attempt_id,
            winner_finished_at=finished_at,
            winner_declared_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 1:
        db.commit()
        logger.info(f"User {user_id} won lobby {lobby_id} with attempt {attempt_id}")
        return True

    db.rollback()
    lobby = lobby_service.require_lobby(db, lobby_id)
    if not lobby_service.is_participant(db, lobby_id, user_id):
        logger.warning(f"User {user_id} submitted a completion to lobby {lobby_id} without being a participant")
        raise ForbiddenError(f"User {user_id} is not a participant of lobby {lobby_id}")

    if lobby.status == LobbyStatus.WAITING.value:
        logger.warning(f"Completion for lobby {lobby_id} arrived before the lobby started")
        raise InvalidStateError("Lobby has not started")

    logger.debug(f"User {user_id} did not win lobby {lobby_id} (status={lobby.status}, winner={lobby.winner_user_id})")
    return False


def submit_completion(db: Session, lobby_id: str, user_id: int, attempt_id: int) -> bool:
    """
    Enter a completed attempt into the lobby race.

    The attempt is looked up through the quiz collaborator: it must exist,
    belong to the user and be tagged with this lobby. Its ``completed_at``
    is used as the finish time.

    Returns:
        Whether this completion won the race
    """
    attempt = directory.get_attempt(db, attempt_id)
    if attempt is None or attempt.user_id != user_id:
        raise NotFoundError(f"Attempt {attempt_id} not found")

    if attempt.lobby_id != lobby_id:
        logger.warning(f"Attempt {attempt_id} is not tagged with lobby {lobby_id}")
        raise NotFoundError(f"Attempt {attempt_id} not found in lobby {lobby_id}")

    return declare_if_winner(db, lobby_id, user_id, attempt.id, attempt.completed_at)


def get_standings(db: Session, lobby_id: str) -> List[StandingEntry]:
    """
    Race standings: participants' attempts in this lobby, best score
    first, ties broken by earliest completion.
    """
    lobby = lobby_service.require_lobby(db, lobby_id)
    participant_ids = lobby_service.get_participant_ids(db, lobby_id)
    attempts = directory.get_lobby_attempts(db, lobby_id, lobby.quiz_id, participant_ids)
    users = directory.get_users(db, [a.user_id for a in attempts])

    standings = []
    for attempt in attempts:
        user = users.get(attempt.user_id)
        standings.append(StandingEntry(
            user=UserRef(id=attempt.user_id, display_name=user.public_name if user else None),
            attempt_id=attempt.id,
            score=attempt.score,
            completed_at=attempt.completed_at,
        ))
    return standings
