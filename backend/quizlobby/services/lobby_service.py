"""
Lobby service layer: the lobby state machine.

Every mutation of participants or status is a single conditional
UPDATE/DELETE against the database, so concurrent requests (possibly
from several server processes) cannot both pass a capacity, membership
or status check. When a guarded write matches no row, the transaction
is rolled back and a fresh read decides which error to report.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizlobby.config import get_settings
from quizlobby.core.clock import to_naive_utc, utcnow
from quizlobby.core.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
)
from quizlobby.core.lobby import LobbyStatus
from quizlobby.models.invite import Invite
from quizlobby.models.lobby import Lobby, LobbyParticipant
from quizlobby.schemas import LobbySnapshot, QuizRef, UserRef, WinnerInfo
from quizlobby.services import directory

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class LeaveResult:
    """Outcome of a leave: the lobby after the change and why it ended, if it did."""
    lobby: Lobby
    ended_reason: Optional[str] = None

    @property
    def ended(self) -> bool:
        return self.ended_reason is not None


# ===== Reads =====

def get_lobby(db: Session, lobby_id: str) -> Optional[Lobby]:
    """
    Get lobby by ID, always reloading the latest committed row.

    Args:
        db: Database session
        lobby_id: Lobby identifier

    Returns:
        Lobby if found, None otherwise
    """
    return db.get(Lobby, lobby_id, populate_existing=True)


def require_lobby(db: Session, lobby_id: str) -> Lobby:
    """Get lobby by ID or raise NotFoundError."""
    lobby = get_lobby(db, lobby_id)
    if lobby is None:
        raise NotFoundError(f"Lobby {lobby_id} not found")
    return lobby


def list_lobbies(db: Session, status: Optional[LobbyStatus] = None) -> List[Lobby]:
    """
    List all lobbies, optionally filtered by status.

    Returns:
        List of lobbies sorted by creation time (newest first)
    """
    query = db.query(Lobby)
    if status is not None:
        query = query.filter(Lobby.status == status.value)
    return query.order_by(Lobby.created_at.desc(), Lobby.id).populate_existing().all()


def list_hosted_lobbies(db: Session, user_id: int) -> List[Lobby]:
    """List lobbies hosted by a user (newest first)."""
    return (
        db.query(Lobby)
        .filter(Lobby.host_user_id == user_id)
        .order_by(Lobby.created_at.desc(), Lobby.id)
        .populate_existing()
        .all()
    )


def list_joined_lobbies(db: Session, user_id: int) -> List[Lobby]:
    """List lobbies a user has joined but does not host (newest first)."""
    return (
        db.query(Lobby)
        .join(LobbyParticipant, LobbyParticipant.lobby_id == Lobby.id)
        .filter(LobbyParticipant.user_id == user_id, Lobby.host_user_id != user_id)
        .order_by(Lobby.created_at.desc(), Lobby.id)
        .populate_existing()
        .all()
    )


def get_participant_ids(db: Session, lobby_id: str) -> List[int]:
    """Participant user IDs in join order."""
    rows = (
        db.query(LobbyParticipant.user_id)
        .filter(LobbyParticipant.lobby_id == lobby_id)
        .order_by(LobbyParticipant.id)
        .all()
    )
    return [row.user_id for row in rows]


def is_participant(db: Session, lobby_id: str, user_id: int) -> bool:
    membership_id = db.scalar(
        select(LobbyParticipant.id)
        .where(LobbyParticipant.lobby_id == lobby_id, LobbyParticipant.user_id == user_id)
        .limit(1)
    )
    return membership_id is not None


def build_snapshot(db: Session, lobby: Lobby) -> LobbySnapshot:
    """
    Render the read shape of a lobby, resolving quiz title and
    display names through the collaborators.
    """
    participant_ids = get_participant_ids(db, lobby.id)
    users = directory.get_users(db, participant_ids + [lobby.host_user_id])
    quiz = directory.get_quiz(db, lobby.quiz_id)

    def user_ref(user_id: int) -> UserRef:
        user = users.get(user_id)
        return UserRef(id=user_id, display_name=user.public_name if user else None)

    winner = lobby.winner
    return LobbySnapshot(
        id=lobby.id,
        quiz=QuizRef(id=lobby.quiz_id, title=quiz.title if quiz else None),
        host=user_ref(lobby.host_user_id),
        participants=[user_ref(uid) for uid in participant_ids],
        participant_limit=lobby.participant_limit,
        status=lobby.status,
        start_time=lobby.start_time,
        winner=WinnerInfo(
            user_id=winner.user_id,
            attempt_id=winner.attempt_id,
            finished_at=winner.finished_at,
        ) if winner else None,
    )


# ===== Mutations =====

def create_lobby(
    db: Session,
    quiz_id: int,
    host_user_id: int,
    participant_limit: int,
    scheduled_start: Optional[datetime] = None,
) -> Lobby:
    """
    Create a new lobby with the host as its first participant.

    Args:
        db: Database session
        quiz_id: Quiz to play (must exist)
        host_user_id: User creating the lobby
        participant_limit: Maximum participants, host included
        scheduled_start: Optional auto-start time

    Returns:
        Created Lobby in WAITING status

    Raises:
        ValueError: If participant_limit is out of range
        NotFoundError: If the quiz does not exist
    """
    max_limit = settings.lobby.MAX_PARTICIPANT_LIMIT
    if participant_limit < 1 or participant_limit > max_limit:
        raise ValueError(f"participant_limit must be between 1 and {max_limit}")

    if directory.get_quiz(db, quiz_id) is None:
        logger.warning(f"User {host_user_id} tried to create lobby for unknown quiz {quiz_id}")
        raise NotFoundError(f"Quiz {quiz_id} not found")

    lobby = Lobby(
        id=str(uuid4()),
        quiz_id=quiz_id,
        host_user_id=host_user_id,
        participant_limit=participant_limit,
        participant_count=1,
        status=LobbyStatus.WAITING.value,
        start_time=to_naive_utc(scheduled_start),
    )
    lobby.participants.append(LobbyParticipant(user_id=host_user_id))
    db.add(lobby)
    db.commit()
    db.refresh(lobby)

    logger.info(f"Created lobby {lobby.id} for quiz {quiz_id} (host: {host_user_id}, limit: {participant_limit})")
    return lobby


def join_lobby(db: Session, lobby_id: str, user_id: int) -> Lobby:
    """
    Add a user to a waiting lobby.

    The capacity, status and membership checks and the counter increment
    happen in one conditional UPDATE; the membership row is inserted in
    the same transaction.

    Raises:
        NotFoundError: Lobby missing
        InvalidStateError: Lobby not waiting
        ConflictError: Already a member
        CapacityExceededError: Lobby full
    """
    already_member = (
        select(LobbyParticipant.id)
        .where(LobbyParticipant.lobby_id == lobby_id, LobbyParticipant.user_id == user_id)
        .exists()
    )
    stmt = (
        update(Lobby)
        .where(
            Lobby.id == lobby_id,
            Lobby.status == LobbyStatus.WAITING.value,
            Lobby.participant_count < Lobby.participant_limit,
            ~already_member,
        )
        .values(participant_count=Lobby.participant_count + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    try:
        result = db.execute(stmt)
        if result.rowcount != 1:
            db.rollback()
            _raise_join_rejection(db, lobby_id, user_id)

        db.add(LobbyParticipant(lobby_id=lobby_id, user_id=user_id))
        db.commit()
    except IntegrityError:
        # Same user racing itself: the unique membership constraint wins
        db.rollback()
        logger.warning(f"User {user_id} already joined lobby {lobby_id} (concurrent join)")
        raise ConflictError(f"User {user_id} already joined lobby {lobby_id}")

    lobby = require_lobby(db, lobby_id)
    logger.info(f"User {user_id} joined lobby {lobby_id} ({lobby.participant_count}/{lobby.participant_limit})")
    return lobby


def _raise_join_rejection(db: Session, lobby_id: str, user_id: int) -> None:
    lobby = get_lobby(db, lobby_id)
    if lobby is None:
        logger.warning(f"User {user_id} tried to join non-existent lobby {lobby_id}")
        raise NotFoundError(f"Lobby {lobby_id} not found")

    if lobby.status != LobbyStatus.WAITING.value:
        logger.warning(f"User {user_id} tried to join lobby {lobby_id} in status {lobby.status}")
        raise InvalidStateError(f"Cannot join, lobby is {lobby.status}")

    if is_participant(db, lobby_id, user_id):
        logger.warning(f"User {user_id} already in lobby {lobby_id}")
        raise ConflictError(f"User {user_id} already joined lobby {lobby_id}")

    logger.warning(f"User {user_id} tried to join full lobby {lobby_id}")
    raise CapacityExceededError(f"Lobby {lobby_id} is full ({lobby.participant_limit} participants)")


def leave_lobby(db: Session, lobby_id: str, user_id: int, now: Optional[datetime] = None) -> LeaveResult:
    """
    Remove a user from a lobby.

    If the leaver is the host, or nobody is left, the lobby ends.

    Raises:
        NotFoundError: Lobby missing or user not a member
    """
    now = to_naive_utc(now) or utcnow()

    result = db.execute(
        delete(LobbyParticipant)
        .where(LobbyParticipant.lobby_id == lobby_id, LobbyParticipant.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        require_lobby(db, lobby_id)
        logger.warning(f"User {user_id} tried to leave lobby {lobby_id} without being a member")
        raise NotFoundError(f"User {user_id} is not a member of lobby {lobby_id}")

    db.execute(
        update(Lobby)
        .where(Lobby.id == lobby_id)
        .values(participant_count=Lobby.participant_count - 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )

    # Our write lock is held, so this read is the current row
    lobby = require_lobby(db, lobby_id)
    ended_reason = None
    if lobby.status != LobbyStatus.ENDED.value:
        if lobby.is_host(user_id):
            ended_reason = "host_left"
        elif lobby.participant_count == 0:
            ended_reason = "empty"

        if ended_reason and not _apply_transition(db, lobby_id, LobbyStatus.ENDED, now):
            ended_reason = None

    db.commit()

    logger.info(f"User {user_id} left lobby {lobby_id} ({lobby.participant_count} remaining)")
    if ended_reason:
        logger.info(f"Lobby {lobby_id} ended ({ended_reason})")
    return LeaveResult(lobby=require_lobby(db, lobby_id), ended_reason=ended_reason)


def _apply_transition(
    db: Session,
    lobby_id: str,
    target: LobbyStatus,
    now: datetime,
    host_user_id: Optional[int] = None,
) -> bool:
    """
    Conditionally move a lobby into ``target`` from any allowed source status.

    Does not commit. Returns True if the row was updated.
    """
    sources = [s.value for s in LobbyStatus.sources_for(target)]
    if not sources:
        return False

    conditions = [Lobby.id == lobby_id, Lobby.status.in_(sources)]
    if host_user_id is not None:
        conditions.append(Lobby.host_user_id == host_user_id)

    values = {"status": target.value, "updated_at": now}
    if target == LobbyStatus.STARTED:
        values["start_time"] = now

    result = db.execute(
        update(Lobby)
        .where(*conditions)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


_ACTION_NAMES = {
    LobbyStatus.WAITING: "reopen",
    LobbyStatus.STARTED: "start",
    LobbyStatus.ENDED: "end",
}


def _transition_or_raise(
    db: Session,
    lobby_id: str,
    target: LobbyStatus,
    now: Optional[datetime],
    host_user_id: Optional[int] = None,
) -> Lobby:
    now = to_naive_utc(now) or utcnow()

    if _apply_transition(db, lobby_id, target, now, host_user_id):
        db.commit()
        lobby = require_lobby(db, lobby_id)
        logger.info(f"Lobby {lobby_id} transitioned to {target.value}")
        return lobby

    db.rollback()
    lobby = require_lobby(db, lobby_id)
    if host_user_id is not None and not lobby.is_host(host_user_id):
        logger.warning(f"User {host_user_id} tried to move lobby {lobby_id} to {target.value} (not host)")
        raise ForbiddenError(f"Only the host can {_ACTION_NAMES[target]} the lobby")

    logger.warning(f"Cannot move lobby {lobby_id} from {lobby.status} to {target.value}")
    raise InvalidStateError(f"Cannot move lobby from {lobby.status} to {target.value}")


def transition_status(db: Session, lobby_id: str, target: LobbyStatus, now: Optional[datetime] = None) -> Lobby:
    """
    Guarded status transition without a host check.

    Only waiting -> started, waiting -> ended and started -> ended are
    allowed; anything else raises InvalidStateError.
    """
    return _transition_or_raise(db, lobby_id, target, now)


def start_lobby(db: Session, lobby_id: str, user_id: int, now: Optional[datetime] = None) -> Lobby:
    """
    Start a waiting lobby (host only) and stamp its start time.

    Raises:
        NotFoundError, ForbiddenError, InvalidStateError
    """
    return _transition_or_raise(db, lobby_id, LobbyStatus.STARTED, now, host_user_id=user_id)


def end_lobby(db: Session, lobby_id: str, user_id: int, now: Optional[datetime] = None) -> Lobby:
    """
    End a waiting or started lobby (host only). The record is kept.

    Raises:
        NotFoundError, ForbiddenError, InvalidStateError
    """
    return _transition_or_raise(db, lobby_id, LobbyStatus.ENDED, now, host_user_id=user_id)


def delete_lobby(db: Session, lobby_id: str, user_id: int) -> None:
    """
    Delete a lobby permanently (host only), with its memberships and invites.

    Raises:
        NotFoundError, ForbiddenError
    """
    result = db.execute(
        delete(Lobby)
        .where(Lobby.id == lobby_id, Lobby.host_user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        require_lobby(db, lobby_id)
        logger.warning(f"User {user_id} tried to delete lobby {lobby_id} (not host)")
        raise ForbiddenError("Only the host can delete the lobby")

    # No-ops where the database cascades the foreign keys
    db.execute(
        delete(LobbyParticipant)
        .where(LobbyParticipant.lobby_id == lobby_id)
        .execution_options(synchronize_session=False)
    )
    db.execute(
        delete(Invite)
        .where(Invite.lobby_id == lobby_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info(f"Lobby {lobby_id} deleted by host {user_id}")


def start_due_lobbies(db: Session, now: Optional[datetime] = None) -> List[str]:
    """
    Start every waiting lobby whose scheduled start time has passed.

    Each lobby is started with the same conditional update as a manual
    start, so a concurrent host start or another process's sweep cannot
    start it twice.

    Returns:
        IDs of the lobbies this call actually started
    """
    now = to_naive_utc(now) or utcnow()

    due_ids = [
        row.id
        for row in db.query(Lobby.id)
        .filter(
            Lobby.status == LobbyStatus.WAITING.value,
            Lobby.start_time.isnot(None),
            Lobby.start_time <= now,
        )
        .all()
    ]

    started = []
    for lobby_id in due_ids:
        result = db.execute(
            update(Lobby)
            .where(
                Lobby.id == lobby_id,
                Lobby.status == LobbyStatus.WAITING.value,
                Lobby.start_time <= now,
            )
            .values(status=LobbyStatus.STARTED.value, start_time=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            started.append(lobby_id)
    db.commit()

    if started:
        logger.info(f"Auto-started {len(started)} scheduled lobbies")
    return started
