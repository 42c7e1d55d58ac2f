"""
Invite service layer: issuing and resolving lobby invite codes.

Codes are multi-use until they expire. Expiry is checked when a code
is resolved; nothing sweeps expired codes.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quizlobby.config import get_settings
from quizlobby.core.clock import to_naive_utc, utcnow
from quizlobby.core.errors import ExpiredError, ForbiddenError, NotFoundError
from quizlobby.core.invite_code import generate_invite_code, is_valid_invite_code, normalize_invite_code
from quizlobby.models.invite import Invite
from quizlobby.models.lobby import Lobby
from quizlobby.services import lobby_service

logger = logging.getLogger(__name__)
settings = get_settings()


def issue_invite(db: Session, lobby_id: str, inviter_user_id: int, now: Optional[datetime] = None) -> Invite:
    """
    Issue a new invite code for a lobby (host only).

    Args:
        db: Database session
        lobby_id: Lobby the code grants entry to
        inviter_user_id: User requesting the code (must be host)
        now: Issue time (defaults to current UTC time)

    Returns:
        Persisted Invite with its code and expiry

    Raises:
        NotFoundError: Lobby missing
        ForbiddenError: Inviter is not the host
    """
    now = to_naive_utc(now) or utcnow()
    lobby = lobby_service.require_lobby(db, lobby_id)
    if not lobby.is_host(inviter_user_id):
        logger.warning(f"User {inviter_user_id} tried to invite to lobby {lobby_id} (not host)")
        raise ForbiddenError("Only the host can invite")

    expires_at = now + timedelta(hours=settings.lobby.INVITE_TTL_HOURS)

    # Retry on the (negligible) chance of a code collision
    max_attempts = settings.lobby.INVITE_CODE_MAX_ATTEMPTS
    for attempt in range(1, max_attempts + 1):
        invite = Invite(
            code=generate_invite_code(settings.lobby.INVITE_CODE_BYTES),
            lobby_id=lobby_id,
            inviter_user_id=inviter_user_id,
            expires_at=expires_at,
            created_at=now,
        )
        db.add(invite)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Invite code collision for lobby {lobby_id} (attempt {attempt}/{max_attempts})")
            continue

        db.refresh(invite)
        logger.info(f"Issued invite for lobby {lobby_id} by {inviter_user_id}, expires {expires_at.isoformat()}")
        return invite

    raise RuntimeError(f"Could not generate a unique invite code after {max_attempts} attempts")


def resolve_invite(db: Session, code: str, now: Optional[datetime] = None) -> Lobby:
    """
    Resolve an invite code to its lobby without consuming it.

    Valid strictly before ``expires_at``.

    Raises:
        NotFoundError: Unknown or malformed code, or lobby deleted
        ExpiredError: Code past its expiry
    """
    now = to_naive_utc(now) or utcnow()

    if not is_valid_invite_code(code):
        raise NotFoundError("Invite not found")

    invite = db.query(Invite).filter(Invite.code == normalize_invite_code(code)).first()
    if invite is None:
        raise NotFoundError("Invite not found")

    if invite.is_expired(now):
        logger.debug(f"Invite for lobby {invite.lobby_id} expired at {invite.expires_at.isoformat()}")
        raise ExpiredError("Invite has expired")

    return lobby_service.require_lobby(db, invite.lobby_id)


def join_via_invite(db: Session, code: str, user_id: int, now: Optional[datetime] = None) -> Lobby:
    """
    Resolve an invite code and join the bound lobby.

    Same semantics and errors as a direct join, plus those of resolve_invite.
    """
    lobby = resolve_invite(db, code, now=now)
    return lobby_service.join_lobby(db, lobby.id, user_id)
