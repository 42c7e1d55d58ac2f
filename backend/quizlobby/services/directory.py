"""
Read-only lookups against collaborator data (users, quizzes, attempts).

The lobby core consults these by value and never writes them.
"""

from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session

from quizlobby.models.quiz import Attempt, Quiz
from quizlobby.models.user import User


def get_quiz(db: Session, quiz_id: int) -> Optional[Quiz]:
    """
    Get quiz by ID.

    Args:
        db: Database session
        quiz_id: Quiz ID to lookup

    Returns:
        Quiz object if found, None otherwise
    """
    return db.get(Quiz, quiz_id)


def get_users(db: Session, user_ids: Iterable[int]) -> Dict[int, User]:
    """
    Get users by ID.

    Args:
        db: Database session
        user_ids: IDs to lookup

    Returns:
        Mapping of user ID to User for the IDs that exist
    """
    ids = set(user_ids)
    if not ids:
        return {}
    users = db.query(User).filter(User.id.in_(ids)).all()
    return {user.id: user for user in users}


def get_attempt(db: Session, attempt_id: int) -> Optional[Attempt]:
    """Get attempt by ID."""
    return db.get(Attempt, attempt_id)


def get_lobby_attempts(db: Session, lobby_id: str, quiz_id: int, user_ids: Iterable[int]) -> List[Attempt]:
    """
    Get the attempts played in a lobby by the given users.

    Ordered by score (highest first), then completion time (earliest first).
    """
    ids = list(user_ids)
    if not ids:
        return []
    return (
        db.query(Attempt)
        .filter(
            Attempt.lobby_id == lobby_id,
            Attempt.quiz_id == quiz_id,
            Attempt.user_id.in_(ids),
        )
        .order_by(Attempt.score.desc(), Attempt.completed_at.asc(), Attempt.id.asc())
        .all()
    )
