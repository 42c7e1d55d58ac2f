"""
Quiz and attempt models owned by the quiz collaborator.

Quiz content, answer keys and scoring are managed by the quiz service.
The lobby core reads quizzes for existence and title, and attempts for
the lobby tag, owner, score and completion time.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from quizlobby.core.clock import utcnow

from quizlobby.database import Base


class Quiz(Base):
    """
    Quiz reference.

    Attributes:
        id: Primary key
        title: Quiz title shown in lobby snapshots
    """
    __tablename__ = "quizzes"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Quiz(id={self.id}, title='{self.title}')>"


class Attempt(Base):
    """
    Completed quiz attempt, optionally tagged with the lobby it was played in.

    Attributes:
        id: Primary key
        user_id: User who made the attempt
        quiz_id: Quiz attempted
        lobby_id: Lobby the attempt belongs to (None for solo play)
        score: Score computed by the quiz service
        completed_at: When the attempt was submitted
    """
    __tablename__ = "attempts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    quiz_id = Column(Integer, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True)
    # Plain column: lobby deletion must not erase attempt history
    lobby_id = Column(String(36), nullable=True, index=True)
    score = Column(Integer, nullable=False, default=0)
    completed_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Attempt(id={self.id}, user_id={self.user_id}, lobby_id={self.lobby_id})>"
