"""
Lobby persistence models.

A lobby row carries a denormalized ``participant_count`` next to its
``participant_limit`` so that capacity can be enforced by a single
conditional UPDATE. Membership rows live in ``lobby_participants``
with a unique (lobby, user) pair.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from quizlobby.core.clock import utcnow
from quizlobby.core.lobby import LobbyStatus, Winner
from quizlobby.database import Base


class Lobby(Base):
    """
    Multiplayer session bound to one quiz.

    Attributes:
        id: UUID string
        quiz_id: Quiz played in this lobby (quiz collaborator reference)
        host_user_id: User who created the lobby
        participant_limit: Maximum number of participants, fixed at creation
        participant_count: Current number of participants
        status: waiting, started or ended
        start_time: Scheduled start while waiting, actual start once started
        winner_*: Winner record, set at most once while started
    """
    __tablename__ = "lobbies"

    id = Column(String(36), primary_key=True)
    quiz_id = Column(Integer, nullable=False, index=True)
    host_user_id = Column(Integer, nullable=False, index=True)
    participant_limit = Column(Integer, nullable=False)
    participant_count = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default=LobbyStatus.WAITING.value, index=True)
    start_time = Column(DateTime, nullable=True)

    winner_user_id = Column(Integer, nullable=True)
    winner_attempt_id = Column(Integer, nullable=True)
    winner_finished_at = Column(DateTime, nullable=True)
    winner_declared_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    participants = relationship(
        "LobbyParticipant",
        back_populates="lobby",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LobbyParticipant.id",
    )
    invites = relationship(
        "Invite",
        back_populates="lobby",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def lobby_status(self) -> LobbyStatus:
        return LobbyStatus(self.status)

    @property
    def winner(self):
        return Winner.from_lobby(self)

    def is_host(self, user_id: int) -> bool:
        """Check if user is the lobby host."""
        return user_id == self.host_user_id

    def is_full(self) -> bool:
        """Check if lobby is at max capacity."""
        return self.participant_count >= self.participant_limit

    def __repr__(self):
        return f"<Lobby(id='{self.id}', quiz_id={self.quiz_id}, status='{self.status}')>"


class LobbyParticipant(Base):
    """
    Lobby membership. The autoincrement id defines join order.
    """
    __tablename__ = "lobby_participants"
    __table_args__ = (
        UniqueConstraint("lobby_id", "user_id", name="uq_lobby_participant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    lobby_id = Column(String(36), ForeignKey("lobbies.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    lobby = relationship("Lobby", back_populates="participants")

    def __repr__(self):
        return f"<LobbyParticipant(lobby_id='{self.lobby_id}', user_id={self.user_id})>"
