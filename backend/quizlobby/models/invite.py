"""
Invite model for lobby join codes.

An invite is a capability: anyone holding the code may join the bound
lobby until ``expires_at``, subject to the lobby's capacity and status.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from quizlobby.core.clock import utcnow
from quizlobby.database import Base


class Invite(Base):
    """
    Attributes:
        code: Unique random token (hex)
        lobby_id: Lobby the code grants entry to
        inviter_user_id: Host who issued the code (informational)
        expires_at: Absolute expiry, naive UTC
    """
    __tablename__ = "invites"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), unique=True, nullable=False, index=True)
    lobby_id = Column(String(36), ForeignKey("lobbies.id", ondelete="CASCADE"), nullable=False, index=True)
    inviter_user_id = Column(Integer, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    lobby = relationship("Lobby", back_populates="invites")

    def is_expired(self, now) -> bool:
        """Codes are valid strictly before ``expires_at``."""
        return now >= self.expires_at

    def __repr__(self):
        return f"<Invite(code='{self.code}', lobby_id='{self.lobby_id}')>"
