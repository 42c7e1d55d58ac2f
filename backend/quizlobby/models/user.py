"""
User model owned by the identity collaborator.

The lobby core only reads users by value (id and display name) to
render snapshots; registration and credentials live elsewhere.
"""

from sqlalchemy import Column, Integer, String, DateTime
from quizlobby.core.clock import utcnow

from quizlobby.database import Base


class User(Base):
    """
    User record as exposed by the identity service.

    Attributes:
        id: Primary key
        username: Unique login name
        display_name: Name shown to other lobby participants
        created_at: User registration timestamp
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    display_name = Column(String(80), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @property
    def public_name(self) -> str:
        """Display name, falling back to the username."""
        return self.display_name or self.username

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"
