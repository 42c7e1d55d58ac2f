"""
Pydantic models shared by the REST API and the live event channel.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class UserRef(BaseModel):
    """User as seen by other participants."""
    id: int
    display_name: Optional[str] = None


class QuizRef(BaseModel):
    """Quiz reference embedded in lobby snapshots."""
    id: int
    title: Optional[str] = None


class WinnerInfo(BaseModel):
    """Winner record of a lobby race."""
    user_id: int
    attempt_id: int
    finished_at: datetime


class LobbySnapshot(BaseModel):
    """Full lobby state returned by reads and pushed on lobby_updated."""
    id: str
    quiz: QuizRef
    host: UserRef
    participants: List[UserRef] = Field(default_factory=list)
    participant_limit: int
    status: str
    start_time: Optional[datetime] = None
    winner: Optional[WinnerInfo] = None


class StandingEntry(BaseModel):
    """One participant attempt in the race standings."""
    user: UserRef
    attempt_id: int
    score: int
    completed_at: datetime


class LobbyStatsResponse(BaseModel):
    """Lobby snapshot plus race standings."""
    lobby: LobbySnapshot
    attempts: List[StandingEntry] = Field(default_factory=list)
