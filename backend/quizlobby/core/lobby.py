"""
Lobby lifecycle definitions.

This module defines the lobby state machine (statuses and the allowed
transitions between them) and the winner record produced by a race.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional


class LobbyStatus(str, Enum):
    """Lobby state machine."""
    WAITING = "waiting"  # Lobby open, accepting participants
    STARTED = "started"  # Host started the race, quiz in progress
    ENDED = "ended"      # Terminal; record kept for stats until deleted

    def can_transition_to(self, target: "LobbyStatus") -> bool:
        """Check whether moving from this status to ``target`` is allowed."""
        return target in ALLOWED_TRANSITIONS[self]

    @classmethod
    def sources_for(cls, target: "LobbyStatus") -> FrozenSet["LobbyStatus"]:
        """All statuses that may transition into ``target``."""
        return frozenset(s for s in cls if target in ALLOWED_TRANSITIONS[s])


# Monotonic: waiting -> started -> ended, and waiting -> ended.
ALLOWED_TRANSITIONS: Dict[LobbyStatus, FrozenSet[LobbyStatus]] = {
    LobbyStatus.WAITING: frozenset({LobbyStatus.STARTED, LobbyStatus.ENDED}),
    LobbyStatus.STARTED: frozenset({LobbyStatus.ENDED}),
    LobbyStatus.ENDED: frozenset(),
}


@dataclass(frozen=True)
class Winner:
    """First valid completion recorded for a started lobby."""
    user_id: int
    attempt_id: int
    finished_at: datetime

    @classmethod
    def from_lobby(cls, lobby) -> Optional["Winner"]:
        """Build the winner record from a persisted lobby, if one was declared."""
        if lobby.winner_user_id is None:
            return None
        return cls(
            user_id=lobby.winner_user_id,
            attempt_id=lobby.winner_attempt_id,
            finished_at=lobby.winner_finished_at,
        )
