"""
Live lobby events.

Each event kind is a tagged variant with a fixed payload shape, so
subscribers can handle every kind exhaustively.

Wire format (server -> client):
{
    "type": "lobby_updated" | "lobby_started" | "lobby_winner_declared" | "lobby_ended",
    "data": {...}
}
"""

import json
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from quizlobby.schemas import LobbySnapshot


class LobbyUpdatedEvent(BaseModel):
    """Full snapshot after a join, leave or start."""
    kind: Literal["lobby_updated"] = "lobby_updated"
    lobby: LobbySnapshot


class LobbyStartedEvent(BaseModel):
    kind: Literal["lobby_started"] = "lobby_started"
    lobby_id: str
    start_time: datetime


class LobbyWinnerDeclaredEvent(BaseModel):
    kind: Literal["lobby_winner_declared"] = "lobby_winner_declared"
    lobby_id: str
    user_id: int
    attempt_id: int
    finished_at: datetime


class LobbyEndedEvent(BaseModel):
    kind: Literal["lobby_ended"] = "lobby_ended"
    lobby_id: str
    reason: Optional[str] = None  # host_left, empty, host_ended, deleted


LobbyEvent = Annotated[
    Union[LobbyUpdatedEvent, LobbyStartedEvent, LobbyWinnerDeclaredEvent, LobbyEndedEvent],
    Field(discriminator="kind"),
]

_event_adapter = TypeAdapter(LobbyEvent)


def encode_event(event: LobbyEvent) -> str:
    """Serialise an event to its JSON wire message."""
    return json.dumps({
        "type": event.kind,
        "data": event.model_dump(mode="json", exclude={"kind"}),
    })


def decode_event(message: str) -> LobbyEvent:
    """Parse a JSON wire message back into its event variant."""
    raw = json.loads(message)
    return _event_adapter.validate_python({"kind": raw["type"], **raw["data"]})
