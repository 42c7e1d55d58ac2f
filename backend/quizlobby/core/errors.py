"""
Lobby error taxonomy.

Every error carries a stable machine-readable ``kind`` plus a
human-readable message, and the HTTP status it maps to. Losing a
winner race is not an error and has no entry here.
"""


class LobbyError(Exception):
    """Base class for all lobby coordination errors."""
    kind = "lobby_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.message}


class NotFoundError(LobbyError):
    """Lobby, invite or quiz does not exist."""
    kind = "not_found"
    status_code = 404


class ForbiddenError(LobbyError):
    """Caller is not allowed to perform a host-only action."""
    kind = "forbidden"
    status_code = 403


class InvalidStateError(LobbyError):
    """Action is not valid for the lobby's current lifecycle state."""
    kind = "invalid_state"
    status_code = 400


class ConflictError(LobbyError):
    """User is already a member of the lobby."""
    kind = "conflict"
    status_code = 409


class CapacityExceededError(LobbyError):
    """Lobby is at its participant limit."""
    kind = "capacity_exceeded"
    status_code = 409


class ExpiredError(LobbyError):
    """Invite code is past its expiry."""
    kind = "expired"
    status_code = 410
