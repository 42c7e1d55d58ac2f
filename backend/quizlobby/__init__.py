"""
QuizLobby: multiplayer lobby coordination for quiz races.

This package provides:
- Lobby state machine backed by conditional database updates (services/lobby_service.py)
- Invite codes for joining lobbies (services/invite_service.py)
- Exactly-once winner declaration for lobby races (services/race_service.py)
- Live event fan-out to lobby subscribers (core/broadcaster.py)
"""

__version__ = "0.1.0"
