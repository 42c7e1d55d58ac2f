"""
QuizLobby Server Configuration

This file contains all server-side configurable settings.
Values can be overridden through QUIZLOBBY_* environment variables.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple
import os


# Backend directory (parent of the quizlobby package)
BACKEND_DIR = Path(__file__).parent.parent
DATA_DIR = BACKEND_DIR / "data"


def _default_database_url() -> str:
    return os.environ.get(
        "QUIZLOBBY_DATABASE_URL",
        f"sqlite:///{DATA_DIR / 'quizlobby.db'}",
    )


@dataclass
class ServerConfig:
    """Server networking configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: Tuple[str, ...] = (
        "http://localhost:5173",  # Vite default port
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    )


@dataclass
class DatabaseConfig:
    """Database configuration."""
    DATABASE_URL: str = field(default_factory=_default_database_url)
    ECHO_SQL: bool = False  # Log SQL queries
    SQLITE_TIMEOUT: float = 30.0  # Seconds a writer waits on a locked SQLite file


@dataclass
class LobbyConfig:
    """Lobby, invite and race settings."""
    MAX_PARTICIPANT_LIMIT: int = 50
    INVITE_TTL_HOURS: int = 24
    INVITE_CODE_BYTES: int = 8  # Minimum entropy for invite codes
    INVITE_CODE_MAX_ATTEMPTS: int = 5  # Retries on code collision
    # Scheduled auto-start polling interval (0 disables the scheduler)
    AUTO_START_POLL_SECONDS: float = field(
        default_factory=lambda: float(os.environ.get("QUIZLOBBY_AUTO_START_POLL_SECONDS", "1.0"))
    )


@dataclass
class Settings:
    """Main settings container."""
    server: ServerConfig = None
    database: DatabaseConfig = None
    lobby: LobbyConfig = None

    # Application info
    APP_NAME: str = "QuizLobby"
    VERSION: str = "0.1.0"
    DEBUG: bool = field(default_factory=lambda: os.environ.get("QUIZLOBBY_DEBUG", "0") == "1")

    def __post_init__(self):
        self.server = self.server or ServerConfig()
        self.database = self.database or DatabaseConfig()
        self.lobby = self.lobby or LobbyConfig()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
