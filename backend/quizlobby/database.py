"""
Database configuration and session management.

This module sets up SQLAlchemy and provides database session
management for the application. Lobby coordination relies on the
store's atomic conditional updates, so every process shares the
same database rather than in-memory state.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.engine import Engine

from quizlobby.config import get_settings, DATA_DIR

settings = get_settings()

DATABASE_URL = settings.database.DATABASE_URL
_is_sqlite = DATABASE_URL.startswith("sqlite")

if _is_sqlite:
    # Ensure the data directory exists for the default SQLite file
    DATA_DIR.mkdir(parents=True, exist_ok=True)

# Create SQLAlchemy engine
engine = create_engine(
    DATABASE_URL,
    connect_args=(
        {
            "check_same_thread": False,  # Needed for SQLite
            "timeout": settings.database.SQLITE_TIMEOUT,
        }
        if _is_sqlite
        else {}
    ),
    echo=settings.database.ECHO_SQL,
)


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints on SQLite connections."""
    if type(dbapi_conn).__module__.startswith("sqlite3"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def get_db() -> Session:
    """
    Dependency function to get database session.

    Yields:
        Session: Database session that will be automatically closed.

    Usage:
        @router.get("/lobbies/{lobby_id}")
        async def get_lobby(lobby_id: str, db: Session = Depends(get_db)):
            return lobby_service.require_lobby(db, lobby_id)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """
    Initialise the database.

    Creates all tables defined in the models if they don't exist.
    This is called on application startup.
    """
    # Import all models here so they are registered with Base
    from quizlobby.models import invite, lobby, quiz, user  # noqa: F401

    Base.metadata.create_all(bind=engine)
