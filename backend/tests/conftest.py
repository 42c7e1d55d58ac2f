"""
Shared fixtures: a throwaway SQLite database, seeded collaborator rows
and a FastAPI test client running the application lifespan.
"""

import os
import sys
import tempfile

import pytest

# Point the app at a test database before any quizlobby module is imported
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="quizlobby-tests-")
os.environ["QUIZLOBBY_DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DATA_DIR, 'test.db')}"
os.environ["QUIZLOBBY_AUTO_START_POLL_SECONDS"] = "0"

# Ensure the backend root (containing main.py and quizlobby) is on sys.path
BACKEND_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from fastapi.testclient import TestClient  # noqa: E402

from quizlobby.database import Base, SessionLocal, engine, init_db  # noqa: E402
from quizlobby.models.quiz import Attempt, Quiz  # noqa: E402
from quizlobby.models.user import User  # noqa: E402


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test and drop them afterwards."""
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(setup_database):
    """Database session for direct service calls."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client(setup_database):
    """FastAPI test client with the lifespan (broadcaster) running."""
    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def quiz(db):
    """A quiz known to the quiz collaborator."""
    quiz = Quiz(title="World Capitals")
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    return quiz


@pytest.fixture
def users(db):
    """Five users known to the identity collaborator; returns their IDs."""
    created = [User(username=f"user{i}", display_name=f"User {i}") for i in range(1, 6)]
    db.add_all(created)
    db.commit()
    return [user.id for user in created]


@pytest.fixture
def make_attempt(db):
    """Factory recording a completed attempt as the quiz service would."""
    def _make_attempt(user_id, quiz_id, lobby_id=None, score=0, completed_at=None):
        attempt = Attempt(user_id=user_id, quiz_id=quiz_id, lobby_id=lobby_id, score=score)
        if completed_at is not None:
            attempt.completed_at = completed_at
        db.add(attempt)
        db.commit()
        db.refresh(attempt)
        return attempt

    return _make_attempt
