import os
import sys
import tempfile
import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Keep the app's own engine away from data/startai.db while tests import main
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(tempfile.gettempdir(), 'startai_test.db')}")
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../backend")))

from models import db_models
from services import auth


@pytest.fixture
def engine():
    # StaticPool: every session shares the single in-memory connection
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    db_models.Base.metadata.create_all(bind=engine)
    yield engine
    db_models.Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(db_session):
    """Insert a bare user row (no password hashing) and return its id."""
    def _make(email="user@example.com"):
        user = db_models.UserDB(email=email, password_hash="unused")
        db_session.add(user)
        db_session.commit()
        return user.id
    return _make


@pytest.fixture
def signed_up(db_session):
    """(user, token) for a freshly registered account."""
    user, _, token = auth.sign_up(db_session, "alice@example.com", "secret123")
    return user, token


@pytest.fixture
def clock(monkeypatch):
    """Controllable replacement for db_models.utcnow.

    Each call returns ``clock.now`` and then advances it by ``clock.step``.
    """
    class Clock:
        def __init__(self):
            self.now = datetime.datetime(2024, 5, 1, 12, 0, 0)
            self.step = datetime.timedelta(seconds=1)

        def __call__(self):
            current = self.now
            self.now = self.now + self.step
            return current

    fake = Clock()
    monkeypatch.setattr(db_models, "utcnow", fake)
    return fake


@pytest.fixture
def api_app(session_factory):
    from main import app
    from database import get_db

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()
