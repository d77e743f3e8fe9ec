"""Shared test fixtures.

Sets environment variables BEFORE any app imports so that
``app.config.settings`` resolves without needing a real .env file or
PostgreSQL.
"""

import os
from datetime import datetime, timedelta, timezone

# --- Environment setup (must happen before app imports) -------------------
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# --- Now it's safe to import app modules ---------------------------------
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from starlette.testclient import TestClient

from app.database import Base, get_db
from app.main import app
from app.models.message import Message
from app.models.user import User
from app.services.actor import Actor
from app.services.schema_probe import set_admin_read_schema


# In-memory SQLite engine shared across the test session
_engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
_TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def _create_tables():
    """Create all tables once, drop them when the session ends."""
    Base.metadata.create_all(bind=_engine)
    yield
    Base.metadata.drop_all(bind=_engine)


@pytest.fixture(autouse=True)
def _reset_admin_read_schema():
    set_admin_read_schema(None)
    yield
    set_admin_read_schema(None)


@pytest.fixture()
def db_session():
    """Yield a transactional DB session that rolls back after each test."""
    connection = _engine.connect()
    transaction = connection.begin()
    session = _TestingSession(bind=connection)
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture()
def client(db_session):
    """FastAPI TestClient with ``get_db`` overridden to use the test session."""

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(db_session):
    """Factory: ``make_user("Guidance Counselor", name="Cora")`` -> User."""
    counter = {"n": 0}

    def _make(role: str, *, name: str | None = None, email: str | None = None) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}-{role.replace(' ', '_').lower()}@example.edu",
            name=name or f"{role.title()} {counter['n']}",
            role=role,
        )
        db_session.add(user)
        db_session.flush()
        return user

    return _make


@pytest.fixture()
def make_message(db_session):
    """Factory for raw message rows, bypassing the send rules.

    ``minutes`` offsets ``created_at`` from a fixed base time so ordering and
    deletion cutoffs are deterministic.
    """

    def _make(
        *,
        sender: str,
        sender_id: int | None,
        recipient_role: str | None = None,
        recipient_id: int | None = None,
        user_id: int | None = None,
        conversation_id: str | None = None,
        content: str = "hello",
        minutes: int = 0,
        is_read: bool | None = False,
        counselor_is_read: bool | None = False,
        sender_name: str | None = None,
    ) -> Message:
        created = BASE_TIME + timedelta(minutes=minutes)
        message = Message(
            sender=sender,
            sender_id=sender_id,
            sender_name=sender_name,
            recipient_role=recipient_role,
            recipient_id=recipient_id,
            user_id=user_id,
            conversation_id=conversation_id,
            content=content,
            is_read=is_read,
            counselor_is_read=counselor_is_read,
            created_at=created,
            updated_at=created,
        )
        db_session.add(message)
        db_session.flush()
        return message

    return _make


def actor_for(user: User) -> Actor:
    return Actor.from_user(user)


def auth(user: User) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}
