"""
Pytest configuration and fixtures.

Tests run against an in-memory SQLite database; tables are created and
dropped around every test that asks for ``db``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tests.test_constants import (
    TEST_PASSWORD,
    TEST_REPO_URL,
    TEST_SECRET_KEY,
    TEST_USERNAME,
    TEST_USERNAME_OTHER,
)

# Must be set before codetrack.db is imported (the engine is built at import time)
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)
os.environ["KEEP_SCAN_ARTIFACTS"] = "false"

FAKE_TRACKER = Path(__file__).resolve().parent / "fake_tracker.py"


@pytest.fixture
def db() -> Session:
    """Session on a fresh schema."""
    import codetrack.models  # noqa: F401
    from codetrack.db import Base, SessionLocal, engine

    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def settings(tmp_path: Path):
    """Settings pointing the tracker at the fake tool and scans at tmp_path."""
    from codetrack.config import Settings

    s = Settings()
    s.tracker_path = [sys.executable, str(FAKE_TRACKER)]
    s.tracker_timeout = 30.0
    s.scan_workdir = str(tmp_path)
    s.keep_scan_artifacts = False
    return s


@pytest.fixture
def user(db: Session):
    from codetrack.models import User

    u = User(username=TEST_USERNAME)
    u.set_password(TEST_PASSWORD)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def other_user(db: Session):
    from codetrack.models import User

    u = User(username=TEST_USERNAME_OTHER)
    u.set_password(TEST_PASSWORD)
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def project(db: Session, user):
    """A project linked to a GitHub repository."""
    from codetrack.models import Project

    p = Project(
        owner_id=user.id,
        slug="widgets",
        name="Widgets",
        repo_url=TEST_REPO_URL,
        repo_id=42,
    )
    db.add(p)
    db.commit()
    return p


@pytest.fixture
def auth_headers(user) -> dict[str, str]:
    from codetrack.services.auth import create_access_token

    return {"Authorization": f"Bearer {create_access_token({'sub': user.username})}"}


@pytest.fixture
def client() -> TestClient:
    """FastAPI test client (lifespan not run)."""
    from codetrack.main import app

    return TestClient(app)


@pytest.fixture
def client_with_db(db: Session) -> TestClient:
    """TestClient whose routes (streaming ones included) use the test session."""
    from codetrack.db.session import get_db, get_session_factory
    from codetrack.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: (lambda: db)
    c = TestClient(app)
    yield c
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_session_factory, None)
