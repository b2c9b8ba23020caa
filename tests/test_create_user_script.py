"""Tests for the create_user script."""

from __future__ import annotations

from unittest.mock import patch

from codetrack.models import User
from codetrack.scripts.create_user import main
from tests.test_constants import TEST_PASSWORD


def test_creates_user(db, capsys) -> None:
    with patch("codetrack.scripts.create_user.SessionLocal", return_value=db):
        code = main(["--username", "newbie", "--password", TEST_PASSWORD])
    assert code == 0
    assert "created successfully" in capsys.readouterr().out
    assert db.query(User).filter(User.username == "newbie").one().verify_password(TEST_PASSWORD)


def test_existing_user_is_not_replaced(db, user) -> None:
    with patch("codetrack.scripts.create_user.SessionLocal", return_value=db):
        code = main(["--username", user.username, "--password", TEST_PASSWORD])
    assert code == 1
    assert db.query(User).count() == 1
