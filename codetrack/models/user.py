"""User model."""

from __future__ import annotations

from datetime import datetime, timezone

import bcrypt as _bcrypt
from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from codetrack.db.session import Base


class User(Base):
    """Owner of projects, tasks and tags. Every ownership check compares against ``id``."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def set_password(self, password: str) -> None:
        """Store a bcrypt hash of ``password``."""
        hashed = _bcrypt.hashpw(password.encode("utf-8"), _bcrypt.gensalt())
        self.password_hash = hashed.decode("utf-8")

    def verify_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return _bcrypt.checkpw(password.encode("utf-8"), self.password_hash.encode("utf-8"))
