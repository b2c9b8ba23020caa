"""Snapshot model: one full annotation scan of a project."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from codetrack.db.session import Base, JSONType


class Snapshot(Base):
    """Append-only scan result. Only ``accepted`` changes after insert."""

    __tablename__ = "scan_snapshots"

    __table_args__ = (
        Index("ix_scan_snapshots_project_accepted_created", "project_id", "accepted", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    data: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
