"""DiffEnvelope model: the diff between two snapshots plus its review status."""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from codetrack.db.session import Base, JSONType


class EnvelopeStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    IGNORED = "IGNORED"


class DiffEnvelope(Base):
    """One row per scan attempt.

    At most one PENDING envelope per project: the partial unique index rejects
    a second one, and the orchestrator supersedes the previous one in the same
    transaction as the insert.
    """

    __tablename__ = "diff_envelopes"

    __table_args__ = (
        Index(
            "uq_diff_envelopes_project_pending",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("ix_diff_envelopes_project_created", "project_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    old_snapshot_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("scan_snapshots.id", ondelete="SET NULL"), nullable=True
    )
    new_snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("scan_snapshots.id", ondelete="CASCADE"), nullable=False
    )
    data: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(16), default=EnvelopeStatus.PENDING.value, nullable=False
    )
    branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    commit_sha: Mapped[str | None] = mapped_column(String(64), nullable=True)
    commit_msg: Mapped[str | None] = mapped_column(Text, nullable=True)
    commit_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    old_snapshot: Mapped["Snapshot"] = relationship(
        "Snapshot", foreign_keys=[old_snapshot_id]
    )
    new_snapshot: Mapped["Snapshot"] = relationship("Snapshot", foreign_keys=[new_snapshot_id])
