"""CodebaseAnnotation model: registry entry for one tracked annotation."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from codetrack.db.session import Base, JSONType


class CodebaseAnnotation(Base):
    """Stable-identity record keyed by the scanner-assigned annotation id.

    ``recent_scan_id`` is the snapshot the entry was last reconciled against;
    the next scan reads entries anchored to its baseline as the old side of
    the diff.
    """

    __tablename__ = "codebase_annotations"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    file: Mapped[str] = mapped_column(String(2048), nullable=False)
    line: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    context: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    recent_scan_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("scan_snapshots.id", ondelete="SET NULL"), nullable=True, index=True
    )
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
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

    def to_tracker_record(self) -> dict:
        """Render in the extraction tool's record format (``type`` becomes ``tag``)."""
        return {
            "id": self.id,
            "tag": self.type,
            "text": self.text,
            "file": self.file,
            "line": self.line,
            "context": self.context,
        }
