"""Project model and its scan configuration rows."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from codetrack.db.session import Base


class Project(Base):
    """A user project, optionally linked to a source repository."""

    __tablename__ = "projects"

    __table_args__ = (UniqueConstraint("owner_id", "slug", name="uq_projects_owner_slug"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slug: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    repo_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    repo_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    scan_branch: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    tag_configs: Mapped[list["TagConfig"]] = relationship(
        "TagConfig", back_populates="project", cascade="all, delete-orphan"
    )
    ignore_paths: Mapped[list["IgnorePath"]] = relationship(
        "IgnorePath", back_populates="project", cascade="all, delete-orphan"
    )

    @property
    def is_linked(self) -> bool:
        """True when the project points at a repository the scanner can fetch."""
        return bool(self.repo_url and self.repo_id)


class TagConfig(Base):
    """One match rule for a tag in a project's scan configuration."""

    __tablename__ = "project_tag_configs"

    __table_args__ = (
        UniqueConstraint("project_id", "tag_id", "match", name="uq_project_tag_configs_rule"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tags.id", ondelete="CASCADE"), nullable=False
    )
    match: Mapped[str] = mapped_column(String(255), nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="tag_configs")
    tag: Mapped["Tag"] = relationship("Tag")


class IgnorePath(Base):
    """A glob the extraction tool skips for this project."""

    __tablename__ = "project_ignore_paths"

    __table_args__ = (
        UniqueConstraint("project_id", "path", name="uq_project_ignore_paths_path"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    path: Mapped[str] = mapped_column(String(1024), nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="ignore_paths")
