"""Task and tag schemas for request/response validation."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from codetrack.models.task import TaskPriority, TaskProgress, TaskVisibility


class TagUpsert(BaseModel):
    """A desired tag, identified by title within the owner's namespace."""

    title: str = Field(..., min_length=1, max_length=255)
    color: str | None = Field(None, max_length=16)


class TaskUpsert(BaseModel):
    """Task fields accepted by the upsert service. ``id`` present means update."""

    id: int | None = None
    owner_id: int | None = None
    project_id: int | None = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    progress: TaskProgress = TaskProgress.UNSTARTED
    priority: TaskPriority = TaskPriority.LOW
    visibility: TaskVisibility = TaskVisibility.PRIVATE


class TaskUpsertRequest(BaseModel):
    """Body of POST /api/tasks/upsert."""

    task: TaskUpsert
    tags: list[TagUpsert] = Field(default_factory=list)


class SaveTagsRequest(BaseModel):
    """Body of PUT /api/tasks/{task_id}/tags."""

    tags: list[TagUpsert]


class CodebaseAnnotationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: str
    text: str
    file: str
    line: int
    context: list[str] | None = None
    recent_scan_id: int | None = None
    branch: str | None = None
    commit_sha: str | None = None


class TaskRead(BaseModel):
    """Task with its tag ids and linked annotation.

    ``codebase_task_id`` is None when the stored link no longer resolves.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    project_id: int | None
    codebase_task_id: str | None
    title: str
    description: str | None
    progress: str
    priority: str
    visibility: str
    created_at: datetime
    updated_at: datetime
    tags: list[int] = Field(default_factory=list)
    codebase_task: CodebaseAnnotationRead | None = None
