"""Task API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from codetrack.api.deps import get_db, http_error, require_auth
from codetrack.models.user import User
from codetrack.schemas.tasks import SaveTagsRequest, TaskRead, TaskUpsertRequest
from codetrack.services.errors import ServiceError
from codetrack.services.tasks import get_task, save_task_tags, upsert_task

router = APIRouter()


@router.post("/upsert", response_model=TaskRead)
def api_upsert_task(
    body: TaskUpsertRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> TaskRead:
    """Create a task, or update it when ``task.id`` is set."""
    try:
        task = upsert_task(db, body.task, body.tags, user.id)
        return get_task(db, task.id, user.id)
    except ServiceError as e:
        raise http_error(e) from e


@router.put("/{task_id}/tags", response_model=TaskRead)
def api_save_task_tags(
    task_id: int,
    body: SaveTagsRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> TaskRead:
    try:
        return save_task_tags(db, task_id, body.tags, user.id)
    except ServiceError as e:
        raise http_error(e) from e


@router.get("/{task_id}", response_model=TaskRead)
def api_get_task(
    task_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> TaskRead:
    try:
        return get_task(db, task_id, user.id)
    except ServiceError as e:
        raise http_error(e) from e
