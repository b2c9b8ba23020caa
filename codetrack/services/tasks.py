"""Task Upsert Service: create/update tasks and keep their tag links in sync."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from codetrack.models.action import ActionType
from codetrack.models.project import Project
from codetrack.models.task import Task, TaskProgress
from codetrack.repositories.annotations import CodebaseAnnotationRepository
from codetrack.repositories.tags import TaskTagRepository
from codetrack.repositories.tasks import TaskRepository
from codetrack.schemas.tasks import CodebaseAnnotationRead, TagUpsert, TaskRead, TaskUpsert
from codetrack.services.actions import record_task_action
from codetrack.services.errors import NotFoundError, UnauthorizedError
from codetrack.services.tags import sync_task_tags, upsert_tags

logger = logging.getLogger(__name__)


def upsert_task(
    db: Session,
    task_data: TaskUpsert,
    desired_tags: list[TagUpsert],
    owner_id: int,
    *,
    commit: bool = True,
) -> Task:
    """Create or update a task owned by ``owner_id`` and attach ``desired_tags``.

    An update only touches fields the caller explicitly set. Tag links are
    synced only when tags are given, so a plain field update keeps them.
    Records CREATE_TASK or UPDATE_TASK. With ``commit=False`` the caller owns
    the transaction (reconciliation runs each decision in a savepoint).

    Raises UnauthorizedError on any owner mismatch, NotFoundError when ``id``
    or ``project_id`` does not resolve.
    """
    if task_data.owner_id is not None and task_data.owner_id != owner_id:
        raise UnauthorizedError("owner_id mismatch")

    repo = TaskRepository(db)
    previous: Task | None = None
    if task_data.id is not None:
        previous = repo.require(task_data.id)
        if previous.owner_id != owner_id:
            raise UnauthorizedError("User does not own this task")

    if task_data.project_id is not None:
        project = db.get(Project, task_data.project_id)
        if project is None:
            raise NotFoundError("project", task_data.project_id)
        if project.owner_id != owner_id:
            raise UnauthorizedError("User does not own this project")

    if previous is None:
        fields = task_data.model_dump(exclude={"id", "owner_id"}, mode="json")
        task = repo.add(Task(owner_id=owner_id, **fields))
        action_type = ActionType.CREATE_TASK
        description = "Created task"
    else:
        was_completed = previous.progress == TaskProgress.COMPLETED.value
        fields = task_data.model_dump(exclude={"id", "owner_id"}, exclude_unset=True, mode="json")
        for key, value in fields.items():
            setattr(previous, key, value)
        db.flush()
        task = previous
        action_type = ActionType.UPDATE_TASK
        fresh_complete = task.progress == TaskProgress.COMPLETED.value and not was_completed
        description = "Completed task" if fresh_complete else "Updated task"

    record_task_action(db, task, action_type, description)

    if desired_tags:
        tags = upsert_tags(db, owner_id, desired_tags)
        sync_task_tags(db, task.id, [tag.id for tag in tags])

    if commit:
        db.commit()
        db.refresh(task)
    logger.info("%s task %s for owner %s", description, task.id, owner_id)
    return task


def save_task_tags(
    db: Session, task_id: int, desired_tags: list[TagUpsert], owner_id: int
) -> TaskRead:
    """Replace the task's tag set with ``desired_tags`` (an empty list clears it)."""
    task = TaskRepository(db).require(task_id)
    if task.owner_id != owner_id:
        raise UnauthorizedError("User does not own this task")
    tags = upsert_tags(db, owner_id, desired_tags)
    sync_task_tags(db, task.id, [tag.id for tag in tags])
    db.commit()
    return get_task(db, task_id, owner_id)


def get_task(db: Session, task_id: int, owner_id: int) -> TaskRead:
    """Task with its tag ids and linked annotation.

    A link whose registry row was removed (UNLINK) reads as no link.
    """
    task = TaskRepository(db).get(task_id)
    if task is None or task.owner_id != owner_id:
        raise NotFoundError("task", task_id)

    annotation = None
    if task.codebase_task_id is not None:
        annotation = CodebaseAnnotationRepository(db).get(task.codebase_task_id)

    read = TaskRead.model_validate(task)
    read.tags = [link.tag_id for link in TaskTagRepository(db).for_task(task.id)]
    if annotation is None:
        read.codebase_task_id = None
    else:
        read.codebase_task = CodebaseAnnotationRead.model_validate(annotation)
    return read
