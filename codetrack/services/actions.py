"""Action history: append-only timeline rows for task and project changes."""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from codetrack.models.action import Action, ActionType
from codetrack.models.project import Project
from codetrack.models.task import Task


def record_action(
    db: Session,
    owner_id: int,
    action_type: ActionType,
    description: str,
    data: dict[str, Any] | None = None,
) -> Action:
    """Add an Action row and flush. The caller commits."""
    action = Action(
        owner_id=owner_id,
        type=action_type.value,
        description=description,
        data=data,
    )
    db.add(action)
    db.flush()
    return action


def record_task_action(
    db: Session, task: Task, action_type: ActionType, description: str | None = None
) -> Action:
    """Record a change to ``task``, snapshotting the fields the timeline shows."""
    verb = {
        ActionType.CREATE_TASK: "Created",
        ActionType.UPDATE_TASK: "Updated",
        ActionType.DELETE_TASK: "Deleted",
    }.get(action_type, "Changed")
    return record_action(
        db,
        task.owner_id,
        action_type,
        description or f"{verb} task {task.title}",
        {
            "task_id": task.id,
            "project_id": task.project_id,
            "codebase_task_id": task.codebase_task_id,
            "title": task.title,
            "progress": task.progress,
        },
    )


def record_project_action(
    db: Session,
    project: Project,
    action_type: ActionType,
    description: str,
    data: dict[str, Any] | None = None,
) -> Action:
    payload = {"project_id": project.id, "slug": project.slug}
    payload.update(data or {})
    return record_action(db, project.owner_id, action_type, description, payload)
