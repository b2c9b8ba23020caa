"""Task Store."""

from __future__ import annotations

from codetrack.models.task import Task
from codetrack.repositories.base import Repository


class TaskRepository(Repository[Task]):
    model = Task
    resource = "task"

    def linked_to(self, annotation_id: str, owner_id: int | None = None) -> Task | None:
        """Oldest task linked to ``annotation_id``; None when nothing links to it."""
        q = self.query().filter(Task.codebase_task_id == annotation_id)
        if owner_id is not None:
            q = q.filter(Task.owner_id == owner_id)
        return q.order_by(Task.id).first()
