"""Tag and task-tag link stores."""

from __future__ import annotations

from codetrack.models.tag import Tag, TaskTag
from codetrack.repositories.base import Repository


class TagRepository(Repository[Tag]):
    model = Tag
    resource = "tag"

    def by_title(self, owner_id: int, title: str) -> Tag | None:
        return self.query().filter(Tag.owner_id == owner_id, Tag.title == title).first()

    def upsert(self, owner_id: int, title: str, color: str | None = None) -> Tag:
        """Return the owner's tag named ``title``, creating or reviving it."""
        tag = self.by_title(owner_id, title)
        if tag is None:
            return self.add(Tag(owner_id=owner_id, title=title, color=color))
        if tag.deleted:
            tag.deleted = False
        if color is not None and tag.color != color:
            tag.color = color
        self.db.flush()
        return tag


class TaskTagRepository(Repository[TaskTag]):
    model = TaskTag
    resource = "task tag"

    def for_task(self, task_id: int) -> list[TaskTag]:
        return (
            self.query()
            .filter(TaskTag.task_id == task_id)
            .order_by(TaskTag.created_at, TaskTag.tag_id)
            .all()
        )
