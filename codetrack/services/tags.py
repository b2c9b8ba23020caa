"""Tag service: owner-scoped tag upserts and task-tag link sync."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from codetrack.models.tag import Tag, TaskTag
from codetrack.repositories.tags import TagRepository, TaskTagRepository
from codetrack.schemas.tasks import TagUpsert
from codetrack.services.errors import ValidationFailure
from codetrack.services.keydiff import KeyDiff, diff_keys

logger = logging.getLogger(__name__)


def upsert_tag(db: Session, owner_id: int, title: str, color: str | None = None) -> Tag:
    """Return the owner's tag called ``title``, creating it if needed. Flushes only.

    Raises ValidationFailure for a blank title.
    """
    title = title.strip()
    if not title:
        raise ValidationFailure("tag title must not be blank")
    return TagRepository(db).upsert(owner_id, title, color)


def upsert_tags(db: Session, owner_id: int, tags: list[TagUpsert]) -> list[Tag]:
    """Upsert each desired tag; duplicates by title collapse to one row."""
    resolved: dict[str, Tag] = {}
    for tag in tags:
        title = tag.title.strip()
        if title in resolved:
            continue
        resolved[title] = upsert_tag(db, owner_id, title, tag.color)
    return list(resolved.values())


def sync_task_tags(db: Session, task_id: int, desired_tag_ids: list[int]) -> KeyDiff[int]:
    """Make the task's links equal ``desired_tag_ids``.

    Links only in desired are inserted, links only in current are deleted, and
    links in both have ``updated_at`` refreshed. Flushes; the caller commits.
    """
    links = TaskTagRepository(db)
    current = {link.tag_id: link for link in links.for_task(task_id)}
    diff = diff_keys(current.keys(), desired_tag_ids)

    now = datetime.now(timezone.utc)
    for tag_id in diff.removed:
        db.delete(current[tag_id])
    for tag_id in diff.kept:
        current[tag_id].updated_at = now
    for tag_id in diff.added:
        db.add(TaskTag(task_id=task_id, tag_id=tag_id, created_at=now, updated_at=now))
    db.flush()

    if diff.changed:
        logger.debug(
            "Task %s tags: +%s -%s (kept %s)", task_id, diff.added, diff.removed, diff.kept
        )
    return diff
