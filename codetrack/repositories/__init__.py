"""Entity repositories over a shared SQLAlchemy Session."""

from codetrack.repositories.annotations import CodebaseAnnotationRepository
from codetrack.repositories.base import Repository
from codetrack.repositories.diff_envelopes import DiffEnvelopeRepository
from codetrack.repositories.snapshots import SnapshotRepository
from codetrack.repositories.tags import TagRepository, TaskTagRepository
from codetrack.repositories.tasks import TaskRepository

__all__ = [
    "CodebaseAnnotationRepository",
    "DiffEnvelopeRepository",
    "Repository",
    "SnapshotRepository",
    "TagRepository",
    "TaskRepository",
    "TaskTagRepository",
]
