"""SQLAlchemy models."""

from codetrack.models.action import Action, ActionType
from codetrack.models.codebase_annotation import CodebaseAnnotation
from codetrack.models.diff_envelope import DiffEnvelope, EnvelopeStatus
from codetrack.models.project import IgnorePath, Project, TagConfig
from codetrack.models.snapshot import Snapshot
from codetrack.models.tag import Tag, TaskTag
from codetrack.models.task import Task, TaskPriority, TaskProgress, TaskVisibility
from codetrack.models.user import User

__all__ = [
    "Action",
    "ActionType",
    "CodebaseAnnotation",
    "DiffEnvelope",
    "EnvelopeStatus",
    "IgnorePath",
    "Project",
    "Snapshot",
    "Tag",
    "TagConfig",
    "Task",
    "TaskPriority",
    "TaskProgress",
    "TaskTag",
    "TaskVisibility",
    "User",
]
