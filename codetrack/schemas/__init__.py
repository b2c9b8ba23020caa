"""Pydantic schemas for request/response validation."""

from codetrack.schemas.annotations import (
    AnnotationFields,
    AnnotationRecord,
    DiffItem,
    DiffType,
    ProjectScanConfig,
    ScanConfig,
    TagRule,
)
from codetrack.schemas.auth import LoginRequest, TokenResponse, UserRead
from codetrack.schemas.scans import (
    DecisionFailure,
    DecisionFlag,
    DiffEnvelopeRead,
    PendingUpdateRead,
    ProjectConfigRequest,
    ReconcileRequest,
    ReconcileResponse,
    SnapshotRead,
    SnapshotSummary,
)
from codetrack.schemas.tasks import (
    CodebaseAnnotationRead,
    SaveTagsRequest,
    TagUpsert,
    TaskRead,
    TaskUpsert,
    TaskUpsertRequest,
)

__all__ = [
    # Tracker wire formats
    "AnnotationFields",
    "AnnotationRecord",
    "DiffItem",
    "DiffType",
    "ProjectScanConfig",
    "ScanConfig",
    "TagRule",
    # Auth
    "LoginRequest",
    "TokenResponse",
    "UserRead",
    # Scans and reconciliation
    "DecisionFailure",
    "DecisionFlag",
    "DiffEnvelopeRead",
    "PendingUpdateRead",
    "ProjectConfigRequest",
    "ReconcileRequest",
    "ReconcileResponse",
    "SnapshotRead",
    "SnapshotSummary",
    # Tasks
    "CodebaseAnnotationRead",
    "SaveTagsRequest",
    "TagUpsert",
    "TaskRead",
    "TaskUpsert",
    "TaskUpsertRequest",
]
