"""Scan, diff envelope and reconciliation schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from codetrack.schemas.annotations import ScanConfig


class SnapshotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    created_at: datetime
    accepted: bool
    data: list[dict[str, Any]]


class SnapshotSummary(BaseModel):
    """Snapshot without its payload, for history listings."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    accepted: bool
    annotation_count: int = 0


class DiffEnvelopeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    old_snapshot_id: int | None
    new_snapshot_id: int
    status: str
    data: list[dict[str, Any]]
    branch: str | None = None
    commit_sha: str | None = None
    commit_msg: str | None = None
    commit_url: str | None = None
    created_at: datetime


class PendingUpdateRead(DiffEnvelopeRead):
    """Pending envelope with both snapshots attached for review."""

    old_data: SnapshotRead | None = None
    new_data: SnapshotRead | None = None


class ReconcileRequest(BaseModel):
    """Body of POST /api/projects/{project_id}/scan_status.

    ``actions`` maps an action name (CREATE, CONFIRM, ...) to annotation ids;
    ``titles`` maps annotation ids to task titles.
    """

    id: int
    actions: dict[str, list[str]] = Field(default_factory=dict)
    titles: dict[str, str] = Field(default_factory=dict)
    approved: bool


class DecisionFailure(BaseModel):
    action: str
    annotation_id: str
    reason: str


class DecisionFlag(BaseModel):
    action: str
    annotation_id: str
    note: str


class ReconcileResponse(BaseModel):
    envelope_id: int
    status: str
    applied: list[DecisionFlag] = Field(default_factory=list)
    failures: list[DecisionFailure] = Field(default_factory=list)
    flagged: list[DecisionFlag] = Field(default_factory=list)


class ProjectConfigRequest(BaseModel):
    """Body of PUT /api/projects/{project_id}/config."""

    config: ScanConfig
    scan_branch: str | None = Field(None, max_length=255)
