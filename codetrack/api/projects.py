"""Project API routes: scanning, scan review and reconciliation, scan config."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from codetrack.api.deps import (
    get_db,
    get_github_token,
    get_session_factory,
    http_error,
    require_auth,
)
from codetrack.models.user import User
from codetrack.schemas.annotations import ProjectScanConfig
from codetrack.schemas.scans import (
    DecisionFailure,
    DecisionFlag,
    PendingUpdateRead,
    ProjectConfigRequest,
    ReconcileRequest,
    ReconcileResponse,
    SnapshotSummary,
)
from codetrack.services.errors import ServiceError
from codetrack.services.process import CancellationToken
from codetrack.services.projects import (
    get_owned_project,
    get_pending_update,
    get_project_config,
    get_scan_history,
    save_project_config,
)
from codetrack.services.reconciliation import DecisionResult, ReconciliationEngine
from codetrack.services.scan_orchestrator import ScanOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{project_id}/scan")
async def api_scan_project(
    project_id: int,
    user: User = Depends(require_auth),
    github_token: str | None = Depends(get_github_token),
    session_factory: sessionmaker = Depends(get_session_factory),
) -> StreamingResponse:
    """Run a scan and stream its progress as text lines.

    The stream ends with ``done`` on success or ``error: <reason>`` on
    failure. If the client disconnects the scan is cancelled.
    """
    owner_id = user.id

    async def stream():
        db = session_factory()
        cancel = CancellationToken()
        channel = ScanOrchestrator(db).scan(project_id, owner_id, github_token, cancel)
        try:
            async for line in channel.lines():
                yield line
        finally:
            if not channel.finished:
                logger.info("Scan of project %s abandoned by client; cancelling", project_id)
                cancel.cancel()
                channel.cancel()
            await asyncio.wait([channel.task])
            db.close()

    return StreamingResponse(
        stream(),
        media_type="text/plain; charset=utf-8",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/{project_id}/updates/pending", response_model=PendingUpdateRead | None)
def api_get_pending_update(
    project_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> PendingUpdateRead | None:
    """The pending diff envelope with old/new snapshot data, or null."""
    try:
        return get_pending_update(db, project_id, user.id)
    except ServiceError as e:
        raise http_error(e) from e


@router.get("/{project_id}/scans", response_model=list[SnapshotSummary])
def api_get_scan_history(
    project_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> list[SnapshotSummary]:
    try:
        return get_scan_history(db, project_id, user.id)
    except ServiceError as e:
        raise http_error(e) from e


def _flags(results: list[DecisionResult]) -> list[DecisionFlag]:
    return [
        DecisionFlag(action=r.action, annotation_id=r.annotation_id, note=r.detail)
        for r in results
    ]


@router.post("/{project_id}/scan_status", response_model=ReconcileResponse)
def api_reconcile(
    project_id: int,
    body: ReconcileRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> ReconcileResponse:
    """Accept or reject a diff envelope and apply the chosen per-annotation actions.

    Individual decision failures do not fail the request; they are listed in
    ``failures``.
    """
    engine = ReconciliationEngine(db)
    try:
        result = engine.reconcile(
            project_id, user.id, body.id, body.actions, body.titles, body.approved
        )
    except ServiceError as e:
        raise http_error(e) from e

    return ReconcileResponse(
        envelope_id=result.envelope_id,
        status=result.status.value,
        applied=_flags(result.applied),
        failures=[
            DecisionFailure(action=r.action, annotation_id=r.annotation_id, reason=r.detail)
            for r in result.failures
        ],
        flagged=_flags(result.flagged),
    )


@router.get("/{project_id}/config", response_model=ProjectScanConfig)
def api_get_project_config(
    project_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> ProjectScanConfig:
    try:
        get_owned_project(db, project_id, user.id)
        return get_project_config(db, project_id)
    except ServiceError as e:
        raise http_error(e) from e


@router.put("/{project_id}/config", response_model=ProjectScanConfig)
def api_save_project_config(
    project_id: int,
    body: ProjectConfigRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_auth),
) -> ProjectScanConfig:
    """Replace tag match rules, ignore paths and scan branch."""
    try:
        return save_project_config(db, project_id, user.id, body.config, body.scan_branch)
    except ServiceError as e:
        raise http_error(e) from e
