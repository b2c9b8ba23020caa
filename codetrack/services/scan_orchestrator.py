"""Scan orchestrator: fetch, extract, diff and persist one project scan.

Steps stream as progress lines on a ScanChannel. The pipeline never raises
to its caller; every failure ends the channel with an ``error: ...`` line.
Rows written before a failure (e.g. the snapshot) are kept.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codetrack.config import Settings, get_settings
from codetrack.models.action import ActionType
from codetrack.models.project import Project
from codetrack.repositories.annotations import CodebaseAnnotationRepository
from codetrack.repositories.diff_envelopes import DiffEnvelopeRepository
from codetrack.repositories.snapshots import SnapshotRepository
from codetrack.schemas.annotations import AnnotationRecord, DiffItem, ProjectScanConfig
from codetrack.services.actions import record_project_action
from codetrack.services.archive import unpack_archive
from codetrack.services.errors import (
    ExternalToolFailure,
    NotFoundError,
    PersistenceFailure,
    ServiceError,
    ValidationFailure,
)
from codetrack.services.github import GitHubClient, parse_repo_url
from codetrack.services.keydiff import diff_keys
from codetrack.services.process import CancellationToken
from codetrack.services.projects import get_owned_project, get_project_config
from codetrack.services.scan_channel import ScanChannel, ScanDone, ScanFailed, ScanState
from codetrack.services.tracker import TrackerClient

module_logger = logging.getLogger(__name__)


class ScanOrchestrator:
    """Runs the scan pipeline for one project against one database session."""

    def __init__(
        self,
        db: Session,
        *,
        fetcher: GitHubClient | None = None,
        tracker: TrackerClient | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.db = db
        self.settings = settings or get_settings()
        self.fetcher = fetcher or GitHubClient(self.settings)
        self.tracker = tracker or TrackerClient(self.settings)
        self.logger = logger or module_logger
        self.snapshots = SnapshotRepository(db)
        self.envelopes = DiffEnvelopeRepository(db)
        self.annotations = CodebaseAnnotationRepository(db)

    def scan(
        self,
        project_id: int,
        owner_id: int,
        access_token: str | None,
        cancel: CancellationToken | None = None,
    ) -> ScanChannel:
        """Start the pipeline in a background task and return its channel."""
        channel = ScanChannel(self.settings.scan_channel_size)
        channel.task = asyncio.create_task(
            self.run(channel, project_id, owner_id, access_token, cancel)
        )
        return channel

    async def run(
        self,
        channel: ScanChannel,
        project_id: int,
        owner_id: int,
        access_token: str | None,
        cancel: CancellationToken | None = None,
    ) -> None:
        """Drive the pipeline, always finishing ``channel`` unless this task is cancelled."""
        try:
            outcome = await self._pipeline(channel, project_id, owner_id, access_token, cancel)
        except NotFoundError:
            self.logger.info(
                "Scan refused: project %s not found for owner %s", project_id, owner_id
            )
            await channel.finish(ScanFailed(channel.state, "project not found or access denied"))
        except ServiceError as e:
            self.logger.error(
                "Scan of project %s failed at %s: %s", project_id, channel.state.value, e
            )
            await channel.finish(ScanFailed(channel.state, str(e)))
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error("Scan of project %s failed to persist: %s", project_id, e)
            await channel.finish(ScanFailed(channel.state, "database error"))
        except Exception:
            self.logger.exception(
                "Scan of project %s crashed at %s", project_id, channel.state.value
            )
            await channel.finish(ScanFailed(channel.state, "internal error"))
        else:
            await channel.finish(outcome)

    # ── Pipeline ─────────────────────────────────────────────────────

    @contextmanager
    def _workdir(self, project_id: int) -> Iterator[Path]:
        path = Path(
            tempfile.mkdtemp(
                prefix=f"codetrack-scan-{project_id}-",
                dir=self.settings.scan_workdir or None,
            )
        )
        try:
            yield path
        finally:
            if self.settings.keep_scan_artifacts:
                self.logger.info("Keeping scan artifacts in %s", path)
            else:
                shutil.rmtree(path, ignore_errors=True)

    @staticmethod
    def _checkpoint(cancel: CancellationToken | None) -> None:
        if cancel is not None and cancel.cancelled:
            raise ExternalToolFailure("scan cancelled")

    def _load_project(self, project_id: int, owner_id: int) -> tuple[Project, ProjectScanConfig]:
        project = get_owned_project(self.db, project_id, owner_id)
        if not project.is_linked:
            raise ValidationFailure("project is not linked to a repository")
        return project, get_project_config(self.db, project.id)

    async def _pipeline(
        self,
        channel: ScanChannel,
        project_id: int,
        owner_id: int,
        access_token: str | None,
        cancel: CancellationToken | None,
    ) -> ScanDone:
        await channel.emit(ScanState.STARTING, "starting")
        project, scan_config = self._load_project(project_id, owner_id)
        owner, repo = parse_repo_url(project.repo_url)
        branch = scan_config.scan_branch

        with self._workdir(project.id) as workdir:
            await channel.emit(ScanState.CLONING, "cloning repo")
            archive = await self.fetcher.fetch_archive(owner, repo, branch, access_token)
            self._checkpoint(cancel)
            await channel.emit(ScanState.CLONING, "decompressing repo")
            repo_path = unpack_archive(archive, workdir / "repo")

            config_path = self.tracker.write_config(workdir, scan_config.config)
            if scan_config.config.tags:
                await channel.emit(ScanState.EXTRACTING, "loaded config from project")
            await channel.emit(ScanState.EXTRACTING, "scanning repo")
            records = await self.tracker.extract(repo_path, config_path, workdir, cancel)

            await channel.emit(ScanState.EXTRACTING, "saving scan")
            snapshot = self.snapshots.create(project.id, self._snapshot_data(records))
            self.db.commit()

            await channel.emit(ScanState.DIFFING, "finding existing scan")
            baseline = self.snapshots.latest_accepted(project.id)
            old_records = (
                [row.to_tracker_record() for row in self.annotations.for_scan(baseline.id)]
                if baseline is not None
                else []
            )
            await channel.emit(ScanState.DIFFING, "running diff")
            items = await self.tracker.diff(old_records, workdir, cancel)
            self._checkpoint(cancel)
            self._log_summary(project.id, old_records, records, items)

            commit_info = None
            if branch:
                await channel.emit(ScanState.PERSISTING, "fetching branch info")
                commit_info = await self._branch_info(owner, repo, branch, access_token)

            await channel.emit(ScanState.PERSISTING, "saving update")
            superseded, envelope_id = self._save_envelope(
                project,
                baseline.id if baseline is not None else None,
                snapshot.id,
                items,
                commit_info,
            )

        counts = Counter(item.type.value for item in items)
        return ScanDone(
            snapshot_id=snapshot.id,
            envelope_id=envelope_id,
            superseded=superseded,
            counts=dict(counts),
        )

    @staticmethod
    def _snapshot_data(records: list[AnnotationRecord]) -> list[dict]:
        return [record.model_dump(mode="json") for record in records]

    def _log_summary(
        self,
        project_id: int,
        old_records: list[dict],
        records: list[AnnotationRecord],
        items: list[DiffItem],
    ) -> None:
        ids = diff_keys((r["id"] for r in old_records), (r.id for r in records))
        counts = Counter(item.type.value for item in items)
        self.logger.info(
            "Project %s diff: %d appeared, %d vanished, %d carried over; %s",
            project_id,
            len(ids.added),
            len(ids.removed),
            len(ids.kept),
            dict(counts),
        )

    async def _branch_info(
        self, owner: str, repo: str, branch: str, access_token: str | None
    ) -> dict | None:
        """Commit metadata for ``branch``; None (and a warning) when it cannot be resolved."""
        try:
            found = await self.fetcher.find_branch(owner, repo, branch, access_token)
        except ExternalToolFailure as e:
            self.logger.warning("Branch info for %s/%s@%s unavailable: %s", owner, repo, branch, e)
            return None
        if found is None:
            self.logger.warning("Branch %s not found on %s/%s", branch, owner, repo)
            return None
        return found.commit_info()

    def _save_envelope(
        self,
        project: Project,
        old_snapshot_id: int | None,
        new_snapshot_id: int,
        items: list[DiffItem],
        commit_info: dict | None,
    ) -> tuple[int, int]:
        """Supersede the previous PENDING envelope and insert the new one atomically."""
        try:
            superseded = self.envelopes.supersede_pending(project.id)
            envelope = self.envelopes.create_pending(
                project_id=project.id,
                old_snapshot_id=old_snapshot_id,
                new_snapshot_id=new_snapshot_id,
                data=[item.model_dump(mode="json", exclude_none=True) for item in items],
                commit_info=commit_info,
            )
            record_project_action(
                self.db,
                project,
                ActionType.SCAN_PROJECT,
                "Scanned repository",
                {"envelope_id": envelope.id, "snapshot_id": new_snapshot_id, "items": len(items)},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"could not save diff envelope: {e.__class__.__name__}") from e
        if superseded:
            self.logger.info("Project %s: %d pending update(s) ignored", project.id, superseded)
        return superseded, envelope.id
