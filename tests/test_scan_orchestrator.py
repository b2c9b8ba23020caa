"""Tests for the scan orchestrator.

The fetcher is faked (archives are built in memory); the tracker steps run
tests/fake_tracker.py as a real subprocess.
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from codetrack.models import Action, ActionType, DiffEnvelope, EnvelopeStatus, Project, Snapshot
from codetrack.schemas.annotations import ScanConfig, TagRule
from codetrack.services.errors import ExternalToolFailure
from codetrack.services.github import Branch
from codetrack.services.process import CancellationToken
from codetrack.services.projects import save_project_config
from codetrack.services.reconciliation import ReconciliationEngine
from codetrack.services.scan_channel import ScanDone, ScanFailed
from codetrack.services.scan_orchestrator import ScanOrchestrator
from tests.test_constants import TEST_GITHUB_TOKEN


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FIRST = {"src/app.py": "# TODO(a1): one\n# TODO(a2): two\n# BUG(a3): three\n"}

FULL_RUN = [
    "starting",
    "cloning repo",
    "decompressing repo",
    "scanning repo",
    "saving scan",
    "finding existing scan",
    "running diff",
    "saving update",
    "done",
]


class FakeFetcher:
    """Serves an in-memory zipball shaped like GitHub's."""

    def __init__(self, files: dict[str, str], branch: Branch | None = None, branch_error: bool = False):
        self.files = files
        self.branch = branch
        self.branch_error = branch_error
        self.fetch_error: Exception | None = None
        self.calls: list[tuple] = []

    async def fetch_archive(self, owner, repo, branch, access_token) -> bytes:
        self.calls.append((owner, repo, branch, access_token))
        if self.fetch_error is not None:
            raise self.fetch_error
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as archive:
            for name, content in self.files.items():
                archive.writestr(f"{owner}-{repo}-deadbeef/{name}", content)
        return buf.getvalue()

    async def find_branch(self, owner, repo, name, access_token) -> Branch | None:
        if self.branch_error:
            raise ExternalToolFailure("GitHub returned 502 for /branches")
        return self.branch


async def _scan(db, settings, fetcher, project_id: int, owner_id: int, cancel=None):
    orchestrator = ScanOrchestrator(db, fetcher=fetcher, settings=settings)
    channel = orchestrator.scan(project_id, owner_id, TEST_GITHUB_TOKEN, cancel)
    lines = [line.rstrip("\n") async for line in channel.lines()]
    await channel.task
    return lines, channel.outcome


def _accept_all(db, project_id: int, owner_id: int, envelope_id: int) -> None:
    envelope = db.get(DiffEnvelope, envelope_id)
    ids = [item["id"] for item in envelope.data if item["type"] == "NEW"]
    result = ReconciliationEngine(db).reconcile(
        project_id, owner_id, envelope_id, {"CREATE": ids}, None, True
    )
    assert result.ok


# ---------------------------------------------------------------------------
# Successful scans
# ---------------------------------------------------------------------------


class TestScanPipeline:
    async def test_first_scan_is_all_new(self, db, settings, user, project):
        fetcher = FakeFetcher(FIRST)
        lines, outcome = await _scan(db, settings, fetcher, project.id, user.id)

        assert lines == FULL_RUN
        assert isinstance(outcome, ScanDone)
        assert outcome.counts == {"NEW": 3}
        assert outcome.superseded == 0
        assert fetcher.calls == [("acme", "widgets", None, TEST_GITHUB_TOKEN)]

        envelope = db.get(DiffEnvelope, outcome.envelope_id)
        assert envelope.status == EnvelopeStatus.PENDING.value
        assert envelope.old_snapshot_id is None
        assert envelope.new_snapshot_id == outcome.snapshot_id
        snapshot = db.get(Snapshot, outcome.snapshot_id)
        assert snapshot.accepted is False
        assert {r["id"] for r in snapshot.data} == {"a1", "a2", "a3"}
        assert db.query(Action).filter(Action.type == ActionType.SCAN_PROJECT.value).count() == 1

    async def test_rescan_after_accept_is_all_same(self, db, settings, user, project):
        project_id, user_id = project.id, user.id
        _, first = await _scan(db, settings, FakeFetcher(FIRST), project_id, user_id)
        _accept_all(db, project_id, user_id, first.envelope_id)

        _, second = await _scan(db, settings, FakeFetcher(FIRST), project_id, user_id)

        assert second.counts == {"SAME": 3}
        envelope = db.get(DiffEnvelope, second.envelope_id)
        assert envelope.old_snapshot_id == first.snapshot_id

    async def test_move_update_delete_new(self, db, settings, user, project):
        project_id, user_id = project.id, user.id
        _, first = await _scan(db, settings, FakeFetcher(FIRST), project_id, user_id)
        _accept_all(db, project_id, user_id, first.envelope_id)

        changed = {"src/app.py": "\n# TODO(a1): one\n# TODO(a2): two, revised\n# NOTE(a4): four\n"}
        _, second = await _scan(db, settings, FakeFetcher(changed), project_id, user_id)

        kinds = {item["id"]: item["type"] for item in db.get(DiffEnvelope, second.envelope_id).data}
        assert kinds == {"a1": "MOVE", "a2": "UPDATE", "a3": "DELETE", "a4": "NEW"}

    async def test_second_scan_supersedes_pending(self, db, settings, user, project):
        project_id, user_id = project.id, user.id
        _, first = await _scan(db, settings, FakeFetcher(FIRST), project_id, user_id)
        _, second = await _scan(db, settings, FakeFetcher(FIRST), project_id, user_id)

        assert second.superseded == 1
        assert db.get(DiffEnvelope, first.envelope_id).status == EnvelopeStatus.IGNORED.value
        pending = db.query(DiffEnvelope).filter(DiffEnvelope.status == EnvelopeStatus.PENDING.value).all()
        assert [e.id for e in pending] == [second.envelope_id]

    async def test_project_config_is_used(self, db, settings, user, project):
        project_id, user_id = project.id, user.id
        save_project_config(
            db, project_id, user_id, ScanConfig(tags=[TagRule(name="BUG", match=["BUG"])])
        )
        lines, outcome = await _scan(db, settings, FakeFetcher(FIRST), project_id, user_id)

        assert "loaded config from project" in lines
        assert outcome.counts == {"NEW": 1}

    async def test_branch_info_stored_on_envelope(self, db, settings, user, project):
        project.scan_branch = "main"
        db.commit()
        project_id, user_id = project.id, user.id
        branch = Branch("main", "abc123", url="https://github.com/acme/widgets/commit/abc123", message="ship it")
        fetcher = FakeFetcher(FIRST, branch=branch)

        lines, outcome = await _scan(db, settings, fetcher, project_id, user_id)

        assert "fetching branch info" in lines
        assert fetcher.calls[0][2] == "main"
        envelope = db.get(DiffEnvelope, outcome.envelope_id)
        assert (envelope.branch, envelope.commit_sha, envelope.commit_msg) == ("main", "abc123", "ship it")

    async def test_branch_lookup_failure_is_not_fatal(self, db, settings, user, project):
        project.scan_branch = "main"
        db.commit()
        project_id, user_id = project.id, user.id

        lines, outcome = await _scan(db, settings, FakeFetcher(FIRST, branch_error=True), project_id, user_id)

        assert lines[-1] == "done"
        assert db.get(DiffEnvelope, outcome.envelope_id).commit_sha is None


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestScanFailures:
    async def test_unlinked_project(self, db, settings, user):
        bare = Project(owner_id=user.id, slug="bare", name="Bare")
        db.add(bare)
        db.commit()
        lines, outcome = await _scan(db, settings, FakeFetcher(FIRST), bare.id, user.id)

        assert lines == ["starting", "error: project is not linked to a repository"]
        assert isinstance(outcome, ScanFailed)

    async def test_other_owner(self, db, settings, project, other_user):
        lines, _ = await _scan(db, settings, FakeFetcher(FIRST), project.id, other_user.id)
        assert lines == ["starting", "error: project not found or access denied"]

    async def test_fetch_failure(self, db, settings, user, project):
        fetcher = FakeFetcher(FIRST)
        fetcher.fetch_error = ExternalToolFailure("GitHub returned 404 for /repos/acme/widgets/zipball")
        lines, _ = await _scan(db, settings, fetcher, project.id, user.id)

        assert lines == [
            "starting",
            "cloning repo",
            "error: GitHub returned 404 for /repos/acme/widgets/zipball",
        ]
        assert db.query(Snapshot).count() == 0

    async def test_extract_failure(self, db, settings, user, project):
        settings.tracker_extract_command = "explode"
        lines, outcome = await _scan(db, settings, FakeFetcher(FIRST), project.id, user.id)

        assert lines[-2] == "scanning repo"
        assert lines[-1].startswith("error: extract failed: exit code 2")
        assert db.query(Snapshot).count() == 0
        assert db.query(DiffEnvelope).count() == 0

    async def test_diff_failure_keeps_snapshot(self, db, settings, user, project):
        settings.tracker_diff_command = "explode"
        lines, _ = await _scan(db, settings, FakeFetcher(FIRST), project.id, user.id)

        assert lines[-2] == "running diff"
        assert lines[-1].startswith("error: diff failed")
        assert db.query(Snapshot).count() == 1
        assert db.query(DiffEnvelope).count() == 0

    async def test_cancelled_scan(self, db, settings, user, project):
        token = CancellationToken()
        token.cancel()
        lines, _ = await _scan(db, settings, FakeFetcher(FIRST), project.id, user.id, cancel=token)
        assert lines[-1] == "error: scan cancelled"


# ---------------------------------------------------------------------------
# Artifacts
# ---------------------------------------------------------------------------


class TestArtifacts:
    async def test_workdir_removed(self, db, settings, user, project, tmp_path: Path):
        await _scan(db, settings, FakeFetcher(FIRST), project.id, user.id)
        assert list(tmp_path.glob("codetrack-scan-*")) == []

    async def test_workdir_kept_when_configured(self, db, settings, user, project, tmp_path: Path):
        settings.keep_scan_artifacts = True
        await _scan(db, settings, FakeFetcher(FIRST), project.id, user.id)
        (workdir,) = tmp_path.glob("codetrack-scan-*")
        for name in ("new-output.json", "old-output.json", "diff-output.json", "err.log"):
            assert (workdir / name).exists()

    @pytest.mark.parametrize("command", ["extract", "diff"])
    async def test_workdir_removed_on_failure(self, db, settings, user, project, tmp_path: Path, command):
        setattr(settings, f"tracker_{command}_command", "explode")
        await _scan(db, settings, FakeFetcher(FIRST), project.id, user.id)
        assert list(tmp_path.glob("codetrack-scan-*")) == []
