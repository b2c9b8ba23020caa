"""Tests for the reconciliation engine (accept/reject and per-annotation actions)."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from codetrack.models import (
    CodebaseAnnotation,
    DiffEnvelope,
    EnvelopeStatus,
    Snapshot,
    Tag,
    Task,
    TaskProgress,
    TaskTag,
)
from codetrack.repositories import (
    CodebaseAnnotationRepository,
    DiffEnvelopeRepository,
    SnapshotRepository,
)
from codetrack.schemas.annotations import DiffItem
from codetrack.services.errors import NotFoundError, PersistenceFailure
from codetrack.services.reconciliation import DEFAULT_TITLE, ReconciliationEngine
from codetrack.services.tasks import get_task


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _item(annotation_id: str, kind: str = "NEW", text: str = "fix the parser", tag: str = "TODO") -> dict:
    new = {"text": text, "file": "src/parser.py", "line": 10, "context": [f"# {tag}: {text}"]}
    if kind == "DELETE":
        return {"id": annotation_id, "tag": tag, "type": kind, "data": {"old": new}}
    data = {"new": new}
    if kind != "NEW":
        data["old"] = dict(new, line=4)
    return {"id": annotation_id, "tag": tag, "type": kind, "data": data}


def _envelope(db, project, items: list[dict]) -> DiffEnvelope:
    snapshot = SnapshotRepository(db).create(project.id, [])
    envelope = DiffEnvelopeRepository(db).create_pending(
        project_id=project.id,
        old_snapshot_id=None,
        new_snapshot_id=snapshot.id,
        data=items,
        commit_info={"branch": "main", "commit_sha": "cafe01", "commit_msg": "wip", "commit_url": None},
    )
    db.commit()
    return envelope


def _linked_task(db, user, project, annotation_id: str, title: str = "existing") -> Task:
    task = Task(owner_id=user.id, project_id=project.id, title=title, codebase_task_id=annotation_id)
    db.add(task)
    db.commit()
    return task


def _registry_row(db, project, annotation_id: str) -> CodebaseAnnotation:
    snapshot = SnapshotRepository(db).create(project.id, [])
    row = CodebaseAnnotationRepository(db).upsert_from_item(
        DiffItem.model_validate(_item(annotation_id)), snapshot.id
    )
    db.commit()
    return row


def _reconcile(db, user, project, envelope, actions, titles=None, approved=True):
    return ReconciliationEngine(db).reconcile(
        project.id, user.id, envelope.id, actions, titles, approved
    )


# ---------------------------------------------------------------------------
# Accept / reject
# ---------------------------------------------------------------------------


class TestEnvelopeStatus:
    def test_accept_marks_snapshot_accepted(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {})
        assert result.status == EnvelopeStatus.ACCEPTED
        assert result.ok

        envelope = db.get(DiffEnvelope, result.envelope_id)
        assert envelope.status == EnvelopeStatus.ACCEPTED.value
        assert db.get(Snapshot, envelope.new_snapshot_id).accepted is True

    def test_reject_applies_nothing(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {"CREATE": ["a1"]}, approved=False)

        assert result.status == EnvelopeStatus.REJECTED
        assert result.applied == []
        assert db.query(Task).count() == 0
        envelope = db.get(DiffEnvelope, result.envelope_id)
        assert envelope.status == EnvelopeStatus.REJECTED.value
        assert db.get(Snapshot, envelope.new_snapshot_id).accepted is False

    def test_other_owner_gets_not_found(self, db, user, other_user, project):
        envelope = _envelope(db, project, [])
        with pytest.raises(NotFoundError):
            ReconciliationEngine(db).reconcile(project.id, other_user.id, envelope.id, {}, None, True)

    def test_unknown_envelope(self, db, user, project):
        with pytest.raises(NotFoundError):
            ReconciliationEngine(db).reconcile(project.id, user.id, 12345, {}, None, True)

    def test_commit_failure_raises_persistence_failure(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        envelope_id = envelope.id
        error = OperationalError("COMMIT", {}, Exception("disk I/O error"))
        with patch.object(db, "commit", side_effect=error):
            with pytest.raises(PersistenceFailure):
                ReconciliationEngine(db).reconcile(project.id, user.id, envelope_id, {}, None, True)
        assert db.get(DiffEnvelope, envelope_id).status == EnvelopeStatus.PENDING.value


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class TestCreate:
    def test_creates_linked_task_and_registry_row(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {"CREATE": ["a1"]}, {"a1": "Parser fix"})

        assert [(r.action, r.annotation_id) for r in result.applied] == [("CREATE", "a1")]
        task = db.query(Task).one()
        assert task.title == "Parser fix"
        assert task.description == "fix the parser"
        assert task.codebase_task_id == "a1"
        assert task.project_id == project.id

        row = db.get(CodebaseAnnotation, "a1")
        assert row.recent_scan_id == db.get(DiffEnvelope, result.envelope_id).new_snapshot_id
        assert row.commit_sha == "cafe01"

        titles = {
            t for (t,) in db.query(Tag.title).join(TaskTag, TaskTag.tag_id == Tag.id).filter(TaskTag.task_id == task.id)
        }
        assert titles == {"TODO"}

    def test_title_falls_back_to_text_then_default(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1", text="use text"), _item("a2", text="")])
        _reconcile(db, user, project, envelope, {"CREATE": ["a1", "a2"]})
        titles = {t.codebase_task_id: t.title for t in db.query(Task)}
        assert titles == {"a1": "use text", "a2": DEFAULT_TITLE}

    def test_id_missing_from_envelope_fails_only_that_decision(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {"CREATE": ["ghost", "a1"]})

        assert [r.annotation_id for r in result.failures] == ["ghost"]
        assert [r.annotation_id for r in result.applied] == ["a1"]
        assert db.query(Task).count() == 1
        assert db.get(DiffEnvelope, result.envelope_id).status == EnvelopeStatus.ACCEPTED.value

    @pytest.mark.parametrize("bad_tag", ["", "   "])
    def test_blank_tag_fails_only_that_decision(self, db, user, project, bad_tag):
        envelope = _envelope(db, project, [_item("a1", tag=bad_tag), _item("a2")])
        result = _reconcile(db, user, project, envelope, {"CREATE": ["a1", "a2"]})

        assert [r.annotation_id for r in result.failures] == ["a1"]
        assert "no tag" in result.failures[0].detail
        assert [r.annotation_id for r in result.applied] == ["a2"]
        assert db.query(Task).one().codebase_task_id == "a2"
        assert db.query(Tag).filter(Tag.title == "").count() == 0
        assert db.get(DiffEnvelope, result.envelope_id).status == EnvelopeStatus.ACCEPTED.value

    def test_overlong_tag_is_reported_not_raised(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1", tag="X" * 300), _item("a2")])
        result = _reconcile(db, user, project, envelope, {"CREATE": ["a1", "a2"]})

        assert [r.annotation_id for r in result.failures] == ["a1"]
        assert "invalid data for a1" in result.failures[0].detail
        assert [r.annotation_id for r in result.applied] == ["a2"]
        assert db.query(Task).count() == 1
        assert db.get(CodebaseAnnotation, "a1") is None

    def test_replay_is_flagged(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        first = _reconcile(db, user, project, envelope, {"CREATE": ["a1"]})
        assert first.flagged == []
        original = db.query(Task).one()

        second = _reconcile(db, user, project, envelope, {"CREATE": ["a1"]})
        assert db.query(Task).count() == 2
        assert len(second.flagged) == 1
        assert f"task {original.id}" in second.flagged[0].detail


class TestConfirm:
    def test_renames_and_refreshes_registry(self, db, user, project):
        task = _linked_task(db, user, project, "a1", title="old title")
        task_id = task.id
        envelope = _envelope(db, project, [_item("a1", kind="MOVE")])

        result = _reconcile(db, user, project, envelope, {"CONFIRM": ["a1"]}, {"a1": "new title"})

        assert result.ok
        assert db.get(Task, task_id).title == "new title"
        row = db.get(CodebaseAnnotation, "a1")
        assert row.line == 10
        assert row.recent_scan_id == db.get(DiffEnvelope, result.envelope_id).new_snapshot_id

    def test_without_title_keeps_task(self, db, user, project):
        task = _linked_task(db, user, project, "a1", title="same")
        task_id = task.id
        envelope = _envelope(db, project, [_item("a1", kind="SAME")])
        result = _reconcile(db, user, project, envelope, {"CONFIRM": ["a1"]})
        assert result.ok
        assert db.get(Task, task_id).title == "same"

    def test_unlinked_annotation_fails(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1", kind="SAME")])
        result = _reconcile(db, user, project, envelope, {"CONFIRM": ["a1"]})
        assert [r.action for r in result.failures] == ["CONFIRM"]


class TestCompleteAndDelete:
    @pytest.mark.parametrize("action", ["COMPLETE", "DELETE"])
    def test_marks_linked_task_completed(self, db, user, project, action):
        task = _linked_task(db, user, project, "a1")
        task_id = task.id
        envelope = _envelope(db, project, [_item("a1", kind="DELETE")])

        result = _reconcile(db, user, project, envelope, {action: ["a1"]})

        assert result.ok
        assert db.get(Task, task_id).progress == TaskProgress.COMPLETED.value

    def test_complete_without_link_fails(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1", kind="DELETE")])
        result = _reconcile(db, user, project, envelope, {"COMPLETE": ["a1"]})
        assert not result.ok


class TestUnlinkIgnoreUnknown:
    def test_unlink_removes_registry_row_and_link_reads_empty(self, db, user, project):
        task = _linked_task(db, user, project, "a1")
        task_id = task.id
        _registry_row(db, project, "a1")
        envelope = _envelope(db, project, [_item("a1", kind="DELETE")])

        result = _reconcile(db, user, project, envelope, {"UNLINK": ["a1"]})

        assert result.ok
        assert db.get(CodebaseAnnotation, "a1") is None
        assert db.get(Task, task_id).codebase_task_id == "a1"
        assert get_task(db, task_id, user.id).codebase_task_id is None

    def test_unlink_missing_row_fails(self, db, user, project):
        envelope = _envelope(db, project, [])
        result = _reconcile(db, user, project, envelope, {"UNLINK": ["nope"]})
        assert [r.annotation_id for r in result.failures] == ["nope"]

    def test_ignore_changes_nothing(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {"IGNORE": ["a1"]})
        assert [r.action for r in result.applied] == ["IGNORE"]
        assert db.query(Task).count() == 0
        assert db.get(CodebaseAnnotation, "a1") is None

    def test_unknown_action_is_a_failure(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {"ARCHIVE": ["a1"], "CREATE": ["a1"]})
        assert [(r.action, r.annotation_id) for r in result.failures] == [("ARCHIVE", "a1")]
        assert [r.action for r in result.applied] == ["CREATE"]

    def test_action_names_are_case_insensitive(self, db, user, project):
        envelope = _envelope(db, project, [_item("a1")])
        result = _reconcile(db, user, project, envelope, {"create": ["a1"]})
        assert result.ok
        assert db.query(Task).count() == 1
