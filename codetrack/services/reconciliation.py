"""Reconciliation engine: apply a user's decisions on a diff envelope to the task graph."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codetrack.models.diff_envelope import DiffEnvelope, EnvelopeStatus
from codetrack.models.project import Project
from codetrack.models.task import TaskProgress
from codetrack.repositories.annotations import CodebaseAnnotationRepository
from codetrack.repositories.diff_envelopes import DiffEnvelopeRepository
from codetrack.repositories.snapshots import SnapshotRepository
from codetrack.repositories.tasks import TaskRepository
from codetrack.schemas.annotations import DiffItem, diff_list_adapter
from codetrack.schemas.tasks import TagUpsert, TaskUpsert
from codetrack.services.errors import (
    NotFoundError,
    PersistenceFailure,
    ServiceError,
    ValidationFailure,
)
from codetrack.services.projects import get_owned_project
from codetrack.services.tasks import upsert_task

module_logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Item"


@dataclass
class DecisionResult:
    action: str
    annotation_id: str
    detail: str = ""


@dataclass
class ReconcileResult:
    envelope_id: int
    status: EnvelopeStatus
    applied: list[DecisionResult] = field(default_factory=list)
    failures: list[DecisionResult] = field(default_factory=list)
    flagged: list[DecisionResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass
class _Batch:
    """Per-call context handed to each action handler."""

    project: Project
    owner_id: int
    envelope: DiffEnvelope
    items: dict[str, DiffItem]
    titles: dict[str, str]
    result: ReconcileResult


class ReconciliationEngine:
    """Applies CREATE / CONFIRM / COMPLETE / DELETE / UNLINK / IGNORE decisions.

    The whole batch runs in one transaction with the envelope row locked, so a
    concurrent scan cannot supersede it halfway. Each decision gets its own
    savepoint: a failing decision is rolled back and reported while the rest
    still apply.
    """

    def __init__(self, db: Session, *, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.logger = logger or module_logger
        self.envelopes = DiffEnvelopeRepository(db)
        self.snapshots = SnapshotRepository(db)
        self.annotations = CodebaseAnnotationRepository(db)
        self.tasks = TaskRepository(db)
        self._handlers: dict[str, Callable[[_Batch, str], str | None]] = {
            "CREATE": self._create,
            "CONFIRM": self._confirm,
            "COMPLETE": self._complete,
            "DELETE": self._complete,
            "UNLINK": self._unlink,
            "IGNORE": self._ignore,
        }

    def reconcile(
        self,
        project_id: int,
        owner_id: int,
        envelope_id: int,
        decisions: dict[str, list[str]],
        titles: dict[str, str] | None,
        approved: bool,
    ) -> ReconcileResult:
        """Accept or reject envelope ``envelope_id`` and, if accepted, apply ``decisions``.

        ``decisions`` maps action name to annotation ids. Raises NotFoundError
        when the project is not the caller's or the envelope is not the
        project's, and PersistenceFailure when the batch cannot be committed.
        """
        project = get_owned_project(self.db, project_id, owner_id)
        envelope = self.envelopes.get_for_project(project.id, envelope_id, lock=True)
        if envelope.status != EnvelopeStatus.PENDING.value:
            self.logger.info(
                "Reconciling envelope %s which is already %s", envelope.id, envelope.status
            )

        status = EnvelopeStatus.ACCEPTED if approved else EnvelopeStatus.REJECTED
        self.snapshots.set_accepted(envelope.new_snapshot_id, approved)
        envelope.status = status.value
        result = ReconcileResult(envelope_id=envelope.id, status=status)

        if approved:
            batch = _Batch(
                project=project,
                owner_id=owner_id,
                envelope=envelope,
                items=self._index_items(envelope),
                titles=titles or {},
                result=result,
            )
            for action, annotation_ids in decisions.items():
                for annotation_id in annotation_ids:
                    self._apply(batch, action, annotation_id)

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error("Reconcile of envelope %s failed to commit: %s", envelope_id, e)
            raise PersistenceFailure(
                f"could not commit reconcile batch: {e.__class__.__name__}"
            ) from e

        self.logger.info(
            "Envelope %s %s: %d applied, %d failed, %d flagged",
            envelope_id,
            status.value,
            len(result.applied),
            len(result.failures),
            len(result.flagged),
        )
        return result

    def _index_items(self, envelope: DiffEnvelope) -> dict[str, DiffItem]:
        try:
            items = diff_list_adapter.validate_python(envelope.data or [])
        except ValidationError as e:
            raise ValidationFailure(f"envelope {envelope.id} holds malformed diff data: {e}") from e
        return {item.id: item for item in items}

    def _apply(self, batch: _Batch, action: str, annotation_id: str) -> None:
        name = action.strip().upper()
        handler = self._handlers.get(name)
        if handler is None:
            self.logger.warning("Unknown reconcile action %r for %s", action, annotation_id)
            batch.result.failures.append(
                DecisionResult(action, annotation_id, f"unknown action {action!r}")
            )
            return

        try:
            with self.db.begin_nested():
                flag = handler(batch, annotation_id)
        except ValidationError as e:
            failure = ValidationFailure(
                f"invalid data for {annotation_id}: {e.error_count()} validation error(s)"
            )
            self.logger.warning("%s %s failed: %s", name, annotation_id, e)
            batch.result.failures.append(DecisionResult(name, annotation_id, str(failure)))
            return
        except (ServiceError, SQLAlchemyError) as e:
            self.logger.warning("%s %s failed: %s", name, annotation_id, e)
            batch.result.failures.append(DecisionResult(name, annotation_id, str(e)))
            return

        batch.result.applied.append(DecisionResult(name, annotation_id))
        if flag:
            batch.result.flagged.append(DecisionResult(name, annotation_id, flag))

    # ── Action handlers ──────────────────────────────────────────────
    # Each returns an optional flag note; raising fails only that decision.

    def _item(self, batch: _Batch, annotation_id: str) -> DiffItem:
        item = batch.items.get(annotation_id)
        if item is None:
            raise NotFoundError("diff item", annotation_id)
        return item

    def _linked_task(self, batch: _Batch, annotation_id: str):
        task = self.tasks.linked_to(annotation_id, batch.owner_id)
        if task is None:
            raise NotFoundError("task linked to annotation", annotation_id)
        return task

    def _create(self, batch: _Batch, annotation_id: str) -> str | None:
        item = self._item(batch, annotation_id)
        tag = (item.tag or "").strip()
        if not tag:
            raise ValidationFailure(f"diff item {annotation_id} has no tag")
        fields = item.current
        text = fields.text if fields is not None else ""

        # Replays are applied as-is; the duplicate is reported, not prevented.
        previous = self.tasks.linked_to(annotation_id, batch.owner_id)

        task = upsert_task(
            self.db,
            TaskUpsert(
                project_id=batch.project.id,
                title=(batch.titles.get(annotation_id) or text or DEFAULT_TITLE)[:255],
                description=text or None,
            ),
            [TagUpsert(title=tag)],
            batch.owner_id,
            commit=False,
        )
        self.annotations.upsert_from_item(item, batch.envelope.new_snapshot_id, batch.envelope)
        task.codebase_task_id = annotation_id
        self.db.flush()

        if previous is not None:
            return f"annotation already linked to task {previous.id}; created task {task.id}"
        return None

    def _confirm(self, batch: _Batch, annotation_id: str) -> None:
        task = self._linked_task(batch, annotation_id)
        title = batch.titles.get(annotation_id)
        if title:
            upsert_task(
                self.db,
                TaskUpsert(id=task.id, title=title[:255]),
                [],
                batch.owner_id,
                commit=False,
            )
        item = batch.items.get(annotation_id)
        if item is not None:
            self.annotations.upsert_from_item(item, batch.envelope.new_snapshot_id, batch.envelope)

    def _complete(self, batch: _Batch, annotation_id: str) -> None:
        task = self._linked_task(batch, annotation_id)
        upsert_task(
            self.db,
            TaskUpsert(id=task.id, title=task.title, progress=TaskProgress.COMPLETED),
            [],
            batch.owner_id,
            commit=False,
        )

    def _unlink(self, batch: _Batch, annotation_id: str) -> None:
        row = self.annotations.require(annotation_id)
        self.annotations.delete(row)

    def _ignore(self, batch: _Batch, annotation_id: str) -> None:
        return None
