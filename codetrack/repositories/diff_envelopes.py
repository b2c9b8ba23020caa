"""Diff Envelope Store."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import update

from codetrack.models.diff_envelope import DiffEnvelope, EnvelopeStatus
from codetrack.repositories.base import Repository
from codetrack.services.errors import NotFoundError


class DiffEnvelopeRepository(Repository[DiffEnvelope]):
    model = DiffEnvelope
    resource = "diff envelope"

    def get_for_project(
        self, project_id: int, envelope_id: int, *, lock: bool = False
    ) -> DiffEnvelope:
        """Envelope ``envelope_id`` if it belongs to ``project_id``.

        With ``lock`` the row is held (SELECT ... FOR UPDATE) until the
        transaction ends, so supersession cannot change it mid-batch.
        """
        q = self.query().filter(
            DiffEnvelope.id == envelope_id, DiffEnvelope.project_id == project_id
        )
        if lock:
            q = q.with_for_update()
        envelope = q.first()
        if envelope is None:
            raise NotFoundError(self.resource, envelope_id)
        return envelope

    def pending(self, project_id: int) -> DiffEnvelope | None:
        return (
            self.query()
            .filter(
                DiffEnvelope.project_id == project_id,
                DiffEnvelope.status == EnvelopeStatus.PENDING.value,
            )
            .order_by(DiffEnvelope.created_at.desc(), DiffEnvelope.id.desc())
            .first()
        )

    def supersede_pending(self, project_id: int) -> int:
        """Move every PENDING envelope of the project to IGNORED. Returns rows changed."""
        result = self.db.execute(
            update(DiffEnvelope)
            .where(
                DiffEnvelope.project_id == project_id,
                DiffEnvelope.status == EnvelopeStatus.PENDING.value,
            )
            .values(
                status=EnvelopeStatus.IGNORED.value,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0

    def create_pending(
        self,
        *,
        project_id: int,
        old_snapshot_id: int | None,
        new_snapshot_id: int,
        data: list[dict],
        commit_info: dict | None = None,
    ) -> DiffEnvelope:
        envelope = DiffEnvelope(
            project_id=project_id,
            old_snapshot_id=old_snapshot_id,
            new_snapshot_id=new_snapshot_id,
            data=data,
            status=EnvelopeStatus.PENDING.value,
            **(commit_info or {}),
        )
        return self.add(envelope)
