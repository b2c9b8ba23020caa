"""Snapshot Store."""

from __future__ import annotations

from sqlalchemy import update

from codetrack.models.snapshot import Snapshot
from codetrack.repositories.base import Repository


class SnapshotRepository(Repository[Snapshot]):
    model = Snapshot
    resource = "snapshot"

    def create(self, project_id: int, data: list[dict]) -> Snapshot:
        """Append a new, not-yet-accepted snapshot."""
        return self.add(Snapshot(project_id=project_id, data=data, accepted=False))

    def latest_accepted(self, project_id: int) -> Snapshot | None:
        """Baseline for the next scan: newest accepted snapshot, higher id wins ties."""
        return (
            self.query()
            .filter(Snapshot.project_id == project_id, Snapshot.accepted.is_(True))
            .order_by(Snapshot.created_at.desc(), Snapshot.id.desc())
            .first()
        )

    def history(self, project_id: int) -> list[Snapshot]:
        return (
            self.query()
            .filter(Snapshot.project_id == project_id)
            .order_by(Snapshot.created_at.desc(), Snapshot.id.desc())
            .all()
        )

    def set_accepted(self, snapshot_id: int, accepted: bool) -> None:
        self.db.execute(
            update(Snapshot).where(Snapshot.id == snapshot_id).values(accepted=accepted)
        )
