"""Codebase Annotation Registry."""

from __future__ import annotations

from codetrack.models.codebase_annotation import CodebaseAnnotation
from codetrack.models.diff_envelope import DiffEnvelope
from codetrack.repositories.base import Repository
from codetrack.schemas.annotations import DiffItem
from codetrack.services.errors import ValidationFailure


class CodebaseAnnotationRepository(Repository[CodebaseAnnotation]):
    model = CodebaseAnnotation
    resource = "codebase annotation"

    def for_scan(self, scan_id: int) -> list[CodebaseAnnotation]:
        """Registry rows anchored to snapshot ``scan_id``, in stable id order."""
        return (
            self.query()
            .filter(CodebaseAnnotation.recent_scan_id == scan_id)
            .order_by(CodebaseAnnotation.id)
            .all()
        )

    def upsert_from_item(
        self,
        item: DiffItem,
        scan_id: int,
        envelope: DiffEnvelope | None = None,
    ) -> CodebaseAnnotation:
        """Create or refresh the row for ``item.id`` and anchor it to ``scan_id``.

        Content comes from the item's newest side. Commit metadata is copied
        from ``envelope`` when given.
        """
        fields = item.current
        if fields is None:
            raise ValidationFailure(f"diff item {item.id} carries no annotation data")

        row = self.get(item.id)
        if row is None:
            row = CodebaseAnnotation(id=item.id)
            self.db.add(row)

        row.type = item.tag
        row.text = fields.text or ""
        if fields.file is not None or row.file is None:
            row.file = fields.file or ""
        if fields.line is not None or row.line is None:
            row.line = fields.line or 0
        row.context = fields.context
        row.recent_scan_id = scan_id
        row.deleted = False
        if envelope is not None:
            row.branch = envelope.branch
            row.commit_sha = envelope.commit_sha
            row.commit_msg = envelope.commit_msg
            row.commit_url = envelope.commit_url

        self.db.flush()
        return row
