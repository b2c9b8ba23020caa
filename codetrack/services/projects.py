"""Project services: ownership lookup, scan configuration and scan review reads."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from codetrack.models.action import ActionType
from codetrack.models.project import IgnorePath, Project, TagConfig
from codetrack.models.tag import Tag
from codetrack.repositories.diff_envelopes import DiffEnvelopeRepository
from codetrack.repositories.snapshots import SnapshotRepository
from codetrack.schemas.annotations import ProjectScanConfig, ScanConfig, TagRule
from codetrack.schemas.scans import PendingUpdateRead, SnapshotRead, SnapshotSummary
from codetrack.services.actions import record_project_action
from codetrack.services.errors import NotFoundError, ValidationFailure
from codetrack.services.keydiff import diff_keys
from codetrack.services.tags import upsert_tag

logger = logging.getLogger(__name__)


def get_owned_project(db: Session, project_id: int, owner_id: int) -> Project:
    """Return the project if ``owner_id`` owns it; otherwise NotFoundError.

    Another owner's project is reported as missing rather than forbidden.
    """
    project = db.query(Project).filter(Project.id == project_id).first()
    if project is None or project.owner_id != owner_id:
        raise NotFoundError("project", project_id)
    return project


# ── Scan configuration ───────────────────────────────────────────────


def get_project_config(db: Session, project_id: int) -> ProjectScanConfig:
    """Tag match rules (grouped per tag) and ignore globs for a project."""
    project = db.get(Project, project_id)
    if project is None:
        raise NotFoundError("project", project_id)

    rows = (
        db.query(TagConfig, Tag)
        .join(Tag, Tag.id == TagConfig.tag_id)
        .filter(TagConfig.project_id == project_id)
        .order_by(Tag.id, TagConfig.id)
        .all()
    )
    grouped: dict[int, TagRule] = {}
    for tag_config, tag in rows:
        rule = grouped.setdefault(tag.id, TagRule(name=tag.title, match=[]))
        rule.match.append(tag_config.match)

    ignore = [
        row.path
        for row in db.query(IgnorePath)
        .filter(IgnorePath.project_id == project_id)
        .order_by(IgnorePath.id)
        .all()
    ]

    return ProjectScanConfig(
        project_id=project_id,
        config=ScanConfig(tags=list(grouped.values()), ignore=ignore),
        scan_branch=project.scan_branch,
    )


def save_project_config(
    db: Session,
    project_id: int,
    owner_id: int,
    config: ScanConfig,
    scan_branch: str | None = None,
) -> ProjectScanConfig:
    """Replace the project's scan configuration.

    Tags named by rules are upserted in the owner's namespace. Ignore paths
    and (tag, match) rules are diffed against what is stored, so unchanged
    rows keep their ids.
    """
    project = get_owned_project(db, project_id, owner_id)

    ignore = [path.strip() for path in config.ignore]
    if any(not path for path in ignore):
        raise ValidationFailure("ignore paths must not be blank")

    stored_paths = {row.path: row for row in project.ignore_paths}
    path_diff = diff_keys(stored_paths.keys(), ignore)
    for path in path_diff.removed:
        project.ignore_paths.remove(stored_paths[path])
    for path in path_diff.added:
        project.ignore_paths.append(IgnorePath(path=path))

    desired_rules: list[tuple[int, str]] = []
    for rule in config.tags:
        tag = upsert_tag(db, owner_id, rule.name)
        desired_rules.extend((tag.id, match) for match in rule.match)
    stored_rules = {(row.tag_id, row.match): row for row in project.tag_configs}
    rule_diff = diff_keys(stored_rules.keys(), desired_rules)
    for key in rule_diff.removed:
        project.tag_configs.remove(stored_rules[key])
    for tag_id, match in rule_diff.added:
        project.tag_configs.append(TagConfig(tag_id=tag_id, match=match))

    branch_changed = (scan_branch or None) != project.scan_branch
    project.scan_branch = scan_branch or None

    if path_diff.changed or rule_diff.changed or branch_changed:
        record_project_action(
            db,
            project,
            ActionType.UPDATE_PROJECT,
            "Updated scan configuration",
            {
                "ignore_added": path_diff.added,
                "ignore_removed": path_diff.removed,
                "rules_added": len(rule_diff.added),
                "rules_removed": len(rule_diff.removed),
                "scan_branch": project.scan_branch,
            },
        )
    db.commit()
    logger.info(
        "Project %s config saved: %d ignore paths, %d tag rules",
        project_id,
        len(ignore),
        len(desired_rules),
    )
    return get_project_config(db, project_id)


# ── Scan review ──────────────────────────────────────────────────────


def get_pending_update(db: Session, project_id: int, owner_id: int) -> PendingUpdateRead | None:
    """The project's PENDING envelope with both snapshots attached, or None."""
    get_owned_project(db, project_id, owner_id)
    envelope = DiffEnvelopeRepository(db).pending(project_id)
    if envelope is None:
        return None

    update = PendingUpdateRead.model_validate(envelope)
    if envelope.old_snapshot_id is not None and envelope.old_snapshot is not None:
        update.old_data = SnapshotRead.model_validate(envelope.old_snapshot)
    if envelope.new_snapshot is not None:
        update.new_data = SnapshotRead.model_validate(envelope.new_snapshot)
    return update


def get_scan_history(db: Session, project_id: int, owner_id: int) -> list[SnapshotSummary]:
    """All snapshots of the project, newest first, without payloads."""
    get_owned_project(db, project_id, owner_id)
    return [
        SnapshotSummary(
            id=snapshot.id,
            created_at=snapshot.created_at,
            accepted=snapshot.accepted,
            annotation_count=len(snapshot.data or []),
        )
        for snapshot in SnapshotRepository(db).history(project_id)
    ]
