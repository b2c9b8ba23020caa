"""Client for the tracker tool: annotation extraction and snapshot diffing.

Both steps run as subprocesses through ``run_process``. Raw outputs are kept
on disk next to the scan so a failed run can be inspected::

    <workdir>/config.json        config passed to extract
    <workdir>/new-output.json    extract stdout
    <workdir>/old-output.json    baseline records fed to diff
    <workdir>/diff-output.json   diff stdout
    <workdir>/err.log            diff stderr
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from codetrack.config import Settings, get_settings
from codetrack.schemas.annotations import (
    AnnotationRecord,
    DiffItem,
    ScanConfig,
    TagRule,
    annotation_list_adapter,
    diff_list_adapter,
)
from codetrack.services.errors import ExternalToolFailure, ValidationFailure
from codetrack.services.process import CancellationToken, ProcessResult, run_process

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
NEW_OUTPUT_FILE = "new-output.json"
OLD_OUTPUT_FILE = "old-output.json"
DIFF_OUTPUT_FILE = "diff-output.json"
ERR_LOG_FILE = "err.log"


def _parse_json(raw: str, what: str) -> Any:
    try:
        return json.loads(raw or "[]")
    except json.JSONDecodeError as e:
        raise ValidationFailure(f"{what} is not valid JSON: {e}") from e


class TrackerClient:
    """Runs ``<TRACKER_PATH> <subcommand> ...`` and validates its JSON output."""

    def __init__(self, settings: Settings | None = None, *, runner=run_process) -> None:
        self.settings = settings or get_settings()
        self._run = runner

    def _command(self, subcommand: str, *args: str | Path) -> list[str]:
        return [*self.settings.tracker_path, subcommand, *(str(a) for a in args)]

    def _check(self, step: str, result: ProcessResult) -> None:
        if not result.ok:
            logger.error("Tracker %s failed: %s", step, result.describe())
            raise ExternalToolFailure(f"{step} failed: {result.describe()}")

    def _default_tags(self) -> list[TagRule]:
        path = Path(self.settings.tracker_default_config)
        if not path.is_file():
            return []
        try:
            return ScanConfig.model_validate_json(path.read_text(encoding="utf-8")).tags
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable default tracker config %s: %s", path, e)
            return []

    def write_config(self, workdir: Path, config: ScanConfig | None) -> Path:
        """Config file for extract.

        A project with neither tag rules nor ignore globs uses the default file
        as-is. Ignore globs are always written; tag rules missing from the
        project are taken from the default file.
        """
        if config is None or (not config.tags and not config.ignore):
            return Path(self.settings.tracker_default_config)
        if not config.tags:
            config = config.model_copy(update={"tags": self._default_tags()})
        path = workdir / CONFIG_FILE
        path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        return path

    async def extract(
        self,
        repo_path: Path,
        config_path: Path,
        workdir: Path,
        cancel: CancellationToken | None = None,
    ) -> list[AnnotationRecord]:
        """Scan ``repo_path`` for tagged comments. Output is saved to new-output.json."""
        result = await self._run(
            self._command(self.settings.tracker_extract_command, repo_path, config_path),
            cwd=workdir,
            timeout=self.settings.tracker_timeout,
            cancel=cancel,
        )
        self._check("extract", result)
        (workdir / NEW_OUTPUT_FILE).write_text(result.stdout, encoding="utf-8")

        try:
            records = annotation_list_adapter.validate_python(
                _parse_json(result.stdout, "extract output")
            )
        except ValidationError as e:
            raise ValidationFailure(f"extract output is malformed: {e}") from e
        logger.info("Tracker extracted %d annotations from %s", len(records), repo_path)
        return records

    async def diff(
        self,
        old_records: list[dict[str, Any]],
        workdir: Path,
        cancel: CancellationToken | None = None,
    ) -> list[DiffItem]:
        """Diff ``old_records`` against the new-output.json written by extract."""
        old_path = workdir / OLD_OUTPUT_FILE
        new_path = workdir / NEW_OUTPUT_FILE
        old_path.write_text(json.dumps(old_records), encoding="utf-8")

        result = await self._run(
            self._command(self.settings.tracker_diff_command, old_path, new_path),
            cwd=workdir,
            timeout=self.settings.tracker_timeout,
            cancel=cancel,
        )
        (workdir / ERR_LOG_FILE).write_text(result.stderr, encoding="utf-8")
        self._check("diff", result)
        (workdir / DIFF_OUTPUT_FILE).write_text(result.stdout, encoding="utf-8")

        try:
            items = diff_list_adapter.validate_python(_parse_json(result.stdout, "diff output"))
        except ValidationError as e:
            raise ValidationFailure(f"diff output is malformed: {e}") from e
        logger.info("Tracker diff produced %d items", len(items))
        return items
