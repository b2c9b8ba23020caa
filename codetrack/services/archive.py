"""Unpacking of repository archives fetched for a scan."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

from codetrack.services.errors import ExternalToolFailure


def unpack_archive(data: bytes, dest: Path) -> Path:
    """Extract a zipball into ``dest`` and return the repository root.

    GitHub zipballs hold one top-level ``<owner>-<repo>-<sha>/`` folder; that
    folder is returned when present, otherwise ``dest`` itself. Members that
    would land outside ``dest`` are rejected.
    """
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            for member in archive.namelist():
                target = (root / member).resolve()
                if target != root and root not in target.parents:
                    raise ExternalToolFailure(f"archive member escapes target dir: {member}")
            archive.extractall(root)
    except zipfile.BadZipFile as e:
        raise ExternalToolFailure(f"repository archive is not a zip file: {e}") from e

    entries = [p for p in root.iterdir() if not p.name.startswith("__MACOSX")]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return root
