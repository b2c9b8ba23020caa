"""Tests for repository archive unpacking."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

import pytest

from codetrack.services.archive import unpack_archive
from codetrack.services.errors import ExternalToolFailure


def _zip(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buf.getvalue()


def test_returns_single_top_level_folder(tmp_path: Path) -> None:
    data = _zip({"acme-widgets-abc123/src/a.py": "# TODO: x\n", "acme-widgets-abc123/README": "hi"})
    root = unpack_archive(data, tmp_path / "repo")
    assert root.name == "acme-widgets-abc123"
    assert (root / "src" / "a.py").read_text() == "# TODO: x\n"


def test_flat_archive_returns_destination(tmp_path: Path) -> None:
    root = unpack_archive(_zip({"a.py": "", "b.py": ""}), tmp_path / "repo")
    assert root == (tmp_path / "repo").resolve()


def test_rejects_path_escape(tmp_path: Path) -> None:
    with pytest.raises(ExternalToolFailure, match="escapes"):
        unpack_archive(_zip({"../evil.py": "x"}), tmp_path / "repo")
    assert not (tmp_path / "evil.py").exists()


def test_not_a_zip(tmp_path: Path) -> None:
    with pytest.raises(ExternalToolFailure, match="not a zip"):
        unpack_archive(b"<html>rate limited</html>", tmp_path / "repo")
