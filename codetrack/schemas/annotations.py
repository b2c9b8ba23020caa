"""Schemas for the tracker tool's wire formats: records, diff items and scan config."""

from __future__ import annotations

import enum
import json
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, field_validator


def _coerce_context(value: Any) -> list[str] | None:
    """Accept a list of lines, a JSON-encoded list, or a newline-separated string."""
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value.splitlines()
        if isinstance(decoded, list):
            return [str(v) for v in decoded]
        return value.splitlines()
    raise ValueError("context must be a list of lines or a string")


Context = Annotated[list[str] | None, BeforeValidator(_coerce_context)]


class AnnotationRecord(BaseModel):
    """One tagged comment found by the extraction tool."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    tag: str
    text: str = ""
    file: str
    line: int = 0
    context: Context = None


class AnnotationFields(BaseModel):
    """Location/content half of a DiffItem (``old`` or ``new``)."""

    model_config = ConfigDict(extra="allow")

    text: str = ""
    file: str | None = None
    line: int | None = None
    context: Context = None


class DiffType(str, enum.Enum):
    SAME = "SAME"
    MOVE = "MOVE"
    UPDATE = "UPDATE"
    NEW = "NEW"
    DELETE = "DELETE"


class DiffItemData(BaseModel):
    model_config = ConfigDict(extra="allow")

    old: AnnotationFields | None = None
    new: AnnotationFields | None = None


class DiffItem(BaseModel):
    """Classification of one annotation between two scans, produced by the diff tool."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    tag: str
    type: DiffType
    data: DiffItemData = Field(default_factory=DiffItemData)

    @property
    def current(self) -> AnnotationFields | None:
        """Newest known fields: ``new`` when present, else ``old``."""
        return self.data.new or self.data.old


annotation_list_adapter = TypeAdapter(list[AnnotationRecord])
diff_list_adapter = TypeAdapter(list[DiffItem])


class TagRule(BaseModel):
    """Tag name plus the comment patterns that select it."""

    name: str = Field(..., min_length=1, max_length=255)
    match: list[str] = Field(default_factory=list)

    @field_validator("match")
    @classmethod
    def _no_blank_patterns(cls, value: list[str]) -> list[str]:
        cleaned = [m.strip() for m in value]
        if any(not m for m in cleaned):
            raise ValueError("match patterns must not be blank")
        return cleaned


class ScanConfig(BaseModel):
    """Contents of the ``config.json`` handed to the extraction tool."""

    tags: list[TagRule] = Field(default_factory=list)
    ignore: list[str] = Field(default_factory=list)


class ProjectScanConfig(BaseModel):
    """A project's stored scan configuration."""

    project_id: int
    config: ScanConfig
    scan_branch: str | None = None
