"""Key-set diffing shared by tag-link sync, config saves and scan summaries."""

from __future__ import annotations

from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class KeyDiff(Generic[K]):
    """Partition of two key sets.

    ``added`` are keys only in desired, ``removed`` only in current and
    ``kept`` in both. Each list keeps the order keys were first seen.
    """

    added: list[K] = field(default_factory=list)
    removed: list[K] = field(default_factory=list)
    kept: list[K] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def _ordered_unique(keys: Iterable[K]) -> list[K]:
    seen: dict[K, None] = {}
    for key in keys:
        seen.setdefault(key, None)
    return list(seen)


def diff_keys(current: Iterable[K], desired: Iterable[K]) -> KeyDiff[K]:
    """Diff ``current`` against ``desired``; duplicates collapse."""
    current_keys = _ordered_unique(current)
    desired_keys = _ordered_unique(desired)
    current_set = set(current_keys)
    desired_set = set(desired_keys)
    return KeyDiff(
        added=[k for k in desired_keys if k not in current_set],
        removed=[k for k in current_keys if k not in desired_set],
        kept=[k for k in desired_keys if k in current_set],
    )

