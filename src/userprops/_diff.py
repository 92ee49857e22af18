"""Line diff between two values rendered as indented JSON."""

from __future__ import annotations

import difflib
import json
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Any


class DiffLineType(StrEnum):
    UNCHANGED = auto()
    REMOVED = auto()
    ADDED = auto()


@dataclass(frozen=True, slots=True)
class DiffLine:
    type: DiffLineType
    line: str


def _lines(value: Any) -> list[str]:
    return json.dumps(value, indent=2, default=str).split("\n")


def generate_line_diff(previous: Any, current: Any) -> list[DiffLine]:
    """Diff the JSON renderings of two values line by line.

    Replaced blocks are reported as their removed lines followed by their added
    lines.
    """
    before = _lines(previous)
    after = _lines(current)
    diff: list[DiffLine] = []
    matcher = difflib.SequenceMatcher(a=before, b=after, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            diff.extend(DiffLine(DiffLineType.UNCHANGED, line) for line in before[i1:i2])
            continue
        diff.extend(DiffLine(DiffLineType.REMOVED, line) for line in before[i1:i2])
        diff.extend(DiffLine(DiffLineType.ADDED, line) for line in after[j1:j2])
    return diff
