"""Map failure stack symbols and free text onto source file locations."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from .models import FailureIssue

SOURCE_LOCATION_REGEX = re.compile(
    r"([A-Za-z0-9_~\./\\-]+\.(?:swift|m|mm|c|cc|cpp|h|hpp|kt|java|js|ts|tsx|py|rb|go|rs)):(\d+)(?::(\d+))?"
)


@dataclass(frozen=True)
class SourceLocation:
    file_path: str
    line: int
    column: Optional[int] = None

    @property
    def label(self) -> str:
        name = PurePosixPath(self.file_path.replace("\\", "/")).name or self.file_path
        return f"{name}:{self.line}"


def symbol_locations_from_issues(issues: Iterable[FailureIssue]) -> Dict[str, SourceLocation]:
    locations: Dict[str, SourceLocation] = {}
    for issue in issues:
        for frame in issue.stack_frames:
            locations.setdefault(frame.symbol, SourceLocation(frame.file_path, frame.line))
    return locations


def source_location_label(
    title: str, symbol_locations: Mapping[str, SourceLocation]
) -> Optional[str]:
    location = symbol_locations.get(title.strip())
    return location.label if location is not None else None


def extract_source_locations(text: str) -> List[SourceLocation]:
    """Find `path.ext:line[:column]` references in free text, first occurrence wins."""
    found: List[SourceLocation] = []
    seen: Set[Tuple[str, int, Optional[int]]] = set()
    for match in SOURCE_LOCATION_REGEX.finditer(text):
        path, line, column = match.group(1), int(match.group(2)), match.group(3)
        key = (path, line, int(column) if column else None)
        if key in seen:
            continue
        seen.add(key)
        found.append(SourceLocation(file_path=path, line=line, column=key[2]))
    return found
