"""Resolve failure references on activities into synthetic failure branches."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from .models import (
    ActivityNode,
    FailureIssue,
    FailureIssueRecord,
    StackFrame,
    StackFrameRecord,
)
from .ordering import sort_activity_nodes

logger = logging.getLogger(__name__)

FAILURE_ID_REGEX = re.compile(
    r"[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}"
)
FAILURE_ID_SEPARATORS = re.compile(r"[,;| \t\n]")

WRAPPER_SYMBOL_PREFIXES: Tuple[str, ...] = ("partial apply for ", "@objc ")
COMPILER_GENERATED_MARKER = "<compiler-generated>"


def parse_failure_issue_ids(raw: Optional[str]) -> List[str]:
    """Split a free-form failure reference string into upper-cased issue ids.

    UUID-shaped tokens win when any are present; otherwise the string is split
    on common separators.
    """
    if not raw:
        return []
    trimmed = raw.strip()
    if not trimmed:
        return []

    tokens = FAILURE_ID_REGEX.findall(trimmed) or FAILURE_ID_SEPARATORS.split(trimmed)
    identifiers: List[str] = []
    seen: Set[str] = set()
    for token in tokens:
        candidate = token.strip().upper()
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        identifiers.append(candidate)
    return identifiers


def _issue_message(record: FailureIssueRecord) -> Optional[str]:
    for text in (record.compact_message, record.detailed_message):
        if text and text.strip():
            return text.strip()
    return None


def filter_stack_frames(records: Iterable[StackFrameRecord]) -> List[StackFrame]:
    ordered = sorted(
        records,
        key=lambda frame: (frame.order_in_container is None, frame.order_in_container or 0),
    )
    frames: List[StackFrame] = []
    seen: Set[Tuple[str, str, int]] = set()
    for record in ordered:
        symbol = (record.symbol_name or "").strip()
        file_path = (record.file_path or "").strip()
        line = record.line_number
        if not symbol or symbol.startswith(WRAPPER_SYMBOL_PREFIXES):
            continue
        if not file_path or COMPILER_GENERATED_MARKER in file_path:
            continue
        if line is None or line <= 0:
            continue
        key = (symbol, file_path, line)
        if key in seen:
            continue
        seen.add(key)
        frames.append(StackFrame(symbol=symbol, file_path=file_path, line=line))
    return frames


class FailureIssueTable:
    """Run-scoped lookup of failure issues by case-insensitive id."""

    def __init__(self, issues: Optional[Mapping[str, FailureIssue]] = None) -> None:
        self._issues: Dict[str, FailureIssue] = {}
        for issue_id, issue in (issues or {}).items():
            self._issues.setdefault(issue_id.strip().upper(), issue)

    @classmethod
    def from_records(
        cls,
        records: Sequence[FailureIssueRecord],
        frames_by_context: Optional[Mapping[int, Sequence[StackFrameRecord]]] = None,
    ) -> "FailureIssueTable":
        frames_by_context = frames_by_context or {}
        table = cls()
        for record in records:
            issue_id = record.uuid.strip().upper()
            if not issue_id or issue_id in table._issues:
                continue
            message = _issue_message(record)
            if message is None:
                logger.debug("Failure issue %s has no message; skipping", issue_id)
                continue
            frames: List[StackFrame] = []
            if record.stack_context_id is not None:
                frames = filter_stack_frames(frames_by_context.get(record.stack_context_id, ()))
            table._issues[issue_id] = FailureIssue(
                id=issue_id,
                message=message,
                timestamp=record.timestamp,
                stack_frames=tuple(frames),
            )
        return table

    def get(self, issue_id: str) -> Optional[FailureIssue]:
        return self._issues.get(issue_id.strip().upper())

    def resolve(self, issue_ids: Iterable[str]) -> List[FailureIssue]:
        resolved: List[FailureIssue] = []
        for issue_id in issue_ids:
            issue = self.get(issue_id)
            if issue is None:
                logger.debug("Failure issue %s not found in run", issue_id)
                continue
            resolved.append(issue)
        return resolved

    def __len__(self) -> int:
        return len(self._issues)

    def __iter__(self) -> Iterator[FailureIssue]:
        return iter(self._issues.values())


def graft_failure_issues(
    children: Sequence[ActivityNode],
    failure_ids: Sequence[str],
    table: FailureIssueTable,
    parent_time: Optional[float],
) -> List[ActivityNode]:
    """Append one synthetic failure branch per resolved issue and re-sort."""
    issues = table.resolve(failure_ids)
    if not issues:
        return list(children)

    grafted = list(children)
    for issue in issues:
        time = issue.timestamp if issue.timestamp is not None else parent_time
        frame_nodes = [
            ActivityNode(title=frame.symbol, start_time=time) for frame in issue.stack_frames
        ]
        grafted.append(
            ActivityNode(
                title=issue.message,
                start_time=time,
                failure_associated=True,
                is_synthetic_failure_branch=True,
                children=frame_nodes,
            )
        )
    return sort_activity_nodes(grafted)
