"""Build ordered activity trees out of flat backend rows."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set

from .failure_issues import FailureIssueTable, graft_failure_issues, parse_failure_issue_ids
from .models import (
    ActivityAttachmentRecord,
    ActivityId,
    ActivityNode,
    ActivityRecord,
    ActivityRunRecords,
    AttachmentRef,
)
from .ordering import sort_activity_rows

logger = logging.getLogger(__name__)


def _index_rows(rows: Sequence[ActivityRecord]) -> Dict[ActivityId, ActivityRecord]:
    by_id: Dict[ActivityId, ActivityRecord] = {}
    for row in rows:
        if row.id in by_id:
            logger.debug("Duplicate activity id %s; keeping the first row", row.id)
            continue
        by_id[row.id] = row
    return by_id


def resolve_parents(
    rows_by_id: Dict[ActivityId, ActivityRecord],
) -> Dict[ActivityId, Optional[ActivityId]]:
    """Map every row to its effective parent.

    Unknown parents become None. When a chain of parent links loops back on
    itself, the row whose link closes the loop becomes a root.
    """
    parents: Dict[ActivityId, Optional[ActivityId]] = {}
    for row_id, row in rows_by_id.items():
        parent = row.parent_id
        if parent is not None and parent not in rows_by_id:
            logger.debug("Activity %s references missing parent %s", row_id, parent)
            parent = None
        parents[row_id] = parent

    for start in rows_by_id:
        path: List[ActivityId] = []
        on_path: Set[ActivityId] = set()
        current: Optional[ActivityId] = start
        while current is not None and current not in on_path:
            on_path.add(current)
            path.append(current)
            current = parents[current]
        if current is not None:
            logger.warning("Activity %s closes a parent cycle; treating it as a root", path[-1])
            parents[path[-1]] = None
    return parents


def _attachment_refs(records: Sequence[ActivityAttachmentRecord]) -> List[AttachmentRef]:
    return [
        AttachmentRef(name=record.name, timestamp=record.timestamp, payload_id=record.payload_id)
        for record in records
    ]


def resolve_start_time(
    raw_start: Optional[float],
    attachments: Sequence[AttachmentRef],
    children: Sequence[ActivityNode],
) -> Optional[float]:
    if raw_start is not None:
        return raw_start
    stamps = [ref.timestamp for ref in attachments if ref.timestamp is not None]
    if stamps:
        return min(stamps)
    child_starts = [child.start_time for child in children if child.start_time is not None]
    return min(child_starts) if child_starts else None


def _is_failure_flagged(row: ActivityRecord) -> bool:
    return bool(row.failure_ids and row.failure_ids.strip()) or bool(
        row.is_associated_with_failure
    )


def build_activity_tree(
    run: ActivityRunRecords,
    issue_table: Optional[FailureIssueTable] = None,
) -> List[ActivityNode]:
    """Return the ordered root activities of one run with failures grafted in."""
    table = issue_table or FailureIssueTable.from_records(run.failure_issues, run.stack_frames)
    rows_by_id = _index_rows(run.activities)
    parents = resolve_parents(rows_by_id)

    attachments_by_activity: Dict[ActivityId, List[ActivityAttachmentRecord]] = defaultdict(list)
    for attachment in run.attachments:
        if attachment.activity_id not in rows_by_id:
            logger.debug(
                "Attachment %r references missing activity %s",
                attachment.name,
                attachment.activity_id,
            )
            continue
        attachments_by_activity[attachment.activity_id].append(attachment)

    children_by_parent: Dict[Optional[ActivityId], List[ActivityRecord]] = defaultdict(list)
    for row_id, row in rows_by_id.items():
        children_by_parent[parents[row_id]].append(row)

    built: Set[ActivityId] = set()

    def build(row: ActivityRecord) -> ActivityNode:
        built.add(row.id)
        refs = _attachment_refs(attachments_by_activity.get(row.id, []))
        children = [
            build(child)
            for child in sort_activity_rows(children_by_parent.get(row.id, []))
            if child.id not in built
        ]
        base_time = resolve_start_time(row.start_time, refs, children)
        children = graft_failure_issues(
            children, parse_failure_issue_ids(row.failure_ids), table, base_time
        )
        return ActivityNode(
            title=row.title,
            start_time=resolve_start_time(row.start_time, refs, children),
            failure_associated=_is_failure_flagged(row),
            attachments=refs,
            children=children,
            order_in_parent=row.order_in_parent,
            source_id=row.id,
        )

    return [build(row) for row in sort_activity_rows(children_by_parent.get(None, []))]


def walk_activity_nodes(nodes: Sequence[ActivityNode]) -> List[ActivityNode]:
    """Flatten a tree in pre-order."""
    flat: List[ActivityNode] = []
    for node in nodes:
        flat.append(node)
        flat.extend(walk_activity_nodes(node.children))
    return flat
