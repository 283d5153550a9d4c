"""Sibling ordering shared by the tree builder and the failure grafter."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Callable, List, Optional, Sequence, Tuple, TypeVar

from .models import ActivityId, ActivityNode, ActivityRecord

T = TypeVar("T")

SortFields = Tuple[Optional[int], Optional[float], Optional[ActivityId]]


def _compare_ids(lhs: ActivityId, rhs: ActivityId) -> int:
    if isinstance(lhs, int) and isinstance(rhs, int):
        return -1 if lhs < rhs else 1
    lhs_text, rhs_text = str(lhs), str(rhs)
    if lhs_text.isdigit() and rhs_text.isdigit():
        return -1 if int(lhs_text) < int(rhs_text) else 1
    if lhs_text == rhs_text:
        return 0
    return -1 if lhs_text < rhs_text else 1


def _compare(lhs: SortFields, rhs: SortFields) -> int:
    lhs_order, lhs_start, lhs_id = lhs
    rhs_order, rhs_start, rhs_id = rhs
    if lhs_order is not None and rhs_order is not None and lhs_order != rhs_order:
        return -1 if lhs_order < rhs_order else 1
    if lhs_start is not None and rhs_start is not None and lhs_start != rhs_start:
        return -1 if lhs_start < rhs_start else 1
    if lhs_id is not None and rhs_id is not None and lhs_id != rhs_id:
        return _compare_ids(lhs_id, rhs_id)
    return 0


def sort_siblings(items: Sequence[T], fields: Callable[[T], SortFields]) -> List[T]:
    """Stable sort by explicit order, then start time, then id.

    Each criterion only applies when both sides carry a distinct value, so
    items lacking all three keep their insertion order.
    """
    return sorted(items, key=cmp_to_key(lambda lhs, rhs: _compare(fields(lhs), fields(rhs))))


def sort_activity_rows(rows: Sequence[ActivityRecord]) -> List[ActivityRecord]:
    return sort_siblings(rows, lambda row: (row.order_in_parent, row.start_time, row.id))


def sort_activity_nodes(nodes: Sequence[ActivityNode]) -> List[ActivityNode]:
    return sort_siblings(
        nodes, lambda node: (node.order_in_parent, node.start_time, node.source_id)
    )
