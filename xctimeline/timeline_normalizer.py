"""Turn correlated activity trees into renderable timeline nodes and events."""

from __future__ import annotations

import dataclasses
import math
from typing import Iterator, List, Mapping, Optional, Sequence

from .attachment_labels import (
    is_hierarchy_attachment_name,
    is_hierarchy_title,
    is_interaction_title,
    is_synthesized_event_name,
)
from .attachments import AttachmentIndex, correlate_attachments
from .models import ActivityNode, TimelineEvent, TimelineEventKind, TimelineNode
from .source_locations import SourceLocation, extract_source_locations, source_location_label

EVENT_ID_PREFIX = "timeline_event_"


def _location_label(
    activity: ActivityNode, symbol_locations: Mapping[str, SourceLocation]
) -> Optional[str]:
    label = source_location_label(activity.title, symbol_locations)
    if label is None and activity.is_synthetic_failure_branch:
        # Failure messages often carry "File.swift:42" themselves.
        locations = extract_source_locations(activity.title)
        if locations:
            label = locations[0].label
    return label


def build_timeline_nodes(
    activity_nodes: Sequence[ActivityNode],
    index: AttachmentIndex,
    id_counter: Iterator[int],
    symbol_locations: Optional[Mapping[str, SourceLocation]] = None,
) -> List[TimelineNode]:
    """Correlate attachments and assign pre-order ids.

    id_counter is shared across every run of a test so ids stay unique in one
    rendered report.
    """
    symbol_locations = symbol_locations or {}
    built: List[TimelineNode] = []
    for activity in activity_nodes:
        node_id = f"{EVENT_ID_PREFIX}{next(id_counter)}"
        attachments = correlate_attachments(activity.attachments, index)
        children = build_timeline_nodes(activity.children, index, id_counter, symbol_locations)

        timestamp = activity.start_time
        if timestamp is None:
            stamps = [item.timestamp for item in attachments if item.timestamp is not None]
            child_stamps = [child.timestamp for child in children if child.timestamp is not None]
            timestamp = min(stamps) if stamps else (min(child_stamps) if child_stamps else None)

        end_candidates = [timestamp] if timestamp is not None else []
        end_candidates.extend(child.end_timestamp for child in children if child.end_timestamp is not None)
        end_candidates.extend(item.timestamp for item in attachments if item.timestamp is not None)

        built.append(
            TimelineNode(
                id=node_id,
                title=activity.title,
                timestamp=timestamp,
                end_timestamp=max(end_candidates) if end_candidates else None,
                source_location_label=_location_label(activity, symbol_locations),
                failure_associated=activity.failure_associated,
                failure_branch=activity.is_synthetic_failure_branch,
                attachments=attachments,
                children=children,
            )
        )
    return built


def _mergeable(lhs: TimelineNode, rhs: TimelineNode) -> bool:
    return (
        lhs.title == rhs.title
        and lhs.source_location_label == rhs.source_location_label
        and lhs.failure_associated == rhs.failure_associated
        and lhs.failure_branch == rhs.failure_branch
        and not lhs.attachments
        and not rhs.attachments
        and not lhs.children
        and not rhs.children
    )


def _earliest(lhs: Optional[float], rhs: Optional[float]) -> Optional[float]:
    if lhs is None:
        return rhs
    if rhs is None:
        return lhs
    return min(lhs, rhs)


def _latest(lhs: Optional[float], rhs: Optional[float]) -> Optional[float]:
    if lhs is None:
        return rhs
    if rhs is None:
        return lhs
    return max(lhs, rhs)


def collapse_repeated_nodes(nodes: Sequence[TimelineNode]) -> List[TimelineNode]:
    """Merge runs of identical leaf siblings into one node with a repeat count."""
    collapsed: List[TimelineNode] = []
    for node in nodes:
        current = dataclasses.replace(node, children=collapse_repeated_nodes(node.children))
        if collapsed and _mergeable(collapsed[-1], current):
            previous = collapsed[-1]
            collapsed[-1] = dataclasses.replace(
                previous,
                timestamp=_earliest(previous.timestamp, current.timestamp),
                end_timestamp=_latest(previous.end_timestamp, current.end_timestamp),
                repeat_count=max(previous.repeat_count, 1) + max(current.repeat_count, 1),
            )
        else:
            collapsed.append(current)
    return collapsed


def flatten_timeline_nodes(nodes: Sequence[TimelineNode]) -> List[TimelineNode]:
    flat: List[TimelineNode] = []
    for node in nodes:
        flat.append(node)
        flat.extend(flatten_timeline_nodes(node.children))
    return flat


def format_timeline_offset(offset: float) -> str:
    total = max(0, int(math.floor(offset + 0.5)))
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def timeline_display_title(node: TimelineNode, base_time: float) -> str:
    title = node.title
    if node.source_location_label:
        title = f"{title} ({node.source_location_label})"
    if node.repeat_count > 1:
        title = f"{title} ×{node.repeat_count}"
        if node.timestamp is not None:
            start = format_timeline_offset(node.timestamp - base_time)
            end_time = node.end_timestamp if node.end_timestamp is not None else node.timestamp
            end = format_timeline_offset(end_time - base_time)
            title = f"{title} ({start}-{end})"
    return title


def timeline_event_kind(node: TimelineNode) -> TimelineEventKind:
    if node.failure_associated:
        return TimelineEventKind.ERROR
    if is_interaction_title(node.title) or any(
        is_synthesized_event_name(attachment.name) for attachment in node.attachments
    ):
        return TimelineEventKind.TAP
    if is_hierarchy_title(node.title) or any(
        is_hierarchy_attachment_name(attachment.name) for attachment in node.attachments
    ):
        return TimelineEventKind.HIERARCHY
    return TimelineEventKind.EVENT


def build_timeline_events(nodes: Sequence[TimelineNode], base_time: float) -> List[TimelineEvent]:
    """Flatten timestamped nodes into events, stably ordered by time."""
    timed = [node for node in flatten_timeline_nodes(nodes) if node.timestamp is not None]
    timed.sort(key=lambda node: node.timestamp)
    return [
        TimelineEvent(
            id=node.id,
            title=timeline_display_title(node, base_time),
            time=node.timestamp,
            end_time=node.end_timestamp if node.end_timestamp is not None else node.timestamp,
            kind=timeline_event_kind(node),
        )
        for node in timed
    ]


def first_timestamp(nodes: Sequence[TimelineNode]) -> Optional[float]:
    stamps = [node.timestamp for node in flatten_timeline_nodes(nodes) if node.timestamp is not None]
    return min(stamps) if stamps else None
