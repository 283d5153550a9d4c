"""Correlate activity attachment references with exported manifest items."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .activity_tree import walk_activity_nodes
from .attachment_labels import cleaned_attachment_label
from .models import (
    ActivityNode,
    AttachmentManifest,
    AttachmentManifestItem,
    AttachmentRef,
    TimelineAttachment,
)

logger = logging.getLogger(__name__)

GLOBAL_BUCKET = ""
GLOBAL_ATTACHMENT_PADDING = 5.0
MAX_TIMESTAMP_SKEW = 1.5

TimeRange = Tuple[float, float]


def activity_time_range(nodes: Sequence[ActivityNode]) -> Optional[TimeRange]:
    """Earliest and latest timestamp seen anywhere in an activity tree."""
    stamps: List[float] = []
    for node in walk_activity_nodes(nodes):
        if node.start_time is not None:
            stamps.append(node.start_time)
        stamps.extend(ref.timestamp for ref in node.attachments if ref.timestamp is not None)
    if not stamps:
        return None
    return min(stamps), max(stamps)


def _admitted_items(
    test_identifier: str,
    manifest: AttachmentManifest,
    activity_range: Optional[TimeRange],
) -> Iterator[AttachmentManifestItem]:
    yield from manifest.get(test_identifier, [])
    if test_identifier == GLOBAL_BUCKET:
        return
    global_items = manifest.get(GLOBAL_BUCKET, [])
    if not global_items:
        return
    if activity_range is None:
        logger.debug("No activity time range; ignoring %d global attachments", len(global_items))
        return
    lower = activity_range[0] - GLOBAL_ATTACHMENT_PADDING
    upper = activity_range[1] + GLOBAL_ATTACHMENT_PADDING
    for item in global_items:
        if item.timestamp is not None and lower <= item.timestamp <= upper:
            yield item


def _name_sort_key(item: AttachmentManifestItem) -> Tuple[bool, float, str]:
    return (item.timestamp is None, item.timestamp or 0.0, item.exported_file_name)


@dataclass
class AttachmentIndex:
    by_payload: Dict[str, AttachmentManifestItem] = field(default_factory=dict)
    by_name: Dict[str, List[AttachmentManifestItem]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        test_identifier: str,
        manifest: AttachmentManifest,
        activity_range: Optional[TimeRange] = None,
    ) -> "AttachmentIndex":
        index = cls()
        indexed: Set[Tuple[str, str]] = set()
        for item in _admitted_items(test_identifier, manifest, activity_range):
            if item.payload_id and item.payload_id not in index.by_payload:
                index.by_payload[item.payload_id] = item

            raw_name = (item.suggested_human_readable_name or "").strip()
            if not raw_name:
                continue
            for key in (raw_name, cleaned_attachment_label(raw_name)):
                marker = (key, item.exported_file_name)
                if marker in indexed:
                    continue
                indexed.add(marker)
                index.by_name.setdefault(key, []).append(item)

        for items in index.by_name.values():
            items.sort(key=_name_sort_key)
        return index

    def resolve(
        self,
        name: str,
        timestamp: Optional[float] = None,
        payload_id: Optional[str] = None,
    ) -> Optional[AttachmentManifestItem]:
        if payload_id:
            item = self.by_payload.get(payload_id)
            if item is not None:
                return item

        raw_name = name.strip()
        keys: List[str] = [raw_name]
        cleaned = cleaned_attachment_label(raw_name)
        if cleaned != raw_name:
            keys.append(cleaned)

        for key in keys:
            candidates = self.by_name.get(key)
            if not candidates:
                continue
            if timestamp is None:
                return candidates[0]
            best: Optional[AttachmentManifestItem] = None
            best_distance = float("inf")
            for candidate in candidates:
                distance = (
                    0.0 if candidate.timestamp is None else abs(candidate.timestamp - timestamp)
                )
                if distance < best_distance:
                    best, best_distance = candidate, distance
            if best is not None and best_distance <= MAX_TIMESTAMP_SKEW:
                return best
        return None


def correlate_attachments(
    refs: Sequence[AttachmentRef], index: AttachmentIndex
) -> List[TimelineAttachment]:
    """Resolve each reference and drop duplicates of the same file and time."""
    correlated: List[TimelineAttachment] = []
    seen: Set[Tuple[str, Optional[float]]] = set()
    for ref in refs:
        item = index.resolve(ref.name, ref.timestamp, ref.payload_id)
        timestamp = ref.timestamp
        if timestamp is None and item is not None:
            timestamp = item.timestamp
        key = (item.exported_file_name if item is not None else ref.name, timestamp)
        if key in seen:
            continue
        seen.add(key)
        correlated.append(
            TimelineAttachment(
                name=ref.name,
                timestamp=timestamp,
                exported_file_name=item.exported_file_name if item is not None else None,
                failure_associated=bool(item is not None and item.is_associated_with_failure),
            )
        )
    return correlated
