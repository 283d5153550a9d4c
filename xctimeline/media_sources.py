"""Pick the screen recordings and screenshots a timeline plays against."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence, Set, Tuple

from .activity_tree import walk_activity_nodes
from .attachment_labels import is_screenshot_name, is_video_name, parse_label_timestamp
from .models import (
    ActivityNode,
    AttachmentManifest,
    AttachmentManifestItem,
    AttachmentRef,
    ScreenshotSource,
    VideoSource,
)

VIDEO_MIME_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "m4v": "video/x-m4v",
}
SCREENSHOT_LABEL_PREFIXES = ("UI Snapshot", "Screenshot")

RunAttachment = Tuple[int, AttachmentRef]


def _run_attachments(runs: Sequence[Sequence[ActivityNode]]) -> List[RunAttachment]:
    collected: List[RunAttachment] = []
    for run_index, roots in enumerate(runs):
        for node in walk_activity_nodes(roots):
            collected.extend((run_index, ref) for ref in node.attachments)
    return collected


def _earliest_activity_time(runs: Sequence[Sequence[ActivityNode]]) -> Optional[float]:
    stamps = [
        node.start_time
        for roots in runs
        for node in walk_activity_nodes(roots)
        if node.start_time is not None
    ]
    return min(stamps) if stamps else None


def _video_mime_type(file_name: str) -> str:
    return VIDEO_MIME_TYPES.get(Path(file_name).suffix.lower().lstrip("."), "video/mp4")


def _video_timing(
    item: AttachmentManifestItem, attachments: Sequence[RunAttachment]
) -> Tuple[Optional[float], Optional[int]]:
    if item.payload_id:
        by_payload = [
            (ref.timestamp, run_index)
            for run_index, ref in attachments
            if ref.payload_id == item.payload_id and ref.timestamp is not None
        ]
        if by_payload:
            return min(by_payload, key=lambda entry: entry[0])

    name = (item.suggested_human_readable_name or "").strip()
    by_name = [
        (ref.timestamp, run_index)
        for run_index, ref in attachments
        if name and ref.name.strip() == name and ref.timestamp is not None
    ]
    if not by_name:
        return None, None
    if item.timestamp is None:
        return min(by_name, key=lambda entry: entry[0])
    return min(by_name, key=lambda entry: abs(entry[0] - item.timestamp))


def build_video_sources(
    test_identifier: str,
    manifest: AttachmentManifest,
    runs: Sequence[Sequence[ActivityNode]],
) -> List[VideoSource]:
    attachments = _run_attachments(runs)
    fallback_time = _earliest_activity_time(runs)
    videos: List[VideoSource] = []
    seen: Set[str] = set()
    for item in manifest.get(test_identifier, []):
        if not (is_video_name(item.exported_file_name) or is_video_name(item.label)):
            continue
        if item.exported_file_name in seen:
            continue
        seen.add(item.exported_file_name)
        start_time, run_index = _video_timing(item, attachments)
        if start_time is None:
            start_time = item.timestamp if item.timestamp is not None else fallback_time
        videos.append(
            VideoSource(
                label=item.label,
                file_name=item.exported_file_name,
                mime_type=_video_mime_type(item.exported_file_name),
                start_time=start_time,
                failure_associated=bool(item.is_associated_with_failure),
                run_index=run_index,
            )
        )
    return sorted(
        videos,
        key=lambda video: (video.start_time is None, video.start_time or 0.0, video.label),
    )


def _screenshot_time(
    item: AttachmentManifestItem,
    attachments: Sequence[RunAttachment],
    fallback_time: Optional[float],
) -> Optional[float]:
    name = item.label.strip()
    stamps = [
        ref.timestamp
        for _, ref in attachments
        if ref.name.strip() == name and ref.timestamp is not None
    ]
    if stamps:
        return min(stamps)
    for prefix in SCREENSHOT_LABEL_PREFIXES:
        parsed = parse_label_timestamp(name, prefix)
        if parsed is not None:
            return parsed
    return fallback_time


def build_screenshot_sources(
    test_identifier: str,
    manifest: AttachmentManifest,
    runs: Sequence[Sequence[ActivityNode]],
) -> List[ScreenshotSource]:
    attachments = _run_attachments(runs)
    fallback_time = _earliest_activity_time(runs)
    screenshots: List[ScreenshotSource] = []
    seen: Set[str] = set()
    for item in manifest.get(test_identifier, []):
        if not (is_screenshot_name(item.exported_file_name) or is_screenshot_name(item.label)):
            continue
        if item.exported_file_name in seen:
            continue
        time = _screenshot_time(item, attachments, fallback_time)
        if time is None:
            continue
        seen.add(item.exported_file_name)
        screenshots.append(
            ScreenshotSource(
                label=item.label,
                file_name=item.exported_file_name,
                time=time,
                failure_associated=bool(item.is_associated_with_failure),
            )
        )
    return sorted(screenshots, key=lambda shot: (shot.time, shot.label))
