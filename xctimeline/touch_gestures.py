"""Rebuild touch gesture overlays from synthesized-event attachments."""

from __future__ import annotations

import gzip
import io
import logging
import zlib
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

import zstandard

from .attachment_labels import (
    is_gesture_anchor_title,
    is_synthesized_event_name,
    parse_label_timestamp,
)
from .config import settings
from .keyed_archive import KeyedArchive
from .models import AttachmentManifest, TimelineNode, TouchGestureOverlay, TouchGesturePoint
from .timeline_normalizer import flatten_timeline_nodes

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"
ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

ORIGIN_TOLERANCE = 0.5

TAP_MAX_DURATION = 0.09
TAP_MAX_PATH_LENGTH = 12.0
TAP_MAX_DISPLACEMENT = 12.0
TAP_MAX_POINTS = 3

ANCHOR_MAX_DISTANCE = 1.2
ALIGNMENT_MIN_SKEW = 0.08
ALIGNMENT_MAX_SKEW = 1.2

SYNTHESIZED_EVENT_LABEL_PREFIX = "Synthesized Event"

GestureKey = Tuple[str, str]


# ---------------------------------------------------------------------------
# Attachment bytes
# ---------------------------------------------------------------------------


def read_attachment_data(path: Path) -> Optional[bytes]:
    """Read an exported attachment, transparently undoing gzip or zstd."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        logger.debug("Attachment %s was not exported", path)
        return None
    except OSError as exc:
        logger.warning("Cannot read attachment %s: %s", path, exc)
        return None

    try:
        if path.suffix.lower() == ".gz" or data[:2] == GZIP_MAGIC:
            return gzip.decompress(data)
        if data[:4] == ZSTD_MAGIC:
            # Archives may be written as several concatenated frames.
            reader = zstandard.ZstdDecompressor().stream_reader(io.BytesIO(data), read_across_frames=True)
            with reader:
                return reader.read()
    except (OSError, EOFError, zlib.error, zstandard.ZstdError) as exc:
        logger.warning("Cannot decompress attachment %s: %s", path, exc)
        return None
    return data


# ---------------------------------------------------------------------------
# Archive parsing
# ---------------------------------------------------------------------------


def _clamp(value: float, bound: float, has_bounds: bool) -> float:
    if has_bounds:
        return min(max(value, 0.0), bound)
    return max(value, 0.0)


def parse_gesture_archive(data: bytes, base_timestamp: float) -> Optional[TouchGestureOverlay]:
    archive = KeyedArchive.from_bytes(data)
    if archive is None:
        return None
    root = archive.root_object()
    if root is None:
        logger.debug("Keyed archive has no root object")
        return None

    window = archive.dictionary(root.get("parentWindowSize"))
    width = archive.number(window.get("Width", window.get("width"))) or 0.0
    height = archive.number(window.get("Height", window.get("height"))) or 0.0
    has_bounds = width > 1 and height > 1

    points: List[TouchGesturePoint] = []
    for event_path in archive.array(root.get("eventPaths")):
        if not isinstance(event_path, dict):
            continue
        for event in archive.array(event_path.get("pointerEvents")):
            if not isinstance(event, dict):
                continue
            x = archive.number(event.get("coordinate.x"))
            y = archive.number(event.get("coordinate.y"))
            if x is None or y is None:
                continue
            offset = archive.number(event.get("offset")) or 0.0
            points.append(
                TouchGesturePoint(
                    time=base_timestamp + max(0.0, offset),
                    x=_clamp(x, width, has_bounds),
                    y=_clamp(y, height, has_bounds),
                )
            )

    if not points:
        return None
    if all(abs(point.x) <= ORIGIN_TOLERANCE and abs(point.y) <= ORIGIN_TOLERANCE for point in points):
        logger.debug("Gesture collapsed onto the origin; dropping it")
        return None
    return TouchGestureOverlay.from_points(points, width, height)


def load_gesture_file(path: Path, base_timestamp: float) -> Optional[TouchGestureOverlay]:
    data = read_attachment_data(path)
    if data is None:
        return None
    return parse_gesture_archive(data, base_timestamp)


# ---------------------------------------------------------------------------
# Alignment and bounds
# ---------------------------------------------------------------------------


def is_tap_like(gesture: TouchGestureOverlay) -> bool:
    points = gesture.points
    if len(points) > TAP_MAX_POINTS or gesture.duration > TAP_MAX_DURATION:
        return False
    path_length = sum(
        ((b.x - a.x) ** 2 + (b.y - a.y) ** 2) ** 0.5 for a, b in zip(points, points[1:])
    )
    displacement = ((points[-1].x - points[0].x) ** 2 + (points[-1].y - points[0].y) ** 2) ** 0.5
    return path_length <= TAP_MAX_PATH_LENGTH and displacement <= TAP_MAX_DISPLACEMENT


def nearest_anchor(anchors: Sequence[float], timestamp: float) -> Optional[float]:
    best: Optional[float] = None
    for anchor in anchors:
        if abs(anchor - timestamp) > ANCHOR_MAX_DISTANCE:
            continue
        if best is None or abs(anchor - timestamp) < abs(best - timestamp):
            best = anchor
    return best


def align_tap_gesture(
    gesture: TouchGestureOverlay, anchors: Sequence[float]
) -> TouchGestureOverlay:
    """Pull a tap back onto the UI event it belongs to when its recording lags."""
    if not is_tap_like(gesture):
        return gesture
    anchor = nearest_anchor(anchors, gesture.start_time)
    if anchor is None:
        return gesture
    skew = gesture.start_time - anchor
    if ALIGNMENT_MIN_SKEW < skew <= ALIGNMENT_MAX_SKEW:
        return gesture.shifted(-skew)
    return gesture


def infer_screen_bounds(
    gestures: Sequence[TouchGestureOverlay],
    default_width: Optional[float] = None,
    default_height: Optional[float] = None,
) -> List[TouchGestureOverlay]:
    fallback_width = default_width or settings.default_screen_width
    fallback_height = default_height or settings.default_screen_height
    for gesture in gestures:
        if gesture.width > 1 and gesture.height > 1:
            fallback_width, fallback_height = gesture.width, gesture.height
            break

    resolved: List[TouchGestureOverlay] = []
    for gesture in gestures:
        if gesture.width > 1 and gesture.height > 1:
            resolved.append(gesture)
            continue
        max_x = max(point.x for point in gesture.points)
        max_y = max(point.y for point in gesture.points)
        resolved.append(
            gesture.with_bounds(max(fallback_width, max_x + 1), max(fallback_height, max_y + 1))
        )
    return resolved


def gesture_anchor_times(nodes: Sequence[TimelineNode]) -> List[float]:
    """Timestamps that taps are aligned to.

    Activities titled as synthesized events come first; when a run has none,
    the activities carrying the gesture attachments stand in.
    """
    flat = [node for node in flatten_timeline_nodes(nodes) if node.timestamp is not None]
    titled = [node.timestamp for node in flat if is_gesture_anchor_title(node.title)]
    if titled:
        return titled
    return [
        node.timestamp
        for node in flat
        if any(is_synthesized_event_name(attachment.name) for attachment in node.attachments)
    ]


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


def build_touch_gestures(
    nodes: Sequence[TimelineNode],
    test_identifier: str,
    manifest: AttachmentManifest,
    attachments_dir: Path,
    include_manifest_fallback: bool = True,
    default_width: Optional[float] = None,
    default_height: Optional[float] = None,
) -> List[TouchGestureOverlay]:
    parsed: Dict[GestureKey, Optional[TouchGestureOverlay]] = {}
    used_files: Set[str] = set()
    gestures: List[TouchGestureOverlay] = []

    def collect(file_name: str, base_time: float) -> None:
        key = (file_name, f"{base_time:.6f}")
        used_files.add(file_name)
        if key in parsed:
            return
        gesture = parsed[key] = load_gesture_file(attachments_dir / file_name, base_time)
        if gesture is not None:
            gestures.append(gesture)

    for node in flatten_timeline_nodes(nodes):
        for attachment in node.attachments:
            if not is_synthesized_event_name(attachment.name):
                continue
            if not attachment.exported_file_name:
                continue
            base_time = attachment.timestamp if attachment.timestamp is not None else node.timestamp
            if base_time is None:
                continue
            collect(attachment.exported_file_name, base_time)

    if include_manifest_fallback:
        for item in manifest.get(test_identifier, []):
            if not is_synthesized_event_name(item.label):
                continue
            if item.exported_file_name in used_files:
                continue
            base_time = item.timestamp
            if base_time is None:
                base_time = parse_label_timestamp(item.label, SYNTHESIZED_EVENT_LABEL_PREFIX)
            if base_time is None:
                logger.debug("No time for gesture attachment %s", item.exported_file_name)
                continue
            collect(item.exported_file_name, base_time)

    anchors = gesture_anchor_times(nodes)
    aligned = [align_tap_gesture(gesture, anchors) for gesture in gestures]
    bounded = infer_screen_bounds(aligned, default_width, default_height)
    return sorted(bounded, key=lambda gesture: gesture.start_time)
