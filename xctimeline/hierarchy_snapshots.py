"""Parse 'App UI hierarchy' text dumps into element snapshots."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .attachment_labels import is_hierarchy_attachment_name
from .models import TimelineNode, UIHierarchyElement, UIHierarchySnapshot
from .timeline_normalizer import flatten_timeline_nodes
from .touch_gestures import read_attachment_data

logger = logging.getLogger(__name__)

_NUMBER = r"(-?\d+(?:\.\d+)?)"
ELEMENT_LINE_REGEX = re.compile(
    r"^(\s*)(.+?),\s*0x[0-9A-Fa-f]+,\s*"
    rf"\{{\{{{_NUMBER},\s*{_NUMBER}\}},\s*\{{{_NUMBER},\s*{_NUMBER}\}}\}}"
    r"(?:,\s*(.*?))?(?:\s*<.*)?\s*$"
)
PROPERTY_REGEX = re.compile(
    r"(identifier|label|value|title|placeholderValue|hint|traits):\s*(?:'([^']*)'|([^,]+))"
)
ELEMENT_ID_REGEX = re.compile(r"elementOrHash\.elementID:\s*([0-9.]+)")
ROLE_NAME_REGEX = re.compile(r"^(.*?)\s*\((.*)\)$")

HIERARCHY_LABEL_PREFIX = "App UI hierarchy for "


def hierarchy_snapshot_display_label(name: str) -> str:
    """'App UI hierarchy for com.example.App' -> 'UI Hierarchy (App)'."""
    trimmed = name.strip()
    if trimmed.lower().startswith(HIERARCHY_LABEL_PREFIX.lower()):
        bundle_id = trimmed[len(HIERARCHY_LABEL_PREFIX):].strip()
        component = bundle_id.split(".")[-1].strip() if bundle_id else ""
        if component:
            return f"UI Hierarchy ({component})"
    return "UI Hierarchy"


def _split_role(descriptor: str) -> Tuple[str, Optional[str]]:
    match = ROLE_NAME_REGEX.match(descriptor.strip())
    if match:
        return match.group(1).strip(), match.group(2).strip() or None
    return descriptor.strip(), None


def _parse_properties(metadata: str) -> Dict[str, str]:
    properties: Dict[str, str] = {}
    for match in PROPERTY_REGEX.finditer(metadata):
        key = match.group(1)
        value = (match.group(2) if match.group(2) is not None else match.group(3) or "").strip()
        if value:
            properties[key] = value
    return properties


def parse_hierarchy_elements(text: str, snapshot_id: str) -> List[UIHierarchyElement]:
    elements: List[UIHierarchyElement] = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        match = ELEMENT_LINE_REGEX.match(line)
        if not match:
            continue
        indent, descriptor, x, y, width, height, metadata = match.groups()
        if not descriptor.strip():
            continue
        role, name = _split_role(descriptor)
        depth = len(indent) // 2
        metadata = (metadata or "").strip()
        properties = _parse_properties(metadata)
        label = properties.get("label")
        identifier = properties.get("identifier")
        value = properties.get("value")
        if metadata:
            properties["metadata"] = metadata
        properties["frame"] = f"{{{{{float(x)}, {float(y)}}}, {{{float(width)}, {float(height)}}}}}"
        properties["depth"] = str(depth)
        id_match = ELEMENT_ID_REGEX.search(line)
        elements.append(
            UIHierarchyElement(
                id=id_match.group(1) if id_match else f"{snapshot_id}-{line_number}",
                depth=depth,
                role=role,
                name=name,
                label=label,
                identifier=identifier,
                value=value,
                x=float(x),
                y=float(y),
                width=float(width),
                height=float(height),
                properties=properties,
            )
        )
    return elements


def _snapshot_size(elements: Sequence[UIHierarchyElement]) -> Tuple[float, float]:
    for element in elements:
        if element.role.lower().startswith("window") and element.width > 1 and element.height > 1:
            return element.width, element.height
    max_x = max((element.x + element.width for element in elements), default=0.0)
    max_y = max((element.y + element.height for element in elements), default=0.0)
    return max_x, max_y


def parse_ui_hierarchy_snapshot(
    text: str,
    snapshot_id: str,
    label: str,
    time: float,
    failure_associated: bool = False,
) -> Optional[UIHierarchySnapshot]:
    elements = parse_hierarchy_elements(text, snapshot_id)
    if not elements:
        return None
    width, height = _snapshot_size(elements)
    if width <= 1 or height <= 1:
        logger.debug("Hierarchy snapshot %s has no usable size", snapshot_id)
        return None
    return UIHierarchySnapshot(
        id=snapshot_id,
        label=label,
        time=time,
        width=width,
        height=height,
        failure_associated=failure_associated,
        elements=elements,
    )


def build_hierarchy_snapshots(
    nodes: Sequence[TimelineNode], attachments_dir: Path
) -> List[UIHierarchySnapshot]:
    snapshots: List[UIHierarchySnapshot] = []
    seen: Set[Tuple[str, float]] = set()
    for node in flatten_timeline_nodes(nodes):
        for attachment in node.attachments:
            if not is_hierarchy_attachment_name(attachment.name):
                continue
            if not attachment.exported_file_name:
                continue
            time = attachment.timestamp if attachment.timestamp is not None else node.timestamp
            if time is None:
                continue
            key = (attachment.exported_file_name, time)
            if key in seen:
                continue
            seen.add(key)
            data = read_attachment_data(attachments_dir / attachment.exported_file_name)
            if data is None:
                continue
            snapshot = parse_ui_hierarchy_snapshot(
                data.decode("utf-8", errors="replace"),
                snapshot_id=f"hierarchy_{len(snapshots) + 1}",
                label=hierarchy_snapshot_display_label(attachment.name),
                time=time,
                failure_associated=attachment.failure_associated,
            )
            if snapshot is not None:
                snapshots.append(snapshot)
    return sorted(snapshots, key=lambda snapshot: (snapshot.time, snapshot.label))
