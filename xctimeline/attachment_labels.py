"""Attachment and activity classification rules backed by the YAML knowledge file."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import List, Optional, Sequence

import yaml
from pydantic import BaseModel, Field

RULES_PATH = Path(__file__).resolve().parent / "knowledge" / "timeline_rules.yaml"

# " 2024-01-01 at 1.00.00 PM" as written into exported attachment names.
LABEL_DATE_REGEX = re.compile(r" \d{4}-\d{2}-\d{2} at \d{1,2}\.\d{2}\.\d{2} [AP]M")
LABEL_TIMESTAMP_FORMAT = "%Y-%m-%d at %I.%M.%S %p"


class AttachmentLabelRule(BaseModel):
    label: str
    markers: List[str] = Field(default_factory=list)


class TimelineRules(BaseModel):
    attachment_labels: List[AttachmentLabelRule] = Field(default_factory=list)
    synthesized_event_markers: List[str] = Field(default_factory=list)
    hierarchy_attachment_markers: List[str] = Field(default_factory=list)
    interaction_title_prefixes: List[str] = Field(default_factory=list)
    interaction_title_markers: List[str] = Field(default_factory=list)
    hierarchy_title_markers: List[str] = Field(default_factory=list)
    gesture_anchor_title_markers: List[str] = Field(default_factory=list)
    video_extensions: List[str] = Field(default_factory=list)
    video_name_markers: List[str] = Field(default_factory=list)
    image_extensions: List[str] = Field(default_factory=list)
    screenshot_name_markers: List[str] = Field(default_factory=list)


def load_timeline_rules(path: Optional[Path] = None) -> TimelineRules:
    rules_path = path or RULES_PATH
    data = yaml.safe_load(rules_path.read_text(encoding="utf-8")) or {}
    return TimelineRules.model_validate(data)


@lru_cache(maxsize=1)
def default_rules() -> TimelineRules:
    return load_timeline_rules()


def _contains_any(text: str, markers: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in markers)


def _extension(name: str) -> str:
    return Path(name).suffix.lower().lstrip(".")


def cleaned_attachment_label(name: str, rules: Optional[TimelineRules] = None) -> str:
    """Collapse boilerplate attachment names onto a canonical label."""
    rules = rules or default_rules()
    trimmed = name.strip()
    for rule in rules.attachment_labels:
        if _contains_any(trimmed, rule.markers):
            return rule.label
    cleaned = LABEL_DATE_REGEX.sub("", trimmed).strip()
    return cleaned or trimmed


def is_synthesized_event_name(name: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    return _contains_any(name, rules.synthesized_event_markers)


def is_hierarchy_attachment_name(name: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    return _contains_any(name, rules.hierarchy_attachment_markers)


def is_interaction_title(title: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    lowered = title.lower()
    if any(lowered.startswith(prefix) for prefix in rules.interaction_title_prefixes):
        return True
    return _contains_any(lowered, rules.interaction_title_markers)


def is_hierarchy_title(title: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    return _contains_any(title, rules.hierarchy_title_markers)


def is_gesture_anchor_title(title: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    return _contains_any(title, rules.gesture_anchor_title_markers)


def is_video_name(name: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    return _extension(name) in rules.video_extensions or _contains_any(
        name, rules.video_name_markers
    )


def is_screenshot_name(name: str, rules: Optional[TimelineRules] = None) -> bool:
    rules = rules or default_rules()
    return _extension(name) in rules.image_extensions or _contains_any(
        name, rules.screenshot_name_markers
    )


def parse_label_timestamp(label: str, prefix: str) -> Optional[float]:
    """Read the wall-clock time embedded in labels like 'Synthesized Event 2024-01-01 at 1.00.00 PM'.

    The date is interpreted as UTC.
    """
    trimmed = label.strip()
    if not trimmed.lower().startswith(prefix.lower()):
        return None
    match = LABEL_DATE_REGEX.search(trimmed)
    if not match:
        return None
    try:
        parsed = datetime.strptime(match.group(0).strip(), LABEL_TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc).timestamp()
