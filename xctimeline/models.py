# xctimeline/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ActivityId = Union[int, str]


# ---------------------------------------------------------------------------
# Backend records
# ---------------------------------------------------------------------------


class ActivityRecord(BaseModel):
    id: ActivityId
    parent_id: Optional[ActivityId] = None
    title: str = ""
    start_time: Optional[float] = None
    failure_ids: Optional[str] = None
    order_in_parent: Optional[int] = None
    is_associated_with_failure: Optional[bool] = None


class ActivityAttachmentRecord(BaseModel):
    activity_id: ActivityId
    name: str
    timestamp: Optional[float] = None
    payload_id: Optional[str] = None


class FailureIssueRecord(BaseModel):
    uuid: str
    compact_message: Optional[str] = None
    detailed_message: Optional[str] = None
    timestamp: Optional[float] = None
    stack_context_id: Optional[int] = None


class StackFrameRecord(BaseModel):
    symbol_name: Optional[str] = None
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    order_in_container: Optional[int] = None


class ActivityRunRecords(BaseModel):
    """Everything a backend knows about one run of one test."""

    activities: List[ActivityRecord] = Field(default_factory=list)
    attachments: List[ActivityAttachmentRecord] = Field(default_factory=list)
    failure_issues: List[FailureIssueRecord] = Field(default_factory=list)
    stack_frames: Dict[int, List[StackFrameRecord]] = Field(default_factory=dict)


class TestActivityRecords(BaseModel):
    __test__ = False

    test_identifier: str
    runs: List[ActivityRunRecords] = Field(default_factory=list)


class AttachmentManifestItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exported_file_name: str = Field(alias="exportedFileName")
    suggested_human_readable_name: Optional[str] = Field(
        default=None, alias="suggestedHumanReadableName"
    )
    is_associated_with_failure: Optional[bool] = Field(
        default=None, alias="isAssociatedWithFailure"
    )
    timestamp: Optional[float] = None
    payload_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("payloadId", "payloadRefId", "payload_id"),
    )

    @property
    def label(self) -> str:
        return self.suggested_human_readable_name or self.exported_file_name


# test identifier -> items; "" holds attachments not attributed to one test
AttachmentManifest = Dict[str, List[AttachmentManifestItem]]


# ---------------------------------------------------------------------------
# In-flight tree nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttachmentRef:
    name: str
    timestamp: Optional[float] = None
    payload_id: Optional[str] = None


@dataclass
class ActivityNode:
    title: str
    start_time: Optional[float] = None
    failure_associated: bool = False
    attachments: List[AttachmentRef] = field(default_factory=list)
    children: List["ActivityNode"] = field(default_factory=list)
    is_synthetic_failure_branch: bool = False
    order_in_parent: Optional[int] = None
    source_id: Optional[ActivityId] = None


@dataclass(frozen=True)
class StackFrame:
    symbol: str
    file_path: str
    line: int


@dataclass(frozen=True)
class FailureIssue:
    id: str
    message: str
    timestamp: Optional[float] = None
    stack_frames: Tuple[StackFrame, ...] = ()


@dataclass(frozen=True)
class TimelineAttachment:
    name: str
    timestamp: Optional[float] = None
    exported_file_name: Optional[str] = None
    failure_associated: bool = False


@dataclass
class TimelineNode:
    id: str
    title: str
    timestamp: Optional[float] = None
    end_timestamp: Optional[float] = None
    source_location_label: Optional[str] = None
    failure_associated: bool = False
    failure_branch: bool = False
    attachments: List[TimelineAttachment] = field(default_factory=list)
    children: List["TimelineNode"] = field(default_factory=list)
    repeat_count: int = 1


# ---------------------------------------------------------------------------
# Rendered output
# ---------------------------------------------------------------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimelineEventKind(str, Enum):
    EVENT = "event"
    TAP = "tap"
    HIERARCHY = "hierarchy"
    ERROR = "error"


class TimelineEvent(_CamelModel):
    id: str
    title: str
    time: float
    end_time: float
    kind: TimelineEventKind = TimelineEventKind.EVENT


class TouchGesturePoint(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    time: float
    x: float
    y: float


class TouchGestureOverlay(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    start_time: float
    end_time: float
    width: float
    height: float
    points: Tuple[TouchGesturePoint, ...]

    @model_validator(mode="after")
    def _check_points(self) -> "TouchGestureOverlay":
        if not self.points:
            raise ValueError("a touch gesture needs at least one point")
        if self.start_time != self.points[0].time or self.end_time != self.points[-1].time:
            raise ValueError("gesture bounds must match its first and last point")
        return self

    @classmethod
    def from_points(
        cls, points: List[TouchGesturePoint], width: float, height: float
    ) -> "TouchGestureOverlay":
        ordered = tuple(sorted(points, key=lambda point: point.time))
        return cls(
            start_time=ordered[0].time,
            end_time=ordered[-1].time,
            width=width,
            height=height,
            points=ordered,
        )

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def shifted(self, delta: float) -> "TouchGestureOverlay":
        """Return a copy with every point moved by delta seconds."""
        points = tuple(
            TouchGesturePoint(time=point.time + delta, x=point.x, y=point.y)
            for point in self.points
        )
        return TouchGestureOverlay(
            start_time=points[0].time,
            end_time=points[-1].time,
            width=self.width,
            height=self.height,
            points=points,
        )

    def with_bounds(self, width: float, height: float) -> "TouchGestureOverlay":
        return self.model_copy(update={"width": width, "height": height})


class UIHierarchyElement(_CamelModel):
    id: str
    depth: int
    role: str
    name: Optional[str] = None
    label: Optional[str] = None
    identifier: Optional[str] = None
    value: Optional[str] = None
    x: float
    y: float
    width: float
    height: float
    properties: Dict[str, str] = Field(default_factory=dict)


class UIHierarchySnapshot(_CamelModel):
    id: str
    label: str
    time: float
    width: float
    height: float
    failure_associated: bool = False
    elements: List[UIHierarchyElement] = Field(default_factory=list)


class VideoSource(_CamelModel):
    label: str
    file_name: str
    mime_type: str
    start_time: Optional[float] = None
    failure_associated: bool = False
    run_index: Optional[int] = None


class ScreenshotSource(_CamelModel):
    label: str
    file_name: str
    time: float
    failure_associated: bool = False


class TimelineRunState(_CamelModel):
    index: int
    label: str
    timeline_base_time: float
    first_event_label: str = "No event selected"
    initial_failure_event_index: int = -1
    events: List[TimelineEvent] = Field(default_factory=list)
    touch_gestures: List[TouchGestureOverlay] = Field(default_factory=list)
    hierarchy_snapshots: List[UIHierarchySnapshot] = Field(default_factory=list)


class TestTimeline(_CamelModel):
    __test__ = False

    test_identifier: str
    runs: List[TimelineRunState] = Field(default_factory=list)
    videos: List[VideoSource] = Field(default_factory=list)
    screenshots: List[ScreenshotSource] = Field(default_factory=list)
