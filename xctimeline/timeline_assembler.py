"""Assemble per-run timeline state for one test."""

from __future__ import annotations

import itertools
import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from .activity_tree import build_activity_tree
from .attachments import AttachmentIndex, activity_time_range
from .errors import MissingActivityDataError
from .failure_issues import FailureIssueTable
from .hierarchy_snapshots import build_hierarchy_snapshots
from .media_sources import build_screenshot_sources, build_video_sources
from .models import (
    ActivityNode,
    AttachmentManifest,
    ScreenshotSource,
    TestActivityRecords,
    TestTimeline,
    TimelineEventKind,
    TimelineRunState,
    VideoSource,
)
from .source_locations import SourceLocation, symbol_locations_from_issues
from .timeline_normalizer import (
    build_timeline_events,
    build_timeline_nodes,
    collapse_repeated_nodes,
    first_timestamp,
)
from .touch_gestures import build_touch_gestures

logger = logging.getLogger(__name__)

NO_EVENT_LABEL = "No event selected"


def collect_symbol_locations(activities: TestActivityRecords) -> Dict[str, SourceLocation]:
    """Stack symbol -> first location, across every run of a test."""
    locations: Dict[str, SourceLocation] = {}
    for run in activities.runs:
        table = FailureIssueTable.from_records(run.failure_issues, run.stack_frames)
        for symbol, location in symbol_locations_from_issues(table).items():
            locations.setdefault(symbol, location)
    return locations


class TimelineAssembler:
    def __init__(
        self,
        manifest: AttachmentManifest,
        attachments_dir: Path,
        clock: Callable[[], float] = time.time,
        default_width: Optional[float] = None,
        default_height: Optional[float] = None,
    ) -> None:
        self.manifest = manifest
        self.attachments_dir = Path(attachments_dir)
        self.clock = clock
        self.default_width = default_width
        self.default_height = default_height

    def build_test_timeline(
        self,
        activities: Optional[TestActivityRecords],
        symbol_locations: Optional[Mapping[str, SourceLocation]] = None,
    ) -> TestTimeline:
        if activities is None or not activities.runs:
            raise MissingActivityDataError("No activity data for test")

        test_identifier = activities.test_identifier
        if symbol_locations is None:
            symbol_locations = collect_symbol_locations(activities)

        trees: List[List[ActivityNode]] = [build_activity_tree(run) for run in activities.runs]
        videos = build_video_sources(test_identifier, self.manifest, trees)
        screenshots = build_screenshot_sources(test_identifier, self.manifest, trees)

        id_counter = itertools.count(1)
        include_fallback = len(trees) <= 1
        runs = [
            self.build_run_state(
                run_index,
                tree,
                test_identifier,
                id_counter,
                symbol_locations,
                videos,
                screenshots,
                include_fallback,
            )
            for run_index, tree in enumerate(trees)
        ]
        logger.debug("Assembled %d run(s) for %s", len(runs), test_identifier)
        return TestTimeline(
            test_identifier=test_identifier,
            runs=runs,
            videos=videos,
            screenshots=screenshots,
        )

    def _fallback_base_time(
        self,
        run_index: int,
        videos: Sequence[VideoSource],
        screenshots: Sequence[ScreenshotSource],
    ) -> float:
        run_videos = [video for video in videos if video.run_index == run_index] or list(videos)
        for video in run_videos:
            if video.start_time is not None:
                return video.start_time
        if screenshots:
            return screenshots[0].time
        return self.clock()

    def build_run_state(
        self,
        run_index: int,
        activity_nodes: Sequence[ActivityNode],
        test_identifier: str,
        id_counter: Iterator[int],
        symbol_locations: Mapping[str, SourceLocation],
        videos: Sequence[VideoSource] = (),
        screenshots: Sequence[ScreenshotSource] = (),
        include_manifest_fallback: bool = True,
    ) -> TimelineRunState:
        index = AttachmentIndex.build(
            test_identifier, self.manifest, activity_time_range(activity_nodes)
        )
        nodes = build_timeline_nodes(activity_nodes, index, id_counter, symbol_locations)
        nodes = collapse_repeated_nodes(nodes)

        base_time = first_timestamp(nodes)
        if base_time is None:
            base_time = self._fallback_base_time(run_index, videos, screenshots)

        events = build_timeline_events(nodes, base_time)
        gestures = build_touch_gestures(
            nodes,
            test_identifier,
            self.manifest,
            self.attachments_dir,
            include_manifest_fallback=include_manifest_fallback,
            default_width=self.default_width,
            default_height=self.default_height,
        )
        snapshots = build_hierarchy_snapshots(nodes, self.attachments_dir)

        failure_index = next(
            (i for i, event in enumerate(events) if event.kind == TimelineEventKind.ERROR), -1
        )
        return TimelineRunState(
            index=run_index,
            label=f"Run {run_index + 1}",
            timeline_base_time=base_time,
            first_event_label=events[0].title if events else NO_EVENT_LABEL,
            initial_failure_event_index=failure_index,
            events=events,
            touch_gestures=gestures,
            hierarchy_snapshots=snapshots,
        )
