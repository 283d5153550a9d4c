# File: xctimeline/sources/xcresulttool.py
from __future__ import annotations

import itertools
import json
import logging
import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import settings
from ..errors import ActivitySourceError
from ..models import (
    ActivityAttachmentRecord,
    ActivityId,
    ActivityRecord,
    ActivityRunRecords,
    TestActivityRecords,
)
from ..timestamps import normalize_timestamp
from .base import ActivitySource

logger = logging.getLogger(__name__)


class _ToolAttachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    timestamp: Optional[float] = None
    payload_id: Optional[str] = Field(default=None, alias="payloadId")


class _ToolActivity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    start_time: Optional[float] = Field(default=None, alias="startTime")
    is_associated_with_failure: Optional[bool] = Field(
        default=None, alias="isAssociatedWithFailure"
    )


class _Flattener:
    """Turns the nested activity JSON into flat rows with pre-order ids."""

    def __init__(self, normalize: Callable[[Any], Optional[float]]) -> None:
        self.normalize = normalize
        self.ids: Iterator[int] = itertools.count(1)
        self.activities: List[ActivityRecord] = []
        self.attachments: List[ActivityAttachmentRecord] = []

    def add(self, raw_activities: Sequence[Any], parent_id: Optional[ActivityId]) -> None:
        for position, raw in enumerate(raw_activities):
            if not isinstance(raw, dict):
                continue
            data = dict(raw)
            data["startTime"] = self.normalize(raw.get("startTime"))
            try:
                activity = _ToolActivity.model_validate(data)
            except ValidationError as exc:
                logger.warning("Skipping malformed activity %r: %s", raw.get("title"), exc)
                continue

            activity_id = next(self.ids)
            self.activities.append(
                ActivityRecord(
                    id=activity_id,
                    parent_id=parent_id,
                    title=activity.title,
                    start_time=activity.start_time,
                    order_in_parent=position,
                    is_associated_with_failure=activity.is_associated_with_failure,
                )
            )
            for raw_attachment in raw.get("attachments") or []:
                self._add_attachment(activity_id, raw_attachment)
            self.add(raw.get("childActivities") or [], activity_id)

    def _add_attachment(self, activity_id: int, raw: Any) -> None:
        if not isinstance(raw, dict):
            return
        data = dict(raw)
        data["timestamp"] = self.normalize(raw.get("timestamp"))
        try:
            attachment = _ToolAttachment.model_validate(data)
        except ValidationError as exc:
            logger.debug("Skipping malformed attachment on activity %s: %s", activity_id, exc)
            return
        self.attachments.append(
            ActivityAttachmentRecord(
                activity_id=activity_id,
                name=attachment.name,
                timestamp=attachment.timestamp,
                payload_id=attachment.payload_id,
            )
        )


def flatten_tool_activities(
    payload: Dict[str, Any],
    test_identifier: str,
    normalize: Callable[[Any], Optional[float]] = normalize_timestamp,
) -> TestActivityRecords:
    """Convert `xcresulttool get test-results activities` JSON into activity records."""
    runs: List[ActivityRunRecords] = []
    for raw_run in payload.get("testRuns") or []:
        if not isinstance(raw_run, dict):
            continue
        flattener = _Flattener(normalize)
        flattener.add(raw_run.get("activities") or [], None)
        runs.append(
            ActivityRunRecords(activities=flattener.activities, attachments=flattener.attachments)
        )
    return TestActivityRecords(
        test_identifier=payload.get("testIdentifier") or test_identifier,
        runs=runs,
    )


class XCResultToolSource(ActivitySource):
    name = "xcresulttool"

    def __init__(
        self,
        bundle_path: Path,
        command: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        normalize: Callable[[Any], Optional[float]] = normalize_timestamp,
    ) -> None:
        self.bundle_path = Path(bundle_path)
        self.command = list(command or settings.xcresulttool_command)
        self.timeout = timeout if timeout is not None else settings.backend_timeout_seconds
        self.normalize = normalize

    # ----------------------------------------------------------------------
    # Internal helpers
    # ----------------------------------------------------------------------
    def _run_tool(self, *args: str) -> subprocess.CompletedProcess:
        cmd = [*self.command, *args]
        try:
            proc = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise ActivitySourceError(
                f"xcresulttool not found when running: {' '.join(cmd)}; "
                "ensure Xcode command line tools are installed."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ActivitySourceError(
                f"xcresulttool timed out after {self.timeout}s: {' '.join(cmd)}"
            ) from exc

        if proc.returncode != 0:
            raise ActivitySourceError(
                f"xcresulttool failed ({proc.returncode}): {' '.join(cmd)}\n"
                f"stderr: {proc.stderr.strip()}"
            )
        return proc

    # ----------------------------------------------------------------------
    # Public API
    # ----------------------------------------------------------------------
    def load_test_activities(self, test_identifier: str) -> Optional[TestActivityRecords]:
        proc = self._run_tool(
            "get", "test-results", "activities",
            "--test-id", test_identifier,
            "--path", str(self.bundle_path),
            "--format", "json",
            "--compact",
        )
        try:
            payload = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise ActivitySourceError(
                f"xcresulttool returned invalid JSON for {test_identifier}"
            ) from exc
        if not isinstance(payload, dict):
            raise ActivitySourceError(f"Unexpected activities payload for {test_identifier}")

        records = flatten_tool_activities(payload, test_identifier, self.normalize)
        if not records.runs:
            return None
        return records

    def export_attachments(self, output_dir: Path) -> Path:
        """Export every attachment plus manifest.json into output_dir."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        self._run_tool(
            "export", "attachments",
            "--path", str(self.bundle_path),
            "--output-path", str(output_dir),
        )
        logger.info("Exported attachments of %s into %s", self.bundle_path, output_dir)
        return output_dir / settings.manifest_file_name
