"""Read activity records straight out of a result bundle's SQLite database."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import settings
from ..errors import ActivitySourceError
from ..models import (
    ActivityAttachmentRecord,
    ActivityRecord,
    ActivityRunRecords,
    FailureIssueRecord,
    StackFrameRecord,
    TestActivityRecords,
)
from ..timestamps import normalize_timestamp
from .base import ActivitySource

logger = logging.getLogger(__name__)

RUNS_QUERY = """
    SELECT r.ROWID
    FROM TestCaseRuns r
    JOIN TestCases c ON r.testCase_fk = c.ROWID
    WHERE c.identifier = ?
    ORDER BY r.orderInTestSuiteRun
"""

ACTIVITIES_QUERY = """
    WITH RECURSIVE activity_tree(
        id, parent_fk, title, start_time, failure_ids, order_in_parent
    ) AS (
        SELECT ROWID, parent_fk, title, startTime, failureIDs, orderInParent
        FROM Activities
        WHERE testCaseRun_fk = ?
        UNION
        SELECT child.ROWID, child.parent_fk, child.title, child.startTime,
               child.failureIDs, child.orderInParent
        FROM Activities child
        JOIN activity_tree parent ON child.parent_fk = parent.id
    )
    SELECT id, title, start_time, failure_ids, parent_fk, order_in_parent
    FROM activity_tree
"""

ATTACHMENTS_QUERY = """
    WITH RECURSIVE activity_tree(id) AS (
        SELECT ROWID FROM Activities WHERE testCaseRun_fk = ?
        UNION
        SELECT child.ROWID
        FROM Activities child
        JOIN activity_tree parent ON child.parent_fk = parent.id
    )
    SELECT a.activity_fk, a.name, a.timestamp
    FROM Attachments a
    JOIN activity_tree tree ON a.activity_fk = tree.id
    WHERE a.name IS NOT NULL
"""

ISSUES_QUERY = """
    SELECT uuid, compactDescription, detailedDescription, sourceCodeContext_fk, timestamp
    FROM TestIssues
    WHERE testCaseRun_fk = ?
      AND uuid IS NOT NULL
      AND TRIM(uuid) <> ''
    ORDER BY timestamp ASC, ROWID ASC
"""

FRAMES_QUERY = """
    SELECT si.symbolName, l.filePath, l.lineNumber, f.orderInContainer
    FROM SourceCodeFrames f
    LEFT JOIN SourceCodeSymbolInfos si ON si.ROWID = f.symbolInfo_fk
    LEFT JOIN SourceCodeLocations l ON l.ROWID = si.location_fk
    WHERE f.context_fk = ?
    ORDER BY f.orderInContainer ASC, f.ROWID ASC
"""


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class SQLiteActivitySource(ActivitySource):
    name = "database"

    def __init__(
        self,
        database_path: Path,
        normalize: Callable[[Any], Optional[float]] = normalize_timestamp,
    ) -> None:
        self.database_path = Path(database_path)
        self.normalize = normalize

    @classmethod
    def for_bundle(cls, bundle_path: Path, **kwargs: Any) -> "SQLiteActivitySource":
        return cls(Path(bundle_path) / settings.database_file_name, **kwargs)

    def _connect(self) -> sqlite3.Connection:
        if not self.database_path.is_file():
            raise ActivitySourceError(f"Result database not found: {self.database_path}")
        uri = f"{self.database_path.resolve().as_uri()}?mode=ro"
        try:
            return sqlite3.connect(uri, uri=True, check_same_thread=False)
        except sqlite3.Error as exc:
            raise ActivitySourceError(f"Cannot open {self.database_path}: {exc}") from exc

    @staticmethod
    def _query(
        connection: sqlite3.Connection, sql: str, params: Sequence[Any]
    ) -> List[tuple]:
        try:
            return connection.execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            # Older bundles lack some tables; treat them as empty.
            logger.debug("Query failed against result database: %s", exc)
            return []

    def load_test_activities(self, test_identifier: str) -> Optional[TestActivityRecords]:
        with closing(self._connect()) as connection:
            run_ids = [row[0] for row in self._query(connection, RUNS_QUERY, (test_identifier,))]
            if not run_ids:
                logger.debug("No runs for %s in %s", test_identifier, self.database_path)
                return None
            runs = [self._load_run(connection, run_id) for run_id in run_ids]
        logger.debug("Read %d run(s) of %s from the result database", len(runs), test_identifier)
        return TestActivityRecords(test_identifier=test_identifier, runs=runs)

    def _load_run(self, connection: sqlite3.Connection, run_id: int) -> ActivityRunRecords:
        activities = [
            ActivityRecord(
                id=row[0],
                title=_as_text(row[1]) or "",
                start_time=self.normalize(row[2]),
                failure_ids=_as_text(row[3]),
                parent_id=_as_int(row[4]),
                order_in_parent=_as_int(row[5]),
            )
            for row in self._query(connection, ACTIVITIES_QUERY, (run_id,))
        ]
        attachments = [
            ActivityAttachmentRecord(
                activity_id=row[0],
                name=_as_text(row[1]) or "",
                timestamp=self.normalize(row[2]),
            )
            for row in self._query(connection, ATTACHMENTS_QUERY, (run_id,))
        ]
        issues = [
            FailureIssueRecord(
                uuid=_as_text(row[0]) or "",
                compact_message=_as_text(row[1]),
                detailed_message=_as_text(row[2]),
                stack_context_id=_as_int(row[3]),
                timestamp=self.normalize(row[4]),
            )
            for row in self._query(connection, ISSUES_QUERY, (run_id,))
        ]
        frames: Dict[int, List[StackFrameRecord]] = {}
        for issue in issues:
            context_id = issue.stack_context_id
            if context_id is None or context_id in frames:
                continue
            frames[context_id] = [
                StackFrameRecord(
                    symbol_name=_as_text(row[0]),
                    file_path=_as_text(row[1]),
                    line_number=_as_int(row[2]),
                    order_in_container=_as_int(row[3]),
                )
                for row in self._query(connection, FRAMES_QUERY, (context_id,))
            ]
        return ActivityRunRecords(
            activities=activities,
            attachments=attachments,
            failure_issues=issues,
            stack_frames=frames,
        )
