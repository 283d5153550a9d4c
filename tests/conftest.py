from __future__ import annotations

import json
import plistlib
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

RESULT_SCHEMA = """
CREATE TABLE TestCases (identifier TEXT);
CREATE TABLE TestCaseRuns (testCase_fk INTEGER, orderInTestSuiteRun INTEGER);
CREATE TABLE Activities (
    parent_fk INTEGER,
    title TEXT,
    startTime REAL,
    failureIDs TEXT,
    orderInParent INTEGER,
    testCaseRun_fk INTEGER
);
CREATE TABLE Attachments (activity_fk INTEGER, name TEXT, timestamp REAL);
CREATE TABLE TestIssues (
    uuid TEXT,
    compactDescription TEXT,
    detailedDescription TEXT,
    sourceCodeContext_fk INTEGER,
    timestamp REAL,
    testCaseRun_fk INTEGER
);
"""

SOURCE_CODE_SCHEMA = """
CREATE TABLE SourceCodeContexts (location_fk INTEGER);
CREATE TABLE SourceCodeFrames (
    context_fk INTEGER,
    orderInContainer INTEGER,
    address TEXT,
    symbolInfo_fk INTEGER
);
CREATE TABLE SourceCodeLocations (filePath TEXT, lineNumber INTEGER);
CREATE TABLE SourceCodeSymbolInfos (location_fk INTEGER, symbolName TEXT, imageName TEXT);
"""

FAILURE_DATABASE_ROWS = """
INSERT INTO TestCases (rowid, identifier) VALUES (1, 'Suite/testExample()');
INSERT INTO TestCaseRuns (rowid, testCase_fk, orderInTestSuiteRun) VALUES (10, 1, 0);
INSERT INTO Activities (rowid, parent_fk, title, startTime, failureIDs, orderInParent, testCaseRun_fk)
    VALUES (100, NULL, 'Parent Step', 10.0, '8F7A048A-B77C-453C-9B5A-123ABA7BB675', 0, 10);
INSERT INTO Activities (rowid, parent_fk, title, startTime, failureIDs, orderInParent, testCaseRun_fk)
    VALUES (101, 100, 'Child Step', 11.0, NULL, 0, 10);
INSERT INTO Attachments (activity_fk, name, timestamp) VALUES (100, 'Debug Description', 10.5);
INSERT INTO SourceCodeLocations (rowid, filePath, lineNumber) VALUES (500, '/tmp/TestSuite.swift', 42);
INSERT INTO SourceCodeContexts (rowid, location_fk) VALUES (300, 500);
INSERT INTO SourceCodeSymbolInfos (rowid, location_fk, symbolName, imageName)
    VALUES (400, 500, 'Suite.testExample()', 'xctest');
INSERT INTO SourceCodeFrames (context_fk, orderInContainer, address, symbolInfo_fk)
    VALUES (300, 0, '0x1', 400);
INSERT INTO TestIssues (uuid, compactDescription, detailedDescription, sourceCodeContext_fk, timestamp, testCaseRun_fk)
    VALUES ('8F7A048A-B77C-453C-9B5A-123ABA7BB675', 'XCTAssertTrue failed - boom', '', 300, 12.0, 10);
"""


def build_gesture_archive(
    points: Sequence[Tuple[float, float, float]],
    window: Optional[Tuple[float, float]] = (402.0, 874.0),
    fmt: Any = plistlib.FMT_BINARY,
) -> bytes:
    """Keyed archive with one event path; points are (offset, x, y)."""
    objects: List[Any] = ["$null"]

    def add(value: Any) -> plistlib.UID:
        objects.append(value)
        return plistlib.UID(len(objects) - 1)

    events = [
        add({"coordinate.x": float(x), "coordinate.y": float(y), "offset": float(offset)})
        for offset, x, y in points
    ]
    pointer_events = add({"NS.objects": events})
    event_path = add({"pointerEvents": pointer_events})
    event_paths = add({"NS.objects": [event_path]})
    root: Dict[str, Any] = {"eventPaths": event_paths}
    if window is not None:
        width_key, height_key = add("Width"), add("Height")
        width, height = add(float(window[0])), add(float(window[1]))
        root["parentWindowSize"] = add(
            {"NS.keys": [width_key, height_key], "NS.objects": [width, height]}
        )
    root_ref = add(root)
    archive = {
        "$archiver": "NSKeyedArchiver",
        "$version": 100000,
        "$objects": objects,
        "$top": {"root": root_ref},
    }
    return plistlib.dumps(archive, fmt=fmt)


def create_result_database(path: Path, *scripts: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    connection = sqlite3.connect(str(path))
    try:
        for script in scripts:
            connection.executescript(script)
        connection.commit()
    finally:
        connection.close()
    return path


def write_manifest(directory: Path, entries: List[Dict[str, Any]]) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    manifest_path = directory / "manifest.json"
    manifest_path.write_text(json.dumps(entries), encoding="utf-8")
    return manifest_path


@pytest.fixture
def gesture_archive():
    return build_gesture_archive


@pytest.fixture
def failure_bundle(tmp_path: Path) -> Path:
    """A result bundle whose database holds one failing test."""
    bundle = tmp_path / "Run.xcresult"
    create_result_database(
        bundle / "database.sqlite3", RESULT_SCHEMA, SOURCE_CODE_SCHEMA, FAILURE_DATABASE_ROWS
    )
    write_manifest(
        tmp_path / "Run_attachments",
        [
            {
                "testIdentifier": "Suite/testExample()",
                "attachments": [
                    {
                        "exportedFileName": "debug.txt",
                        "suggestedHumanReadableName": "Debug Description",
                        "timestamp": 10.5,
                    }
                ],
            }
        ],
    )
    return bundle


@pytest.fixture
def result_database():
    return create_result_database


@pytest.fixture
def manifest_writer():
    return write_manifest


@pytest.fixture
def result_schema() -> str:
    return RESULT_SCHEMA
