from xctimeline.manifest import parse_attachment_manifest
from xctimeline.media_sources import build_screenshot_sources, build_video_sources
from xctimeline.models import ActivityNode, AttachmentRef
from xctimeline.source_locations import extract_source_locations

TEST_ID = "Suite/testVideo()"


def _manifest(attachments):
    return parse_attachment_manifest(
        [{"testIdentifier": TEST_ID, "attachments": attachments}], normalize=lambda value: value
    )


def _runs():
    return [
        [
            ActivityNode(
                title="Start recording",
                start_time=100.0,
                attachments=[
                    AttachmentRef(name="Screen Recording", timestamp=101.0, payload_id="video-1"),
                    AttachmentRef(name="UI Snapshot", timestamp=103.0),
                ],
            )
        ],
        [ActivityNode(title="Retry", start_time=200.0, attachments=[AttachmentRef(name="Screen Recording", timestamp=201.0)])],
    ]


def test_videos_take_timing_from_activity_references() -> None:
    manifest = _manifest(
        [
            {"exportedFileName": "first.mp4", "suggestedHumanReadableName": "Screen Recording", "payloadId": "video-1"},
            {"exportedFileName": "second.mov", "suggestedHumanReadableName": "Screen Recording", "timestamp": 200.5},
            {"exportedFileName": "orphan.m4v", "suggestedHumanReadableName": "Recording", "isAssociatedWithFailure": True},
            {"exportedFileName": "shot.png", "suggestedHumanReadableName": "UI Snapshot"},
        ]
    )

    videos = build_video_sources(TEST_ID, manifest, _runs())

    by_file = {video.file_name: video for video in videos}
    assert set(by_file) == {"first.mp4", "second.mov", "orphan.m4v"}
    assert (by_file["first.mp4"].start_time, by_file["first.mp4"].run_index) == (101.0, 0)
    assert (by_file["second.mov"].start_time, by_file["second.mov"].run_index) == (201.0, 1)
    assert by_file["second.mov"].mime_type == "video/quicktime"
    assert by_file["orphan.m4v"].start_time == 100.0
    assert by_file["orphan.m4v"].run_index is None
    assert by_file["orphan.m4v"].failure_associated is True
    assert [video.file_name for video in videos] == ["orphan.m4v", "first.mp4", "second.mov"]


def test_screenshots_use_activity_time_then_label_time() -> None:
    manifest = _manifest(
        [
            {"exportedFileName": "shot.png", "suggestedHumanReadableName": "UI Snapshot"},
            {"exportedFileName": "dated.png", "suggestedHumanReadableName": "Screenshot 2024-01-01 at 1.00.00 PM"},
            {"exportedFileName": "shot.png", "suggestedHumanReadableName": "UI Snapshot"},
            {"exportedFileName": "notes.txt", "suggestedHumanReadableName": "Debug Description"},
        ]
    )

    screenshots = build_screenshot_sources(TEST_ID, manifest, _runs())

    assert [(shot.file_name, shot.time) for shot in screenshots] == [
        ("shot.png", 103.0),
        ("dated.png", 1_704_114_000.0),
    ]


def test_source_locations_are_found_in_free_text() -> None:
    text = "XCTAssertEqual failed at /Users/ci/App/LoginTests.swift:42:7 and LoginTests.swift:42:7, helper.m:9"

    locations = extract_source_locations(text)

    assert [(location.file_path, location.line, location.column) for location in locations] == [
        ("/Users/ci/App/LoginTests.swift", 42, 7),
        ("LoginTests.swift", 42, 7),
        ("helper.m", 9, None),
    ]
    assert locations[0].label == "LoginTests.swift:42"
