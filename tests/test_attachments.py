from xctimeline.attachment_labels import (
    cleaned_attachment_label,
    is_hierarchy_attachment_name,
    is_synthesized_event_name,
    parse_label_timestamp,
)
from xctimeline.attachments import AttachmentIndex, activity_time_range, correlate_attachments
from xctimeline.models import ActivityNode, AttachmentManifestItem, AttachmentRef

TEST_ID = "Suite/testLogin()"


def _item(file_name, name, timestamp=None, payload_id=None, failure=None):
    return AttachmentManifestItem(
        exported_file_name=file_name,
        suggested_human_readable_name=name,
        timestamp=timestamp,
        payload_id=payload_id,
        is_associated_with_failure=failure,
    )


def test_cleaned_labels_collapse_boilerplate_and_dates() -> None:
    assert cleaned_attachment_label("Synthesized Event 2024-01-01 at 1.00.00 PM") == "Synthesized Event"
    assert cleaned_attachment_label("kXCTAttachmentLegacySnapshot") == "UI Snapshot"
    assert cleaned_attachment_label("Screenshot 2024-01-01 at 1.00.00 PM") == "UI Snapshot"
    assert cleaned_attachment_label("App UI hierarchy for com.example.App") == "UI Hierarchy"
    assert cleaned_attachment_label("Login form 2024-03-05 at 11.22.33 AM") == "Login form"
    assert cleaned_attachment_label("  Plain name ") == "Plain name"


def test_classifiers_use_knowledge_file_markers() -> None:
    assert is_synthesized_event_name("kXCTAttachmentLegacySynthesizedEvent")
    assert is_hierarchy_attachment_name("App UI hierarchy for com.example.App")
    assert not is_synthesized_event_name("Screenshot")


def test_label_timestamps_parse_as_utc() -> None:
    parsed = parse_label_timestamp("Synthesized Event 2024-01-01 at 1.00.00 PM", "Synthesized Event")
    assert parsed == 1_704_114_000.0
    assert parse_label_timestamp("Other 2024-01-01 at 1.00.00 PM", "Synthesized Event") is None


def test_payload_identity_beats_name_match() -> None:
    manifest = {
        TEST_ID: [
            _item("by-name.png", "Screenshot", timestamp=10.0),
            _item("by-payload.png", "Screenshot", timestamp=10.0, payload_id="payload-1"),
        ]
    }
    index = AttachmentIndex.build(TEST_ID, manifest)

    resolved = index.resolve("Screenshot", 10.0, payload_id="payload-1")

    assert resolved is not None
    assert resolved.exported_file_name == "by-payload.png"


def test_name_match_picks_closest_timestamp_within_skew() -> None:
    manifest = {
        TEST_ID: [
            _item("early.png", "Screenshot", timestamp=10.0),
            _item("late.png", "Screenshot", timestamp=20.0),
        ]
    }
    index = AttachmentIndex.build(TEST_ID, manifest)

    assert index.resolve("Screenshot", 19.2).exported_file_name == "late.png"
    assert index.resolve("Screenshot", None).exported_file_name == "early.png"
    assert index.resolve("Screenshot", 15.0) is None


def test_cleaned_label_key_matches_dated_names() -> None:
    manifest = {
        TEST_ID: [_item("synth.plist", "Synthesized Event 2024-01-01 at 1.00.00 PM", timestamp=10.1)]
    }
    index = AttachmentIndex.build(TEST_ID, manifest)

    resolved = index.resolve("kXCTAttachmentLegacySynthesizedEvent", 10.0)

    assert resolved is not None
    assert resolved.exported_file_name == "synth.plist"


def test_global_bucket_only_admits_items_near_the_run() -> None:
    manifest = {
        "": [
            _item("near.png", "Shared", timestamp=104.0),
            _item("far.png", "Shared", timestamp=200.0),
            _item("untimed.png", "Untimed"),
        ]
    }
    index = AttachmentIndex.build(TEST_ID, manifest, activity_range=(50.0, 100.0))

    assert [item.exported_file_name for item in index.by_name["Shared"]] == ["near.png"]
    assert "Untimed" not in index.by_name
    assert AttachmentIndex.build(TEST_ID, manifest, activity_range=None).by_name == {}


def test_correlation_deduplicates_same_file_and_time() -> None:
    manifest = {TEST_ID: [_item("shot.png", "Screenshot", timestamp=10.0, failure=True)]}
    index = AttachmentIndex.build(TEST_ID, manifest)
    refs = [
        AttachmentRef(name="Screenshot", timestamp=10.0),
        AttachmentRef(name="Screenshot", timestamp=10.0),
        AttachmentRef(name="Missing", timestamp=11.0),
    ]

    correlated = correlate_attachments(refs, index)

    assert [(item.name, item.exported_file_name) for item in correlated] == [
        ("Screenshot", "shot.png"),
        ("Missing", None),
    ]
    assert correlated[0].failure_associated is True


def test_activity_time_range_covers_nodes_and_attachments() -> None:
    nodes = [
        ActivityNode(
            title="Root",
            start_time=5.0,
            attachments=[AttachmentRef(name="a", timestamp=9.0)],
            children=[ActivityNode(title="Child", start_time=3.0)],
        )
    ]
    assert activity_time_range(nodes) == (3.0, 9.0)
    assert activity_time_range([ActivityNode(title="Empty")]) is None


def test_screenshot_references_share_the_snapshot_bucket() -> None:
    manifest = {TEST_ID: [_item("legacy.png", "kXCTAttachmentLegacySnapshot", timestamp=10.0)]}
    index = AttachmentIndex.build(TEST_ID, manifest)

    resolved = index.resolve("Screenshot 2024-01-01 at 1.00.00 PM", 10.2)

    assert resolved is not None
    assert resolved.exported_file_name == "legacy.png"
