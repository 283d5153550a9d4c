import itertools

from xctimeline.attachments import AttachmentIndex
from xctimeline.models import (
    ActivityNode,
    AttachmentRef,
    TimelineAttachment,
    TimelineEventKind,
    TimelineNode,
)
from xctimeline.source_locations import SourceLocation
from xctimeline.timeline_normalizer import (
    build_timeline_events,
    build_timeline_nodes,
    collapse_repeated_nodes,
    format_timeline_offset,
    timeline_display_title,
    timeline_event_kind,
)


def _leaf(node_id: str, title: str, timestamp: float) -> TimelineNode:
    return TimelineNode(id=node_id, title=title, timestamp=timestamp, end_timestamp=timestamp)


def test_identical_leaf_siblings_collapse_into_one() -> None:
    nodes = [
        _leaf("timeline_event_1", "Wait for idle", 1.0),
        _leaf("timeline_event_2", "Wait for idle", 2.0),
        _leaf("timeline_event_3", "Wait for idle", 3.0),
        _leaf("timeline_event_4", "Tap done", 4.0),
    ]

    collapsed = collapse_repeated_nodes(nodes)

    assert [node.title for node in collapsed] == ["Wait for idle", "Tap done"]
    merged = collapsed[0]
    assert merged.repeat_count == 3
    assert merged.id == "timeline_event_1"
    assert (merged.timestamp, merged.end_timestamp) == (1.0, 3.0)
    assert collapse_repeated_nodes(collapsed) == collapsed


def test_nodes_with_attachments_or_different_flags_do_not_merge() -> None:
    attached = TimelineNode(
        id="a", title="Step", timestamp=1.0, attachments=[TimelineAttachment(name="Screenshot")]
    )
    failing = TimelineNode(id="b", title="Step", timestamp=2.0, failure_associated=True)
    plain = TimelineNode(id="c", title="Step", timestamp=3.0)

    assert len(collapse_repeated_nodes([attached, _leaf("d", "Step", 1.5)])) == 2
    assert len(collapse_repeated_nodes([failing, plain])) == 2


def test_timeline_nodes_get_preorder_ids_and_end_times() -> None:
    tree = [
        ActivityNode(
            title="Outer",
            start_time=10.0,
            children=[
                ActivityNode(title="Inner", start_time=11.0),
                ActivityNode(title="Shot", attachments=[AttachmentRef(name="Screenshot", timestamp=14.0)]),
            ],
        ),
        ActivityNode(title="Next", start_time=20.0),
    ]

    nodes = build_timeline_nodes(tree, AttachmentIndex(), itertools.count(1))

    assert [node.id for node in nodes] == ["timeline_event_1", "timeline_event_4"]
    outer = nodes[0]
    assert [child.id for child in outer.children] == ["timeline_event_2", "timeline_event_3"]
    assert outer.children[1].timestamp == 14.0
    assert outer.end_timestamp == 14.0


def test_symbol_titles_get_source_location_labels() -> None:
    tree = [ActivityNode(title="Suite.testExample()", start_time=1.0)]
    locations = {"Suite.testExample()": SourceLocation("/tmp/TestSuite.swift", 42)}

    node = build_timeline_nodes(tree, AttachmentIndex(), itertools.count(1), locations)[0]

    assert node.source_location_label == "TestSuite.swift:42"
    assert timeline_display_title(node, 0.0) == "Suite.testExample() (TestSuite.swift:42)"


def test_failure_branches_take_location_from_their_message() -> None:
    message = "XCTAssertEqual failed at /Users/ci/App/LoginTests.swift:42:7"
    tree = [
        ActivityNode(title=message, start_time=1.0, is_synthetic_failure_branch=True),
        ActivityNode(title=message, start_time=2.0),
    ]

    failure, plain = build_timeline_nodes(tree, AttachmentIndex(), itertools.count(1))

    assert failure.source_location_label == "LoginTests.swift:42"
    assert plain.source_location_label is None


def test_repeat_titles_show_count_and_offsets() -> None:
    node = TimelineNode(id="x", title="Poll", timestamp=65.0, end_timestamp=130.0, repeat_count=4)
    assert timeline_display_title(node, 5.0) == "Poll ×4 (01:00-02:05)"


def test_offsets_format_with_hours_when_needed() -> None:
    assert format_timeline_offset(0) == "00:00"
    assert format_timeline_offset(59.6) == "01:00"
    assert format_timeline_offset(3725) == "1:02:05"
    assert format_timeline_offset(-3) == "00:00"


def test_event_kinds() -> None:
    assert timeline_event_kind(TimelineNode(id="1", title="Tap \"Login\" Button")) == TimelineEventKind.TAP
    assert timeline_event_kind(TimelineNode(id="2", title="Swipe up")) == TimelineEventKind.TAP
    assert timeline_event_kind(TimelineNode(id="3", title="Synthesize event")) == TimelineEventKind.TAP
    assert timeline_event_kind(
        TimelineNode(id="4", title="Step", attachments=[TimelineAttachment(name="App UI hierarchy for x")])
    ) == TimelineEventKind.HIERARCHY
    assert timeline_event_kind(TimelineNode(id="5", title="Tap", failure_associated=True)) == TimelineEventKind.ERROR
    assert timeline_event_kind(TimelineNode(id="6", title="Wait")) == TimelineEventKind.EVENT


def test_events_skip_untimed_nodes_and_sort_by_time() -> None:
    nodes = [
        TimelineNode(
            id="a",
            title="Parent",
            timestamp=5.0,
            children=[TimelineNode(id="b", title="Early child", timestamp=1.0), TimelineNode(id="c", title="Untimed")],
        )
    ]

    events = build_timeline_events(nodes, base_time=1.0)

    assert [event.id for event in events] == ["b", "a"]
    assert events[0].end_time == 1.0
