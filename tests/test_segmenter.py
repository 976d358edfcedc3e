"""
Session Segmenter Tests
=======================

Verifies that the segmenter:
1. Splits on gaps and session size
2. Drops candidates that are too small or too short (as data, not errors)
3. Is deterministic under input reordering
4. Classifies sessions with a pure, reason-reporting classifier
"""

import pytest

from activity_evidence.config import SegmentationConfig
from activity_evidence.contracts.base import ErrorCode
from activity_evidence.contracts.events import ActivityEventType, ActivitySessionType
from activity_evidence.core.segmenter import (
    classify_session, contextual_similarity, primary_application,
    segment, segment_with_diagnostics
)
from tests.fixtures import make_event, scenario_events, scenario_range, window

T = ActivityEventType


class TestThresholds:

    def test_two_events_never_form_a_session(self):
        events = [make_event("a", 0), make_event("b", 100)]
        outcome = segment_with_diagnostics(events, window(-60, 160))
        assert outcome.sessions == ()
        assert outcome.rejected[0].error.code == ErrorCode.INSUFFICIENT_EVENTS

    def test_three_quick_clicks_are_too_short(self):
        """3 clicks at 0s, 5s, 10s in a [-60s, +60s] window yield nothing."""
        events = [make_event("a", 0), make_event("b", 5), make_event("c", 10)]
        outcome = segment_with_diagnostics(events, window(-60, 60))
        assert outcome.sessions == ()
        assert len(outcome.rejected) == 1
        assert outcome.rejected[0].error.code == ErrorCode.SESSION_TOO_SHORT
        assert outcome.rejected[0].event_ids == ("a", "b", "c")

    def test_empty_input_is_not_an_error(self):
        assert segment([], window(0, 60)) == ()

    def test_empty_range_is_noted(self):
        outcome = segment_with_diagnostics([make_event("late", 10_000)], window(0, 60))
        assert outcome.sessions == ()
        assert outcome.rejected == ()
        assert [n.code for n in outcome.notices] == [ErrorCode.EMPTY_INPUT]
        assert dict(outcome.notices[0].context)["end"] == window(0, 60).end.isoformat()

    def test_events_outside_range_are_ignored(self):
        events = list(scenario_events()) + [make_event("late", 10_000)]
        sessions = segment(events, scenario_range())
        assert len(sessions) == 1
        assert "late" not in sessions[0].event_ids

    def test_range_bounds_are_inclusive(self):
        events = [make_event("a", 0), make_event("b", 40), make_event("c", 80)]
        sessions = segment(events, window(0, 80))
        assert len(sessions) == 1
        assert len(sessions[0].events) == 3


class TestSplitting:

    def test_gap_larger_than_max_splits(self):
        first = [make_event(f"a{i}", i * 30) for i in range(4)]
        second = [make_event(f"b{i}", 500 + i * 30) for i in range(4)]
        sessions = segment(first + second, window(-10, 700))
        assert [s.event_ids for s in sessions] == [
            ("a0", "a1", "a2", "a3"), ("b0", "b1", "b2", "b3")
        ]

    def test_gap_equal_to_max_does_not_split(self):
        events = [make_event("a", 0), make_event("b", 300), make_event("c", 600)]
        sessions = segment(events, window(0, 600))
        assert len(sessions) == 1

    def test_max_events_per_session(self):
        events = [make_event(f"e{i:02d}", i * 2) for i in range(60)]
        outcome = segment_with_diagnostics(events, window(0, 200))
        assert len(outcome.sessions) == 1
        assert len(outcome.sessions[0].events) == 50
        # the 10-event remainder spans 18s and is dropped
        assert outcome.rejected[0].error.code == ErrorCode.SESSION_TOO_SHORT

    def test_max_events_for_analysis_counts_overflow(self):
        events = [make_event(f"e{i:03d}", i * 2) for i in range(120)]
        config = SegmentationConfig(max_events_per_session=200)
        outcome = segment_with_diagnostics(events, window(0, 300), config)
        assert outcome.overflow_count == 20
        assert outcome.considered_count == 100
        assert len(outcome.sessions[0].events) == 100
        notice, = outcome.notices
        assert notice.code == ErrorCode.EVENTS_TRUNCATED
        assert notice.context == (("cap", "100"), ("first_excluded", "e100"))

    def test_no_notices_for_an_ordinary_window(self):
        assert segment_with_diagnostics(scenario_events(), scenario_range()).notices == ()

    def test_contextual_split_is_opt_in(self):
        events = [
            make_event("a", 0, T.FIELD_CHANGE, app="Safari", target="email"),
            make_event("b", 30, T.FIELD_CHANGE, app="Safari", target="email"),
            make_event("c", 60, T.FIELD_CHANGE, app="Safari", target="email"),
            make_event("d", 90, T.ERROR_DISPLAY, app="Xcode", target="build log"),
            make_event("e", 120, T.ERROR_DISPLAY, app="Xcode", target="build log"),
            make_event("f", 150, T.ERROR_DISPLAY, app="Xcode", target="build log"),
        ]
        assert len(segment(events, window(0, 150))) == 1

        config = SegmentationConfig(min_session_duration=30, context_similarity_threshold=0.5)
        sessions = segment(events, window(0, 150), config)
        assert [s.event_ids for s in sessions] == [("a", "b", "c"), ("d", "e", "f")]


class TestDeterminism:

    def test_out_of_order_input(self):
        events = list(scenario_events())
        forward = segment(events, scenario_range())
        backward = segment(list(reversed(events)), scenario_range())
        assert forward == backward
        stamps = [e.timestamp for e in forward[0].events]
        assert stamps == sorted(stamps)

    def test_identical_timestamps_ordered_by_id(self):
        events = [make_event("c", 0), make_event("a", 0), make_event("b", 0)]
        config = SegmentationConfig(min_session_duration=0)
        sessions = segment(events, window(-1, 1), config)
        assert sessions[0].event_ids == ("a", "b", "c")
        assert sessions[0].duration == 0

    def test_session_id_is_content_derived(self):
        a = segment(scenario_events(), scenario_range())[0]
        b = segment(scenario_events(), scenario_range())[0]
        assert a.session_id == b.session_id
        assert a.session_id.startswith("sess_")


class TestClassification:

    def test_scenario_is_form_filling(self):
        session = segment(scenario_events(), scenario_range())[0]
        assert session.session_type == ActivitySessionType.FORM_FILLING
        assert session.primary_application == "Safari"
        assert session.classification_reasons == ("form_ratio=0.75",)

    def test_data_entry(self):
        events = [make_event(f"d{i}", i, T.DATA_ENTRY) for i in range(5)]
        events += [make_event(f"m{i}", 10 + i, T.MODAL_APPEARANCE) for i in range(5)]
        assert classify_session(events)[0] == ActivitySessionType.DATA_ENTRY

    def test_navigation_includes_clicks(self):
        events = [make_event("n1", 0, T.NAVIGATION), make_event("n2", 1, T.CLICK),
                  make_event("n3", 2, T.APP_SWITCH), make_event("n4", 3, T.CLICK),
                  make_event("x", 4, T.MODAL_APPEARANCE)]
        assert classify_session(events)[0] == ActivitySessionType.NAVIGATION

    def test_error_display_is_mixed(self):
        events = [make_event("a", 0, T.ERROR_DISPLAY), make_event("b", 1, T.FIELD_CHANGE),
                  make_event("c", 2, T.CLICK), make_event("d", 3, T.DATA_ENTRY),
                  make_event("e", 4, T.MODAL_APPEARANCE)]
        session_type, reasons = classify_session(events)
        assert session_type == ActivitySessionType.MIXED
        assert reasons == ("error_display_present",)

    def test_research_pattern(self):
        events = [make_event(f"n{i}", i, T.NAVIGATION) for i in range(17)]
        events += [make_event(f"c{i}", 20 + i, T.CLICK) for i in range(13)]
        events += [make_event(f"m{i}", 40 + i, T.MODAL_APPEARANCE) for i in range(20)]
        assert classify_session(events)[0] == ActivitySessionType.RESEARCH

    @pytest.mark.parametrize("app,expected", [
        ("Slack", ActivitySessionType.COMMUNICATION),
        ("Mail", ActivitySessionType.COMMUNICATION),
        ("Xcode", ActivitySessionType.DEVELOPMENT),
        ("Terminal", ActivitySessionType.DEVELOPMENT),
        ("Preview", ActivitySessionType.MIXED),
    ])
    def test_application_patterns(self, app, expected):
        events = [make_event(f"m{i}", i, T.MODAL_APPEARANCE, app=app) for i in range(3)]
        assert classify_session(events)[0] == expected

    def test_primary_application_tie_goes_to_first_seen(self):
        events = [make_event("a", 0, app="Notes"), make_event("b", 1, app="Safari"),
                  make_event("c", 2, app="Safari"), make_event("d", 3, app="Notes")]
        assert primary_application(events) == "Notes"

    def test_primary_application_accepts_fallback_keys(self):
        from activity_evidence.contracts.events import ActivityEvent
        from tests.fixtures import at
        event = ActivityEvent.create(
            event_id="x", timestamp=at(0), event_type=T.CLICK, target="ok",
            confidence=1.0, metadata={"bundle_id": "com.apple.Safari"},
        )
        assert primary_application([event]) == "com.apple.Safari"

    def test_no_applications(self):
        assert primary_application([make_event("a", 0, app=None)]) is None


class TestContextualSimilarity:

    def test_identical_events_score_high(self):
        a = make_event("a", 0, T.FIELD_CHANGE, target="email")
        b = make_event("b", 0, T.FIELD_CHANGE, target="email")
        assert contextual_similarity(a, b, 300) == pytest.approx(1.0)

    def test_related_types_partial_credit(self):
        a = make_event("a", 0, T.FIELD_CHANGE, app=None, target="x")
        b = make_event("b", 150, T.FORM_SUBMISSION, app=None, target="y")
        # (0.7 type + 0 target + 0.5 proximity) / 3
        assert contextual_similarity(a, b, 300) == pytest.approx(0.4)
