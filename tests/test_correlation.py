"""
Evidence Correlator Tests
=========================

Candidate window, scoring components, reasons, ordering and the cap on
returned frames.
"""

import pytest

from activity_evidence.config import CorrelationConfig
from activity_evidence.contracts.evidence import CorrelationReason
from activity_evidence.contracts.events import TemporalContext
from activity_evidence.core.correlation import (
    find_temporally_correlated_frames, metadata_scene_signal, proximity_score
)
from tests.fixtures import make_event, make_frame, scenario_events, session_from

R = CorrelationReason
CONFIG = CorrelationConfig()


@pytest.fixture
def session():
    # Safari events at 0s, 30s, 60s, 90s
    return session_from(scenario_events())


class TestProximity:

    def test_at_event_is_full(self):
        assert proximity_score(0, CONFIG) == pytest.approx(1.0)

    def test_beyond_max_distance_is_zero(self):
        assert proximity_score(301, CONFIG) == 0.0

    def test_decays_per_minute(self):
        # linear 0.8, decay 0.9 ** 1
        assert proximity_score(60, CONFIG) == pytest.approx(0.8 * 0.9)


class TestScoring:

    def test_frame_at_event_in_primary_app(self, session):
        result = find_temporally_correlated_frames(session, [make_frame("f", 30)])
        assert len(result) == 1
        frame = result[0]
        # 0.4 proximity + 0.3 app + 0 scene (first candidate) + 0.1 workflow
        assert frame.correlation_score == pytest.approx(0.8)
        assert frame.correlation_reasons == (
            R.TEMPORAL_PROXIMITY, R.APPLICATION_CONTEXT, R.WORKFLOW_CONTINUITY
        )

    def test_other_application_below_threshold(self, session):
        frames = [make_frame("mail", 15, app="Mail", title="Inbox")]
        assert find_temporally_correlated_frames(session, frames) == ()

    def test_margin_around_session(self, session):
        frames = [make_frame("inside_margin", 93), make_frame("outside_margin", 100)]
        result = find_temporally_correlated_frames(session, frames)
        assert [c.frame_id for c in result] == ["inside_margin"]
        assert R.WORKFLOW_CONTINUITY not in result[0].correlation_reasons

    def test_scores_are_bounded(self, session):
        frames = [make_frame(f"f{i}", i * 7) for i in range(14)]
        for c in find_temporally_correlated_frames(session, frames):
            assert 0.0 <= c.correlation_score <= 1.0
            assert c.correlation_reasons


class TestSceneSignal:

    def test_metadata_heuristic(self):
        a = make_frame("a", 0, app="Safari", title="One")
        b = make_frame("b", 10, app="Mail", title="Two")
        assert metadata_scene_signal(a, b) == pytest.approx(1.0)
        assert metadata_scene_signal(a, make_frame("c", 2, title="One")) == 0.0

    def test_supplied_score_wins(self):
        a = make_frame("a", 0)
        b = make_frame("b", 10, app="Mail", scene=0.1)
        assert metadata_scene_signal(a, b) == pytest.approx(0.1)

    def test_pluggable_signal(self, session):
        frames = [make_frame("a", 0), make_frame("b", 30)]
        result = find_temporally_correlated_frames(
            session, frames, scene_signal=lambda prev, cur: 1.0
        )
        by_id = {c.frame_id: c for c in result}
        assert R.SCENE_TRANSITION in by_id["b"].correlation_reasons
        assert R.SCENE_TRANSITION not in by_id["a"].correlation_reasons
        assert by_id["b"].correlation_score == pytest.approx(1.0)


class TestOrderingAndCap:

    def test_capped_and_sorted(self, session):
        frames = [make_frame(f"f{i:02d}", i * 4) for i in range(20)]
        result = find_temporally_correlated_frames(session, frames)
        assert len(result) == CONFIG.max_evidence_frames
        scores = [c.correlation_score for c in result]
        assert scores == sorted(scores, reverse=True)

    def test_ties_broken_by_timestamp(self, session):
        frames = [make_frame("late", 60), make_frame("early", 0)]
        result = find_temporally_correlated_frames(
            session, frames, scene_signal=lambda prev, cur: 0.0
        )
        assert [c.frame_id for c in result] == ["early", "late"]

    def test_custom_cap(self, session):
        frames = [make_frame(f"f{i}", i * 10) for i in range(9)]
        config = CorrelationConfig(max_evidence_frames=3)
        assert len(find_temporally_correlated_frames(session, frames, config)) == 3


class TestContextBlend:

    def test_low_continuity_context_lowers_workflow(self, session):
        frames = [make_frame("f", 30)]
        plain = find_temporally_correlated_frames(session, frames)[0]
        blended = find_temporally_correlated_frames(
            session, frames, context=TemporalContext.empty()
        )[0]
        assert blended.correlation_score < plain.correlation_score
        # 0.7 * 1.0 still clears the workflow threshold
        assert R.WORKFLOW_CONTINUITY in blended.correlation_reasons

    def test_non_session_app_is_not_workflow(self):
        session = session_from([make_event("a", 0), make_event("b", 60), make_event("c", 90)])
        frames = [make_frame("x", 30, app="Finder", title="Downloads", scene=0.0)]
        assert find_temporally_correlated_frames(session, frames) == ()
