"""
Test Fixtures

Deterministic builders for events, frames, spans and sessions.
All fixtures are explicit - no random generation.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence, Tuple

from activity_evidence.config import SegmentationConfig
from activity_evidence.contracts.base import TimeRange
from activity_evidence.contracts.events import (
    ActivityEvent, ActivityEventType, ActivitySession, ActivitySummary,
    FrameMetadata, Span, TemporalContext
)
from activity_evidence.core.segmenter import segment


# =============================================================================
# FIXED TIMESTAMPS (deterministic)
# =============================================================================

T0 = datetime(2026, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def window(start: float, end: float) -> TimeRange:
    return TimeRange(start=at(start), end=at(end))


# Accepts every non-empty group; used to build sessions directly in tests.
PERMISSIVE = SegmentationConfig(min_session_duration=0, min_events_for_summary=1)


# =============================================================================
# BUILDERS
# =============================================================================

def make_event(
    event_id: str,
    offset: float,
    event_type: ActivityEventType = ActivityEventType.CLICK,
    app: Optional[str] = "Safari",
    confidence: float = 0.9,
    frames: Sequence[str] = (),
    target: str = "button",
    value_after: Optional[str] = None,
) -> ActivityEvent:
    return ActivityEvent.create(
        event_id=event_id,
        timestamp=at(offset),
        event_type=event_type,
        target=target,
        confidence=confidence,
        value_after=value_after,
        evidence_frames=tuple(frames),
        metadata={"app_name": app} if app else None,
    )


def make_frame(
    frame_id: str,
    offset: float,
    app: str = "Safari",
    title: str = "Signup Form",
    ocr: Optional[float] = 0.9,
    quality: Optional[float] = 0.85,
    scene: Optional[float] = None,
) -> FrameMetadata:
    return FrameMetadata(
        frame_id=frame_id,
        timestamp=at(offset),
        application_name=app,
        window_title=title,
        ocr_confidence=ocr,
        image_quality=quality,
        scene_change_score=scene,
    )


def make_span(
    span_id: str,
    start: float,
    end: float,
    kind: str = "research",
    title: str = "",
    tags: Iterable[str] = (),
) -> Span:
    return Span(
        span_id=span_id,
        kind=kind,
        start_time=at(start),
        end_time=at(end),
        title=title,
        tags=tuple(tags),
    )


def session_from(events: Sequence[ActivityEvent]) -> ActivitySession:
    """Single session covering exactly these events."""
    stamps = [e.timestamp for e in events]
    sessions = segment(
        events, TimeRange(start=min(stamps), end=max(stamps)), PERMISSIVE
    )
    assert len(sessions) == 1
    return sessions[0]


def summary_from(
    session: ActivitySession,
    key_events: Optional[Tuple[ActivityEvent, ...]] = None,
    confidence: float = 0.8,
    summary_id: str = "sum_test",
    context: Optional[TemporalContext] = None,
) -> ActivitySummary:
    return ActivitySummary(
        summary_id=summary_id,
        session=session,
        narrative="test narrative",
        key_events=key_events if key_events is not None else session.events,
        context=context or TemporalContext.empty(),
        confidence=confidence,
    )


# =============================================================================
# END-TO-END SCENARIO
# =============================================================================
# Safari signup: two field edits, a submission, then a navigation.

def scenario_events() -> Tuple[ActivityEvent, ...]:
    return (
        make_event("e1", 0, ActivityEventType.FIELD_CHANGE,
                   frames=("f1",), target="email_field", value_after="user@example.com"),
        make_event("e2", 30, ActivityEventType.FIELD_CHANGE,
                   frames=("f2",), target="name_field", value_after="Jane"),
        make_event("e3", 60, ActivityEventType.FORM_SUBMISSION,
                   frames=("f3",), target="submit_button"),
        make_event("e4", 90, ActivityEventType.NAVIGATION,
                   frames=("f4",), target="confirmation_page"),
    )


def scenario_frames() -> Tuple[FrameMetadata, ...]:
    return (
        make_frame("f1", 0),
        make_frame("f2", 30),
        make_frame("f3", 60),
        make_frame("f4", 90, title="Signup Complete"),
        make_frame("f5", 45),
        make_frame("f6", 75, app="Mail", title="Inbox"),
    )


def scenario_spans() -> Tuple[Span, ...]:
    return (
        make_span("s_before", -900, -300, kind="research",
                  title="Compared pricing plans", tags=("Safari",)),
        make_span("s_after", 300, 600, kind="communication",
                  title="Sent confirmation email", tags=("Mail",)),
    )


def scenario_range() -> TimeRange:
    return window(-60, 150)
