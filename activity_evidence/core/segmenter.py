"""
Session Segmenter
=================

Turns a flat event stream into ActivitySessions.

PIPELINE:
=========
1. Filter to the requested time range (inclusive)
2. Sort chronologically, ties broken by event id
3. Cap at max_events_for_analysis (overflow is counted and noted, not an error)
4. Split on gaps > max_event_gap and on max_events_per_session
5. Optionally split where consecutive events lose contextual similarity
6. Drop candidates that are too small or too short
7. Classify each surviving candidate

Rejected candidates are returned as data (SegmentationOutcome), never
raised.
"""

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging
import re

from ..config import SegmentationConfig
from ..contracts.base import Error, ErrorCode, TimeRange, derive_id
from ..contracts.events import (
    ActivityEvent, ActivityEventType, ActivitySession, ActivitySessionType
)

logger = logging.getLogger(__name__)

_FORM_TYPES = frozenset({ActivityEventType.FIELD_CHANGE, ActivityEventType.FORM_SUBMISSION})
_NAVIGATION_TYPES = frozenset({
    ActivityEventType.NAVIGATION, ActivityEventType.APP_SWITCH, ActivityEventType.CLICK
})

COMMUNICATION_APPS = ("mail", "messages", "slack", "teams", "zoom", "skype")
DEVELOPMENT_APPS = ("xcode", "vscode", "intellij", "terminal", "git", "github")

# Unordered pairs of event types that usually belong to the same task.
_RELATED_TYPES = frozenset(frozenset(pair) for pair in (
    (ActivityEventType.FIELD_CHANGE, ActivityEventType.DATA_ENTRY),
    (ActivityEventType.DATA_ENTRY, ActivityEventType.FORM_SUBMISSION),
    (ActivityEventType.FIELD_CHANGE, ActivityEventType.FORM_SUBMISSION),
    (ActivityEventType.NAVIGATION, ActivityEventType.APP_SWITCH),
    (ActivityEventType.CLICK, ActivityEventType.NAVIGATION),
    (ActivityEventType.MODAL_APPEARANCE, ActivityEventType.ERROR_DISPLAY),
    (ActivityEventType.CLICK, ActivityEventType.MODAL_APPEARANCE),
))

_TOKEN_SPLIT = re.compile(r"[^0-9A-Za-z]+")


@dataclass(frozen=True)
class RejectedCandidate:
    """A candidate group that did not become a session."""
    event_ids: Tuple[str, ...]
    error: Error


@dataclass(frozen=True)
class SegmentationOutcome:
    sessions: Tuple[ActivitySession, ...]
    rejected: Tuple[RejectedCandidate, ...] = field(default_factory=tuple)
    overflow_count: int = 0
    considered_count: int = 0
    notices: Tuple[Error, ...] = field(default_factory=tuple)


# =============================================================================
# CLASSIFICATION (pure)
# =============================================================================

def _app_matches(events: Sequence[ActivityEvent], needles: Tuple[str, ...]) -> bool:
    for event in events:
        app = (event.app_name or "").lower()
        if app and any(n in app for n in needles):
            return True
    return False


def classify_session(
    events: Sequence[ActivityEvent]
) -> Tuple[ActivitySessionType, Tuple[str, ...]]:
    """
    Classify a group of events by type distribution and application.

    Returns the session type and the rules that matched. Ratio rules are
    checked first; pattern rules only apply when no ratio dominates.
    """
    total = len(events)
    if total == 0:
        return ActivitySessionType.MIXED, ("no_events",)

    counts = Counter(e.event_type for e in events)
    form_ratio = sum(counts[t] for t in _FORM_TYPES) / total
    data_ratio = counts[ActivityEventType.DATA_ENTRY] / total
    navigation_ratio = sum(counts[t] for t in _NAVIGATION_TYPES) / total

    if form_ratio > 0.5:
        return ActivitySessionType.FORM_FILLING, (f"form_ratio={form_ratio:.2f}",)
    if data_ratio > 0.4:
        return ActivitySessionType.DATA_ENTRY, (f"data_entry_ratio={data_ratio:.2f}",)
    if navigation_ratio > 0.6:
        return ActivitySessionType.NAVIGATION, (f"navigation_ratio={navigation_ratio:.2f}",)
    if counts[ActivityEventType.ERROR_DISPLAY]:
        return ActivitySessionType.MIXED, ("error_display_present",)

    browsing = counts[ActivityEventType.NAVIGATION] + counts[ActivityEventType.APP_SWITCH]
    if browsing > total // 3 and counts[ActivityEventType.CLICK] > total // 4:
        return ActivitySessionType.RESEARCH, ("navigation_with_clicks",)
    if _app_matches(events, COMMUNICATION_APPS):
        return ActivitySessionType.COMMUNICATION, ("communication_application",)
    if _app_matches(events, DEVELOPMENT_APPS):
        return ActivitySessionType.DEVELOPMENT, ("development_application",)
    return ActivitySessionType.MIXED, ("no_dominant_pattern",)


def primary_application(events: Sequence[ActivityEvent]) -> Optional[str]:
    """Plurality app name; the first seen wins ties."""
    counts: Counter = Counter()
    first_seen = {}
    for index, event in enumerate(events):
        app = event.app_name
        if not app:
            continue
        counts[app] += 1
        first_seen.setdefault(app, index)
    if not counts:
        return None
    return min(counts, key=lambda app: (-counts[app], first_seen[app]))


# =============================================================================
# CONTEXTUAL SIMILARITY
# =============================================================================

def _target_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    tokens_a = {t for t in _TOKEN_SPLIT.split(a) if t}
    tokens_b = {t for t in _TOKEN_SPLIT.split(b) if t}
    union = tokens_a | tokens_b
    if not union:
        return 0.0
    return len(tokens_a & tokens_b) / len(union)


def contextual_similarity(
    previous: ActivityEvent,
    current: ActivityEvent,
    max_event_gap: float
) -> float:
    """
    Mean of type relatedness, app match (when both are known), target
    token overlap and temporal proximity.
    """
    scores = []
    if previous.event_type == current.event_type:
        scores.append(1.0)
    elif frozenset((previous.event_type, current.event_type)) in _RELATED_TYPES:
        scores.append(0.7)
    else:
        scores.append(0.0)

    app_a, app_b = previous.app_name, current.app_name
    if app_a and app_b:
        scores.append(1.0 if app_a == app_b else 0.0)

    scores.append(_target_similarity(previous.target, current.target))

    gap = abs((current.timestamp - previous.timestamp).total_seconds())
    scores.append(max(0.0, 1.0 - gap / max_event_gap))
    return sum(scores) / len(scores)


# =============================================================================
# SEGMENTATION
# =============================================================================

def _split_candidates(
    events: Sequence[ActivityEvent],
    config: SegmentationConfig
) -> List[List[ActivityEvent]]:
    candidates: List[List[ActivityEvent]] = []
    current: List[ActivityEvent] = []
    for event in events:
        if current:
            gap = (event.timestamp - current[-1].timestamp).total_seconds()
            split = (
                gap > config.max_event_gap
                or len(current) >= config.max_events_per_session
            )
            if not split and config.context_similarity_threshold is not None:
                similarity = contextual_similarity(current[-1], event, config.max_event_gap)
                split = similarity < config.context_similarity_threshold
            if split:
                candidates.append(current)
                current = []
        current.append(event)
    if current:
        candidates.append(current)
    return candidates


def _build_session(events: List[ActivityEvent]) -> ActivitySession:
    session_type, reasons = classify_session(events)
    start, end = events[0].timestamp, events[-1].timestamp
    session_id = derive_id(
        "sess", start.isoformat(), end.isoformat(), *(e.event_id for e in events)
    )
    return ActivitySession(
        session_id=session_id,
        start_time=start,
        end_time=end,
        events=tuple(events),
        session_type=session_type,
        primary_application=primary_application(events),
        classification_reasons=reasons,
    )


def segment_with_diagnostics(
    events: Sequence[ActivityEvent],
    time_range: TimeRange,
    config: Optional[SegmentationConfig] = None
) -> SegmentationOutcome:
    """Segment events and report what was dropped and why."""
    config = config or SegmentationConfig()

    in_range = sorted(
        (e for e in events if time_range.contains(e.timestamp)),
        key=lambda e: (e.timestamp, e.event_id),
    )
    if not in_range:
        logger.debug("No events in %s..%s", time_range.start, time_range.end)
        notice = (
            Error(
                code=ErrorCode.EMPTY_INPUT,
                message=f"no events in range ({len(events)} supplied)",
            )
            .with_context("start", time_range.start.isoformat())
            .with_context("end", time_range.end.isoformat())
        )
        return SegmentationOutcome(sessions=(), notices=(notice,))

    notices: List[Error] = []
    considered = in_range[:config.max_events_for_analysis]
    overflow = len(in_range) - len(considered)
    if overflow:
        logger.debug("Excluded %d events beyond max_events_for_analysis", overflow)
        notices.append(Error(
            code=ErrorCode.EVENTS_TRUNCATED,
            message=f"{overflow} events beyond the analysis cap",
        ).with_context("cap", str(config.max_events_for_analysis))
         .with_context("first_excluded", in_range[len(considered)].event_id))

    sessions: List[ActivitySession] = []
    rejected: List[RejectedCandidate] = []
    for candidate in _split_candidates(considered, config):
        ids = tuple(e.event_id for e in candidate)
        span = (candidate[-1].timestamp - candidate[0].timestamp).total_seconds()
        if len(candidate) < config.min_events_for_summary:
            error = Error(
                code=ErrorCode.INSUFFICIENT_EVENTS,
                message=f"{len(candidate)} events, need {config.min_events_for_summary}",
            )
        elif span < config.min_session_duration:
            error = Error(
                code=ErrorCode.SESSION_TOO_SHORT,
                message=f"{span:.1f}s, need {config.min_session_duration:.1f}s",
            )
        else:
            sessions.append(_build_session(candidate))
            continue
        logger.debug("Rejected candidate of %d events: %s", len(ids), error.message)
        rejected.append(RejectedCandidate(event_ids=ids, error=error))

    return SegmentationOutcome(
        sessions=tuple(sessions),
        rejected=tuple(rejected),
        overflow_count=overflow,
        considered_count=len(considered),
        notices=tuple(notices),
    )


def segment(
    events: Sequence[ActivityEvent],
    time_range: TimeRange,
    config: Optional[SegmentationConfig] = None
) -> Tuple[ActivitySession, ...]:
    """Group events into sessions, in chronological order."""
    return segment_with_diagnostics(events, time_range, config).sessions
