"""
Temporal Context Analyzer
=========================

Relates a session to the spans recorded around it and scores how likely
it is to be one step of a longer workflow.

Similarity here is keyword overlap (Jaccard). It describes surface
agreement between records, not intent.
"""

from __future__ import annotations
from collections import Counter
from typing import FrozenSet, List, Optional, Sequence, Tuple
import logging
import re

from ..config import ContextConfig
from ..contracts.base import clamp_unit
from ..contracts.events import (
    ActivitySession, Span, TemporalContext, WorkflowContinuity
)

logger = logging.getLogger(__name__)

APP_CONTINUITY_SCORE = 0.8
MAX_SUMMARY_KEYWORDS = 10

_WORD_SPLIT = re.compile(r"[^0-9A-Za-z]+")


def _words(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [w.lower() for w in _WORD_SPLIT.split(text) if len(w) > 2]


def session_keywords(session: ActivitySession) -> FrozenSet[str]:
    keywords = {session.session_type.value}
    if session.primary_application:
        keywords.add(session.primary_application.lower())
    for event in session.events:
        keywords.add(event.event_type.value)
        keywords.update(_words(event.target))
        keywords.update(_words(event.value_after))
    return frozenset(keywords)


def span_keywords(span: Span) -> FrozenSet[str]:
    keywords = {span.kind.lower()}
    keywords.update(t.lower() for t in span.tags)
    keywords.update(_words(span.title))
    keywords.update(_words(span.summary_markdown)[:MAX_SUMMARY_KEYWORDS])
    return frozenset(keywords)


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


# =============================================================================
# SPAN WINDOWS
# =============================================================================

def find_preceding_spans(
    session: ActivitySession,
    spans: Sequence[Span],
    config: ContextConfig
) -> Tuple[Span, ...]:
    """Spans that ended within the preceding window, most recent first."""
    matches = [
        s for s in spans
        if s.end_time <= session.start_time
        and (session.start_time - s.end_time).total_seconds() <= config.preceding_context_window
    ]
    matches.sort(key=lambda s: (-s.end_time.timestamp(), s.span_id))
    return tuple(matches[:config.max_related_spans])


def find_following_spans(
    session: ActivitySession,
    spans: Sequence[Span],
    config: ContextConfig
) -> Tuple[Span, ...]:
    """Spans that start within the following window, earliest first."""
    matches = [
        s for s in spans
        if s.start_time >= session.end_time
        and (s.start_time - session.end_time).total_seconds() <= config.following_context_window
    ]
    matches.sort(key=lambda s: (s.start_time, s.span_id))
    return tuple(matches[:config.max_related_spans])


# =============================================================================
# CONTINUITY
# =============================================================================

def continuity_score(
    session: ActivitySession,
    preceding: Sequence[Span],
    following: Sequence[Span],
    config: ContextConfig
) -> float:
    """
    Mean of the available factors:

    - proximity of the nearest preceding span (1 when adjacent, 0 at the
      window edge)
    - proximity of the nearest following span
    - mean keyword overlap between the session and every context span
    - application continuity, when a span is tagged with the session's
      primary application

    No context spans gives 0.
    """
    factors: List[float] = []
    if preceding:
        gap = (session.start_time - preceding[0].end_time).total_seconds()
        factors.append(max(0.0, 1.0 - gap / config.preceding_context_window))
    if following:
        gap = (following[0].start_time - session.end_time).total_seconds()
        factors.append(max(0.0, 1.0 - gap / config.following_context_window))

    context_spans = tuple(preceding) + tuple(following)
    if not context_spans:
        return 0.0

    own = session_keywords(session)
    overlaps = [jaccard(own, span_keywords(s)) for s in context_spans]
    factors.append(sum(overlaps) / len(overlaps))

    app = session.primary_application
    if app and any(app in s.tags for s in context_spans):
        factors.append(APP_CONTINUITY_SCORE)

    return clamp_unit(sum(factors) / len(factors))


def _workflow_phase(
    session: ActivitySession,
    preceding: Sequence[Span],
    following: Sequence[Span]
) -> Optional[str]:
    # Nearest span wins; a preceding span wins a tie.
    candidates = []
    if preceding:
        gap = (session.start_time - preceding[0].end_time).total_seconds()
        candidates.append((gap, 0, preceding[0]))
    if following:
        gap = (following[0].start_time - session.end_time).total_seconds()
        candidates.append((gap, 1, following[0]))
    if not candidates:
        return None
    nearest = min(candidates, key=lambda c: (c[0], c[1]))[2]
    if nearest.kind:
        return nearest.kind
    return nearest.tags[0] if nearest.tags else None


def related_activities(spans: Sequence[Span]) -> Tuple[str, ...]:
    """Kinds and tags of the spans, most frequent first."""
    counts: Counter = Counter()
    for span in spans:
        counts[span.kind] += 1
        for tag in span.tags:
            counts[tag] += 1
    # Counter.most_common keeps insertion order among equal counts.
    return tuple(name for name, _ in counts.most_common() if name)


def find_related_sessions(
    session: ActivitySession,
    others: Sequence[ActivitySession],
    config: ContextConfig
) -> Tuple[ActivitySession, ...]:
    """Other sessions with enough keyword overlap, nearest in time first."""
    own = session_keywords(session)
    scored = []
    for other in others:
        if other.session_id == session.session_id:
            continue
        if jaccard(own, session_keywords(other)) < config.min_similarity_score:
            continue
        if other.end_time <= session.start_time:
            distance = (session.start_time - other.end_time).total_seconds()
        else:
            distance = abs((other.start_time - session.end_time).total_seconds())
        scored.append((distance, other.start_time, other.session_id, other))
    scored.sort(key=lambda item: item[:3])
    return tuple(item[3] for item in scored[:config.max_related_spans])


def analyze(
    session: ActivitySession,
    spans: Sequence[Span],
    config: Optional[ContextConfig] = None,
    other_sessions: Sequence[ActivitySession] = ()
) -> TemporalContext:
    """Build the TemporalContext of a session."""
    config = config or ContextConfig()
    preceding = find_preceding_spans(session, spans, config)
    following = find_following_spans(session, spans, config)
    in_workflow = bool(preceding or following)

    continuity = WorkflowContinuity(
        is_part_of_larger_workflow=in_workflow,
        continuity_score=continuity_score(session, preceding, following, config),
        workflow_phase=_workflow_phase(session, preceding, following),
        related_activities=related_activities(preceding + following),
    )
    logger.debug(
        "Session %s: %d preceding, %d following, continuity %.3f",
        session.session_id, len(preceding), len(following),
        continuity.continuity_score,
    )
    return TemporalContext(
        preceding_spans=preceding,
        following_spans=following,
        workflow_continuity=continuity,
        related_sessions=find_related_sessions(session, other_sessions, config),
    )
