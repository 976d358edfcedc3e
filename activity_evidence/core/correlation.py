"""
Evidence Correlator
===================

Finds captured frames that plausibly document a session even when no
event cites them.

SCORING:
========
score = 0.4 * proximity + 0.3 * app_match + 0.2 * scene + 0.1 * workflow

- proximity: distance to the nearest session event, linear over
  max_temporal_distance and decayed by temporal_decay_factor per minute
- app_match: 1 when the frame's application is the session's primary one
- scene: pluggable scene-transition signal against the previous candidate
- workflow: frame application and position relative to the session,
  blended with the context's continuity score when one is given

Scores are a correlation measure, not a claim that the frame shows the
session's activity.
"""

from __future__ import annotations
from bisect import bisect_left
from datetime import timedelta
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from ..config import CorrelationConfig
from ..contracts.base import clamp_unit
from ..contracts.events import ActivitySession, FrameMetadata, TemporalContext
from ..contracts.evidence import CorrelatedFrame, CorrelationReason

logger = logging.getLogger(__name__)

PROXIMITY_WEIGHT = 0.4
APP_MATCH_WEIGHT = 0.3
SCENE_WEIGHT = 0.2
WORKFLOW_WEIGHT = 0.1

PROXIMITY_REASON_THRESHOLD = 0.5
SCENE_REASON_THRESHOLD = 0.7
WORKFLOW_REASON_THRESHOLD = 0.6

# (previous_frame, frame) -> score in [0, 1]
SceneSignal = Callable[[FrameMetadata, FrameMetadata], float]


def metadata_scene_signal(previous: FrameMetadata, frame: FrameMetadata) -> float:
    """
    Scene change estimated from metadata.

    Uses the capture layer's scene_change_score when present. Otherwise
    an application change counts 0.5, a window change 0.3 and a capture
    gap over five seconds 0.2.
    """
    if frame.scene_change_score is not None:
        return frame.scene_change_score
    score = 0.0
    if previous.application_name != frame.application_name:
        score += 0.5
    if previous.window_title != frame.window_title:
        score += 0.3
    if (frame.timestamp - previous.timestamp).total_seconds() > 5.0:
        score += 0.2
    return clamp_unit(score)


def proximity_score(distance: float, config: CorrelationConfig) -> float:
    """Linear falloff over max_temporal_distance, decayed per minute."""
    if distance > config.max_temporal_distance:
        return 0.0
    linear = 1.0 - distance / config.max_temporal_distance
    decay = (1.0 - config.temporal_decay_factor) ** (distance / 60.0)
    return clamp_unit(linear * decay)


def _nearest_event_distance(frame: FrameMetadata, event_times: List[float]) -> float:
    t = frame.timestamp.timestamp()
    i = bisect_left(event_times, t)
    candidates = []
    if i < len(event_times):
        candidates.append(abs(event_times[i] - t))
    if i > 0:
        candidates.append(abs(t - event_times[i - 1]))
    return min(candidates)


def _workflow_score(
    frame: FrameMetadata,
    session: ActivitySession,
    context: Optional[TemporalContext]
) -> float:
    score = 0.0
    if frame.application_name in session.applications:
        score += 0.4
    if session.start_time <= frame.timestamp <= session.end_time:
        score += 0.6
    if context is not None:
        score = 0.7 * score + 0.3 * context.workflow_continuity.continuity_score
    return clamp_unit(score)


def find_temporally_correlated_frames(
    session: ActivitySession,
    frames: Sequence[FrameMetadata],
    config: Optional[CorrelationConfig] = None,
    context: Optional[TemporalContext] = None,
    scene_signal: Optional[SceneSignal] = None
) -> Tuple[CorrelatedFrame, ...]:
    """
    Score frames around a session and keep the strongest.

    Result is sorted by score descending (ties: earlier timestamp, then
    frame id) and holds at most max_evidence_frames entries.
    """
    config = config or CorrelationConfig()
    scene_signal = scene_signal or metadata_scene_signal

    margin = timedelta(seconds=config.frame_margin)
    lower, upper = session.start_time - margin, session.end_time + margin
    candidates = sorted(
        (f for f in frames if lower <= f.timestamp <= upper),
        key=lambda f: (f.timestamp, f.frame_id),
    )
    event_times = sorted(e.timestamp.timestamp() for e in session.events)

    correlated: List[CorrelatedFrame] = []
    previous: Optional[FrameMetadata] = None
    for frame in candidates:
        reasons = []

        proximity = proximity_score(_nearest_event_distance(frame, event_times), config)
        if proximity > PROXIMITY_REASON_THRESHOLD:
            reasons.append(CorrelationReason.TEMPORAL_PROXIMITY)

        app_match = 0.0
        if session.primary_application and frame.application_name == session.primary_application:
            app_match = 1.0
            reasons.append(CorrelationReason.APPLICATION_CONTEXT)

        scene = 0.0
        if previous is not None:
            scene = clamp_unit(scene_signal(previous, frame))
            if scene > SCENE_REASON_THRESHOLD:
                reasons.append(CorrelationReason.SCENE_TRANSITION)

        workflow = _workflow_score(frame, session, context)
        if workflow > WORKFLOW_REASON_THRESHOLD:
            reasons.append(CorrelationReason.WORKFLOW_CONTINUITY)

        previous = frame

        score = clamp_unit(
            PROXIMITY_WEIGHT * proximity
            + APP_MATCH_WEIGHT * app_match
            + SCENE_WEIGHT * scene
            + WORKFLOW_WEIGHT * workflow
        )
        if score < config.min_evidence_confidence or not reasons:
            continue
        correlated.append(CorrelatedFrame(
            frame_id=frame.frame_id,
            timestamp=frame.timestamp,
            correlation_score=score,
            correlation_reasons=tuple(reasons),
            application_name=frame.application_name,
            window_title=frame.window_title,
        ))

    correlated.sort(key=lambda c: (-c.correlation_score, c.timestamp, c.frame_id))
    result = tuple(correlated[:config.max_evidence_frames])
    logger.debug(
        "Session %s: %d candidate frames, %d correlated",
        session.session_id, len(candidates), len(result),
    )
    return result
