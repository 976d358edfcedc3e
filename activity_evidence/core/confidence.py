"""
Confidence Propagator
=====================

Propagates confidence from frame quality, through event reliability, up
to one aggregate summary score, and explains the result with signed
factors.

LEVELS:
=======
- Frame:   0.4 ocr + 0.2 quality + 0.2 temporal stability + 0.2 relevance
- Event:   0.7 raw + 0.2 temporal consistency + 0.1 spatial consistency
- Summary: weighted mean of event mean (0.55), frame mean (0.25) and the
           narrative stage's own confidence (0.2)

Every stored score is clamped to [0, 1]; factor impacts to [-1, 1].
"""

from __future__ import annotations
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import numpy as np

from ..config import ConfidenceConfig
from ..contracts.base import clamp_impact, clamp_unit
from ..contracts.events import ActivityEvent, ActivitySummary, FrameMetadata
from ..contracts.evidence import (
    ConfidenceFactor, ConfidencePropagation, EventConfidence,
    FrameConfidence, SummaryConfidence
)

logger = logging.getLogger(__name__)

SUMMARY_WEIGHTS = (0.55, 0.25, 0.2)  # events, frames, narrative

# Evidence frames per event at which temporal consistency saturates.
FRAME_SATURATION = 5

_PLACEHOLDER_TITLES = frozenset({"", "untitled", "unknown", "window"})


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def _is_meaningful_title(title: str) -> bool:
    stripped = title.strip()
    return len(stripped) > 3 and stripped.lower() not in _PLACEHOLDER_TITLES


# =============================================================================
# FRAME LEVEL
# =============================================================================

def temporal_stability(
    frame: FrameMetadata,
    frames: Sequence[FrameMetadata],
    window: float
) -> float:
    """Share of neighbouring frames (within `window` seconds) in the same app."""
    neighbours = [
        f for f in frames
        if f.frame_id != frame.frame_id
        and abs((f.timestamp - frame.timestamp).total_seconds()) <= window
    ]
    if not neighbours:
        return 0.5
    same = sum(1 for f in neighbours if f.application_name == frame.application_name)
    return same / len(neighbours)


def frame_confidence(
    frame: FrameMetadata,
    frames: Sequence[FrameMetadata],
    primary_application: Optional[str],
    config: ConfidenceConfig
) -> FrameConfidence:
    relevance = 0.5
    if primary_application and frame.application_name == primary_application:
        relevance += 0.3
    if _is_meaningful_title(frame.window_title):
        relevance += 0.2
    return FrameConfidence(
        frame_id=frame.frame_id,
        ocr_confidence=clamp_unit(
            frame.ocr_confidence if frame.ocr_confidence is not None
            else config.default_ocr_confidence
        ),
        image_quality=clamp_unit(
            frame.image_quality if frame.image_quality is not None
            else config.default_image_quality
        ),
        temporal_stability=clamp_unit(
            temporal_stability(frame, frames, config.stability_window)
        ),
        context_relevance=clamp_unit(relevance),
    )


# =============================================================================
# EVENT LEVEL
# =============================================================================

def spatial_consistency(resolved: Sequence[FrameMetadata]) -> float:
    """
    Agreement of the frames cited by one event.

    One application: 1.0. Several applications over at most two windows:
    0.7. Otherwise 0.5. No resolved frames: 0.0.
    """
    if not resolved:
        return 0.0
    apps = {f.application_name for f in resolved}
    if len(apps) == 1:
        return 1.0
    windows = {f.window_title for f in resolved}
    return 0.7 if len(windows) <= 2 else 0.5


def event_confidence(
    event: ActivityEvent,
    frames_by_id: Dict[str, FrameMetadata]
) -> EventConfidence:
    count = len(event.evidence_frames)
    resolved = [frames_by_id[f] for f in event.evidence_frames if f in frames_by_id]
    temporal = 0.4 * min(count / FRAME_SATURATION, 1.0) + 0.6 * event.confidence
    return EventConfidence(
        event_id=event.event_id,
        raw_confidence=event.confidence,
        evidence_frame_count=count,
        temporal_consistency=clamp_unit(temporal),
        spatial_consistency=clamp_unit(spatial_consistency(resolved)),
    )


# =============================================================================
# FACTORS
# =============================================================================

def _factor(name: str, description: str, impact: float) -> ConfidenceFactor:
    return ConfidenceFactor(name=name, description=description, impact=clamp_impact(impact))


def confidence_factors(
    summary: ActivitySummary,
    key_events: Sequence[ActivityEvent],
    events: Sequence[ActivityEvent],
    frame_confidences: Sequence[FrameConfidence],
    event_confidences: Sequence[EventConfidence],
    direct_frames: Sequence[str],
    unresolved: Sequence[str]
) -> Tuple[ConfidenceFactor, ...]:
    """Signed explanations; evidence density is always reported."""
    factors: List[ConfidenceFactor] = []

    density = len(direct_frames) / len(key_events) if key_events else 0.0
    if density >= 2.0:
        factors.append(_factor("evidence_density", "High evidence density", 0.15))
    elif density >= 1.0:
        factors.append(_factor("evidence_density", "Moderate evidence density", 0.05))
    else:
        factors.append(_factor("evidence_density", "Low evidence density", -0.25))

    if len(key_events) >= 3:
        factors.append(_factor("event_count", "Sufficient key events", 0.2))
    else:
        factors.append(_factor("event_count", "Insufficient key events", -0.3))

    raw_mean = _mean([e.confidence for e in key_events])
    if raw_mean >= 0.8:
        factors.append(_factor("event_confidence", "High event confidence", 0.2))
    elif raw_mean < 0.5:
        factors.append(_factor("event_confidence", "Low event confidence", -0.3))

    temporal_mean = _mean([ec.temporal_consistency for ec in event_confidences])
    if temporal_mean >= 0.7:
        factors.append(_factor("temporal_consistency", "Consistent temporal evidence", 0.15))
    elif temporal_mean < 0.4:
        factors.append(_factor("temporal_consistency", "Inconsistent temporal evidence", -0.2))

    if frame_confidences:
        ocr_mean = _mean([fc.ocr_confidence for fc in frame_confidences])
        if ocr_mean >= 0.8:
            factors.append(_factor("ocr_confidence", "High OCR confidence", 0.15))
        elif ocr_mean < 0.5:
            factors.append(_factor("ocr_confidence", "Low OCR confidence", -0.2))

        spatial_mean = _mean([ec.spatial_consistency for ec in event_confidences
                              if ec.evidence_frame_count])
        if spatial_mean >= 0.9:
            factors.append(_factor("spatial_context", "Consistent application context", 0.1))
        elif spatial_mean < 0.5:
            factors.append(_factor("spatial_context", "Scattered application context", -0.15))

    duration = summary.session.duration
    if duration >= 300:
        factors.append(_factor("session_duration", "Substantial session duration", 0.1))
    elif duration < 60:
        factors.append(_factor("session_duration", "Brief session duration", -0.1))

    if unresolved:
        factors.append(_factor(
            "unresolved_frames",
            f"{len(unresolved)} cited frame(s) without metadata",
            -0.1,
        ))

    key_ids = {e.event_id for e in key_events}
    cited = set(direct_frames)
    corroborating = [
        e for e in events
        if e.event_id not in key_ids and cited.intersection(e.evidence_frames)
    ]
    if corroborating:
        factors.append(_factor(
            "corroborating_events",
            f"{len(corroborating)} other event(s) cite the same frames",
            0.1,
        ))
    return tuple(factors)


# =============================================================================
# PROPAGATION
# =============================================================================

def propagate(
    summary: ActivitySummary,
    events: Sequence[ActivityEvent],
    frames: Sequence[FrameMetadata],
    config: Optional[ConfidenceConfig] = None
) -> ConfidencePropagation:
    """Compute frame, event and summary confidences for one summary."""
    config = config or ConfidenceConfig()
    frames_by_id = {f.frame_id: f for f in frames}

    key_events: Dict[str, ActivityEvent] = {}
    for event in summary.key_events:
        key_events.setdefault(event.event_id, event)
    key_list = list(key_events.values())

    direct: Dict[str, None] = {}
    for event in key_list:
        for frame_id in event.evidence_frames:
            direct.setdefault(frame_id, None)
    direct_frames = list(direct)
    unresolved = [f for f in direct_frames if f not in frames_by_id]

    frame_confidences = tuple(
        frame_confidence(
            frames_by_id[f], frames, summary.session.primary_application, config
        )
        for f in direct_frames if f in frames_by_id
    )
    event_confidences = tuple(event_confidence(e, frames_by_id) for e in key_list)

    event_avg = _mean([ec.combined for ec in event_confidences])
    frame_avg = _mean([fc.combined for fc in frame_confidences])
    aggregated = float(np.average(
        [event_avg, frame_avg, summary.confidence], weights=SUMMARY_WEIGHTS
    ))
    completeness = _mean([
        1.0 if any(f in frames_by_id for f in e.evidence_frames) else 0.0
        for e in key_list
    ])

    summary_confidence = SummaryConfidence(
        aggregated_confidence=clamp_unit(aggregated),
        event_confidence_average=clamp_unit(event_avg),
        frame_confidence_average=clamp_unit(frame_avg),
        narrative_confidence=clamp_unit(summary.confidence),
        temporal_consistency=clamp_unit(
            _mean([ec.temporal_consistency for ec in event_confidences])
        ),
        spatial_consistency=clamp_unit(
            _mean([ec.spatial_consistency for ec in event_confidences])
        ),
        evidence_completeness=clamp_unit(completeness),
    )
    factors = confidence_factors(
        summary, key_list, events, frame_confidences, event_confidences,
        direct_frames, unresolved,
    )
    logger.debug(
        "Summary %s: aggregated %.3f from %d events, %d frames",
        summary.summary_id, summary_confidence.aggregated_confidence,
        len(event_confidences), len(frame_confidences),
    )
    return ConfidencePropagation(
        frame_confidences=frame_confidences,
        event_confidences=event_confidences,
        summary_confidence=summary_confidence,
        overall_confidence=clamp_unit(summary.confidence),
        confidence_factors=factors,
    )
