"""
Evidence Tracer
===============

Reconstructs the ordered path from a summary down to the frames that
support it, using only the reference's link maps and confidences.

Order: the summary step, then for each key event its event step followed
by that event's frame steps.
"""

from __future__ import annotations
from typing import List
import logging

import numpy as np

from ..contracts.base import Error, ErrorCode, clamp_unit
from ..contracts.evidence import (
    EvidenceLevel, EvidenceReference, EvidenceTrace, EvidenceType, TraceStep
)

logger = logging.getLogger(__name__)

# Weight of each level in total_confidence; absent levels drop out.
LEVEL_WEIGHTS = {
    EvidenceLevel.SUMMARY: 0.2,
    EvidenceLevel.EVENT: 0.4,
    EvidenceLevel.FRAME: 0.4,
}


def _total_confidence(path: List[TraceStep]) -> float:
    means, weights = [], []
    for level, weight in LEVEL_WEIGHTS.items():
        values = [s.confidence for s in path if s.level == level]
        if values:
            means.append(float(np.mean(values)))
            weights.append(weight)
    if not means:
        return 0.0
    return clamp_unit(np.average(means, weights=weights))


def trace(summary_id: str, reference: EvidenceReference) -> EvidenceTrace:
    """
    Build the evidence trace of `summary_id` from `reference`.

    A reference for another summary yields an empty, incomplete trace
    carrying a TRACE_MISMATCH error.
    The trace is complete when every key event reaches at least one frame.
    """
    if reference.summary_id != summary_id:
        error = Error(
            code=ErrorCode.TRACE_MISMATCH,
            message=f"reference belongs to {reference.summary_id}",
        ).with_context("requested", summary_id)
        logger.debug("Trace mismatch: %s", error.to_dict())
        return EvidenceTrace(
            summary_id=summary_id,
            trace_complete=False,
            trace_path=(),
            total_confidence=0.0,
            error=error,
        )

    links = reference.bidirectional_links
    propagation = reference.confidence_propagation
    event_ids = links.summary_to_events.get(summary_id, ())

    path: List[TraceStep] = [TraceStep(
        level=EvidenceLevel.SUMMARY,
        evidence_type=EvidenceType.NARRATIVE,
        reference_id=summary_id,
        confidence=propagation.summary_confidence.aggregated_confidence,
        description=f"Summary supported by {len(event_ids)} key event(s)",
    )]

    complete = bool(event_ids)
    for event_id in event_ids:
        event_conf = propagation.event(event_id)
        frame_ids = links.event_to_frames.get(event_id, ())
        path.append(TraceStep(
            level=EvidenceLevel.EVENT,
            evidence_type=EvidenceType.INTERACTION,
            reference_id=event_id,
            confidence=event_conf.combined if event_conf else 0.0,
            description=f"Event cites {len(frame_ids)} frame(s)",
        ))
        if not frame_ids:
            complete = False
        for frame_id in frame_ids:
            frame_conf = propagation.frame(frame_id)
            path.append(TraceStep(
                level=EvidenceLevel.FRAME,
                evidence_type=EvidenceType.VISUAL,
                reference_id=frame_id,
                confidence=frame_conf.combined if frame_conf else 0.0,
                description=(
                    "Captured frame" if frame_conf
                    else "Captured frame (metadata unavailable)"
                ),
            ))

    return EvidenceTrace(
        summary_id=summary_id,
        trace_complete=complete,
        trace_path=tuple(path),
        total_confidence=_total_confidence(path),
    )
