"""
Evidence Contracts
==================

The evidence graph, confidence propagation and trace records.

INVARIANTS:
- Every confidence stored here is in [0, 1]
- Every factor impact is in [-1, 1]
- Correlation reasons form a closed vocabulary
- Link maps are id-keyed; no record holds a reference to another record
  besides the ids
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple
from enum import Enum

from .base import Error, clamp_unit, validate_unit


# =============================================================================
# CORRELATION
# =============================================================================

class CorrelationReason(Enum):
    """Why a frame was considered related to a session."""
    TEMPORAL_PROXIMITY = "temporal_proximity_to_events"
    APPLICATION_CONTEXT = "application_context_match"
    SCENE_TRANSITION = "significant_scene_transition"
    WORKFLOW_CONTINUITY = "workflow_continuity"


@dataclass(frozen=True)
class CorrelatedFrame:
    """A frame inferred to be relevant to a session without being cited by an event."""
    frame_id: str
    timestamp: datetime
    correlation_score: float
    correlation_reasons: Tuple[CorrelationReason, ...]
    application_name: str
    window_title: str

    def __post_init__(self):
        validate_unit("correlation_score", self.correlation_score)
        if not self.correlation_reasons:
            raise ValueError("CorrelatedFrame requires at least one reason")


# =============================================================================
# LINKS
# =============================================================================

@dataclass(frozen=True)
class BidirectionalLinks:
    """
    Cross-references between frames, events and the summary.

    The forward and backward maps must describe the same edge set; see
    core.graph.find_link_violations.
    """
    frame_to_events: Dict[str, Tuple[str, ...]]
    event_to_frames: Dict[str, Tuple[str, ...]]
    summary_to_events: Dict[str, Tuple[str, ...]]
    event_to_summary: Dict[str, str]


# =============================================================================
# CONFIDENCE
# =============================================================================

@dataclass(frozen=True)
class FrameConfidence:
    frame_id: str
    ocr_confidence: float
    image_quality: float
    temporal_stability: float
    context_relevance: float

    def __post_init__(self):
        validate_unit("ocr_confidence", self.ocr_confidence)
        validate_unit("image_quality", self.image_quality)
        validate_unit("temporal_stability", self.temporal_stability)
        validate_unit("context_relevance", self.context_relevance)

    @property
    def combined(self) -> float:
        return clamp_unit(
            self.ocr_confidence * 0.4
            + self.image_quality * 0.2
            + self.temporal_stability * 0.2
            + self.context_relevance * 0.2
        )


@dataclass(frozen=True)
class EventConfidence:
    event_id: str
    raw_confidence: float
    evidence_frame_count: int
    temporal_consistency: float
    spatial_consistency: float

    def __post_init__(self):
        validate_unit("raw_confidence", self.raw_confidence)
        validate_unit("temporal_consistency", self.temporal_consistency)
        validate_unit("spatial_consistency", self.spatial_consistency)

    @property
    def combined(self) -> float:
        return clamp_unit(
            self.raw_confidence * 0.7
            + self.temporal_consistency * 0.2
            + self.spatial_consistency * 0.1
        )


@dataclass(frozen=True)
class SummaryConfidence:
    aggregated_confidence: float
    event_confidence_average: float
    frame_confidence_average: float
    narrative_confidence: float
    temporal_consistency: float
    spatial_consistency: float
    evidence_completeness: float

    def __post_init__(self):
        for name in (
            "aggregated_confidence", "event_confidence_average",
            "frame_confidence_average", "narrative_confidence",
            "temporal_consistency", "spatial_consistency",
            "evidence_completeness",
        ):
            validate_unit(name, getattr(self, name))


@dataclass(frozen=True)
class ConfidenceFactor:
    """A signed, human-readable contribution to a confidence score."""
    name: str
    description: str
    impact: float

    def __post_init__(self):
        if not -1.0 <= self.impact <= 1.0:
            raise ValueError(f"impact must be between -1.0 and 1.0, got {self.impact}")


@dataclass(frozen=True)
class ConfidencePropagation:
    frame_confidences: Tuple[FrameConfidence, ...]
    event_confidences: Tuple[EventConfidence, ...]
    summary_confidence: SummaryConfidence
    overall_confidence: float
    confidence_factors: Tuple[ConfidenceFactor, ...] = field(default_factory=tuple)

    def frame(self, frame_id: str) -> Optional[FrameConfidence]:
        for fc in self.frame_confidences:
            if fc.frame_id == frame_id:
                return fc
        return None

    def event(self, event_id: str) -> Optional[EventConfidence]:
        for ec in self.event_confidences:
            if ec.event_id == event_id:
                return ec
        return None


# =============================================================================
# REFERENCE
# =============================================================================

@dataclass(frozen=True)
class EvidenceReference:
    """Everything needed to justify one summary."""
    summary_id: str
    session_id: str
    direct_evidence_frames: Tuple[str, ...]
    correlated_frames: Tuple[CorrelatedFrame, ...]
    event_evidence_map: Dict[str, Tuple[str, ...]]
    bidirectional_links: BidirectionalLinks
    confidence_propagation: ConfidencePropagation


# =============================================================================
# TRACE
# =============================================================================

class EvidenceLevel(Enum):
    SUMMARY = "summary"
    EVENT = "event"
    FRAME = "frame"


class EvidenceType(Enum):
    NARRATIVE = "narrative"
    INTERACTION = "interaction"
    VISUAL = "visual"


@dataclass(frozen=True)
class TraceStep:
    level: EvidenceLevel
    evidence_type: EvidenceType
    reference_id: str
    confidence: float
    description: str

    def __post_init__(self):
        validate_unit("confidence", self.confidence)


@dataclass(frozen=True)
class EvidenceTrace:
    """Ordered path from a summary down to its frames. `error` is set when
    the trace could not be built for the requested summary."""
    summary_id: str
    trace_complete: bool
    trace_path: Tuple[TraceStep, ...]
    total_confidence: float
    error: Optional[Error] = None

    def steps_at(self, level: EvidenceLevel) -> Tuple[TraceStep, ...]:
        return tuple(s for s in self.trace_path if s.level == level)
