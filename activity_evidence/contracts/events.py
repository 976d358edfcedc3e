"""
Activity Contracts
==================

Observations supplied by the capture layer and the sessions, contexts and
summaries derived from them.

CONSTRAINTS:
- Observations (events, frames, spans) are validated at construction
- Derived records (sessions, summaries) are created only by the pipeline
- Missing optional data is None, never a sentinel value
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple
from enum import Enum

from .base import ensure_utc, validate_unit


# Metadata keys that may carry the application name, in lookup order.
APP_NAME_KEYS = ("app_name", "application", "bundle_id")


class ActivityEventType(Enum):
    """Kinds of low-level interaction observed by the capture layer."""
    FIELD_CHANGE = "field_change"
    FORM_SUBMISSION = "form_submission"
    MODAL_APPEARANCE = "modal_appearance"
    ERROR_DISPLAY = "error_display"
    NAVIGATION = "navigation"
    DATA_ENTRY = "data_entry"
    APP_SWITCH = "app_switch"
    CLICK = "click"


@dataclass(frozen=True)
class ActivityEvent:
    """
    A single interaction observation.

    evidence_frames is ordered and de-duplicated; metadata is stored as
    sorted key/value pairs so the event stays hashable.
    """
    event_id: str
    timestamp: datetime
    event_type: ActivityEventType
    target: str
    confidence: float
    value_before: Optional[str] = None
    value_after: Optional[str] = None
    evidence_frames: Tuple[str, ...] = field(default_factory=tuple)
    metadata: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.event_id:
            raise ValueError("event_id must be a non-empty string")
        validate_unit("confidence", self.confidence)
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))
        object.__setattr__(
            self, 'evidence_frames', tuple(dict.fromkeys(self.evidence_frames))
        )

    @classmethod
    def create(
        cls,
        event_id: str,
        timestamp: datetime,
        event_type: ActivityEventType,
        target: str,
        confidence: float,
        value_before: Optional[str] = None,
        value_after: Optional[str] = None,
        evidence_frames: Tuple[str, ...] = (),
        metadata: Optional[Mapping[str, str]] = None
    ) -> 'ActivityEvent':
        return cls(
            event_id=event_id,
            timestamp=timestamp,
            event_type=ActivityEventType(event_type),
            target=target,
            confidence=float(confidence),
            value_before=value_before,
            value_after=value_after,
            evidence_frames=tuple(evidence_frames),
            metadata=tuple(sorted((str(k), str(v)) for k, v in (metadata or {}).items())),
        )

    def get_metadata(self, key: str) -> Optional[str]:
        for k, v in self.metadata:
            if k == key:
                return v
        return None

    @property
    def metadata_dict(self) -> Dict[str, str]:
        return dict(self.metadata)

    @property
    def app_name(self) -> Optional[str]:
        for key in APP_NAME_KEYS:
            value = self.get_metadata(key)
            if value:
                return value
        return None


@dataclass(frozen=True)
class FrameMetadata:
    """
    Metadata of one captured screen frame.

    Produced by the capture/OCR layer; pixels and OCR text are not part of
    this contract. scene_change_score is the capture layer's image-delta
    measurement against the previous frame, when it computed one.
    """
    frame_id: str
    timestamp: datetime
    application_name: str
    window_title: str
    ocr_confidence: Optional[float] = None
    image_quality: Optional[float] = None
    scene_change_score: Optional[float] = None

    def __post_init__(self):
        if not self.frame_id:
            raise ValueError("frame_id must be a non-empty string")
        validate_unit("ocr_confidence", self.ocr_confidence)
        validate_unit("image_quality", self.image_quality)
        validate_unit("scene_change_score", self.scene_change_score)
        object.__setattr__(self, 'timestamp', ensure_utc(self.timestamp))


@dataclass(frozen=True)
class Span:
    """A previously recorded activity interval from the span store."""
    span_id: str
    kind: str
    start_time: datetime
    end_time: datetime
    title: str
    summary_markdown: Optional[str] = None
    tags: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'start_time', ensure_utc(self.start_time))
        object.__setattr__(self, 'end_time', ensure_utc(self.end_time))
        object.__setattr__(self, 'tags', tuple(self.tags))
        if self.end_time < self.start_time:
            raise ValueError("Span end_time must not precede start_time")


# =============================================================================
# DERIVED RECORDS
# =============================================================================

class ActivitySessionType(Enum):
    DATA_ENTRY = "data_entry"
    FORM_FILLING = "form_filling"
    NAVIGATION = "navigation"
    RESEARCH = "research"
    COMMUNICATION = "communication"
    DEVELOPMENT = "development"
    MIXED = "mixed"


@dataclass(frozen=True)
class ActivitySession:
    """
    A maximal run of temporally close events treated as one activity.

    Events are sorted by timestamp. classification_reasons lists the
    classifier rules that produced session_type.
    """
    session_id: str
    start_time: datetime
    end_time: datetime
    events: Tuple[ActivityEvent, ...]
    session_type: ActivitySessionType
    primary_application: Optional[str] = None
    classification_reasons: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.events:
            raise ValueError("ActivitySession requires at least one event")
        if self.end_time < self.start_time:
            raise ValueError("ActivitySession end_time must not precede start_time")

    @property
    def duration(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    @property
    def event_ids(self) -> Tuple[str, ...]:
        return tuple(e.event_id for e in self.events)

    @property
    def applications(self) -> Tuple[str, ...]:
        """Distinct application names, in first-seen order."""
        apps = (e.app_name for e in self.events)
        return tuple(dict.fromkeys(a for a in apps if a))


@dataclass(frozen=True)
class WorkflowContinuity:
    is_part_of_larger_workflow: bool
    continuity_score: float
    workflow_phase: Optional[str] = None
    related_activities: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        validate_unit("continuity_score", self.continuity_score)


@dataclass(frozen=True)
class TemporalContext:
    """Spans and sessions surrounding a session, ordered by proximity."""
    preceding_spans: Tuple[Span, ...]
    following_spans: Tuple[Span, ...]
    workflow_continuity: WorkflowContinuity
    related_sessions: Tuple[ActivitySession, ...] = field(default_factory=tuple)

    @staticmethod
    def empty() -> 'TemporalContext':
        return TemporalContext(
            preceding_spans=(),
            following_spans=(),
            workflow_continuity=WorkflowContinuity(
                is_part_of_larger_workflow=False,
                continuity_score=0.0,
            ),
        )


@dataclass(frozen=True)
class ActivitySummary:
    """
    A session with its narrative and the key events that support it.

    narrative and outcomes are opaque to this package; key_events must be
    a non-empty subset of session.events.
    """
    summary_id: str
    session: ActivitySession
    narrative: str
    key_events: Tuple[ActivityEvent, ...]
    context: TemporalContext
    confidence: float
    outcomes: Tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        validate_unit("confidence", self.confidence)
        if not self.key_events:
            raise ValueError("ActivitySummary requires at least one key event")
        session_ids = set(self.session.event_ids)
        outside = [e.event_id for e in self.key_events if e.event_id not in session_ids]
        if outside:
            raise ValueError(f"Key events not in session: {', '.join(outside)}")
