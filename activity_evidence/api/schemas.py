"""
API Request Schemas
===================

Pydantic models for request payloads. Field-level checks (ranges,
required keys) happen here; cross-field rules are enforced by the frozen
contracts they convert into.
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from ..contracts.base import TimeRange
from ..contracts.events import ActivityEvent, ActivityEventType, FrameMetadata, Span


class EventIn(BaseModel):
    event_id: str = Field(min_length=1)
    timestamp: datetime
    event_type: ActivityEventType
    target: str = ""
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    value_before: Optional[str] = None
    value_after: Optional[str] = None
    evidence_frames: List[str] = Field(default_factory=list)
    metadata: Dict[str, str] = Field(default_factory=dict)

    def to_contract(self) -> ActivityEvent:
        return ActivityEvent.create(
            event_id=self.event_id,
            timestamp=self.timestamp,
            event_type=self.event_type,
            target=self.target,
            confidence=self.confidence,
            value_before=self.value_before,
            value_after=self.value_after,
            evidence_frames=tuple(self.evidence_frames),
            metadata=self.metadata,
        )


class FrameIn(BaseModel):
    frame_id: str = Field(min_length=1)
    timestamp: datetime
    application_name: str = ""
    window_title: str = ""
    ocr_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    image_quality: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    scene_change_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    def to_contract(self) -> FrameMetadata:
        return FrameMetadata(**self.model_dump())


class SpanIn(BaseModel):
    span_id: str = Field(min_length=1)
    kind: str = ""
    start_time: datetime
    end_time: datetime
    title: str = ""
    summary_markdown: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    def to_contract(self) -> Span:
        data = self.model_dump()
        data["tags"] = tuple(self.tags)
        return Span(**data)


class TimeRangeIn(BaseModel):
    start: datetime
    end: datetime

    def to_contract(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


class SegmentRequest(BaseModel):
    events: List[EventIn]
    time_range: TimeRangeIn


class AnalyzeRequest(SegmentRequest):
    frames: List[FrameIn] = Field(default_factory=list)
    spans: List[SpanIn] = Field(default_factory=list)


class TraceRequest(AnalyzeRequest):
    summary_id: str
