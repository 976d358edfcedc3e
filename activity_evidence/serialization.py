"""
Serialization
=============

JSON encoding of pipeline output and decoding of capture payloads.

RULES:
1. Dates are ISO 8601 strings (UTC).
2. Enums use their .value.
3. Sets become sorted lists (determinism).
4. Dataclasses become dicts.
"""

import json
from dataclasses import asdict, dataclass, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .contracts.base import TimeRange, parse_timestamp
from .contracts.events import ActivityEvent, FrameMetadata, Span


class ForensicEncoder(json.JSONEncoder):
    """JSON encoder that keeps timestamps and enums lossless."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        return super().default(obj)


def dumps(obj: Any, indent: Optional[int] = 2) -> str:
    return json.dumps(obj, cls=ForensicEncoder, indent=indent, sort_keys=True)


# =============================================================================
# DECODING
# =============================================================================

def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO-8601 timestamp, got {value!r}")
    return parse_timestamp(value)


def event_from_dict(data: Mapping[str, Any]) -> ActivityEvent:
    return ActivityEvent.create(
        event_id=data["event_id"],
        timestamp=_timestamp(data["timestamp"]),
        event_type=data["event_type"],
        target=data.get("target", ""),
        confidence=data.get("confidence", 1.0),
        value_before=data.get("value_before"),
        value_after=data.get("value_after"),
        evidence_frames=tuple(data.get("evidence_frames", ())),
        metadata=data.get("metadata"),
    )


def frame_from_dict(data: Mapping[str, Any]) -> FrameMetadata:
    return FrameMetadata(
        frame_id=data["frame_id"],
        timestamp=_timestamp(data["timestamp"]),
        application_name=data.get("application_name", ""),
        window_title=data.get("window_title", ""),
        ocr_confidence=data.get("ocr_confidence"),
        image_quality=data.get("image_quality"),
        scene_change_score=data.get("scene_change_score"),
    )


def span_from_dict(data: Mapping[str, Any]) -> Span:
    return Span(
        span_id=data["span_id"],
        kind=data.get("kind", ""),
        start_time=_timestamp(data["start_time"]),
        end_time=_timestamp(data["end_time"]),
        title=data.get("title", ""),
        summary_markdown=data.get("summary_markdown"),
        tags=tuple(data.get("tags", ())),
    )


@dataclass(frozen=True)
class CaptureBundle:
    """Events, frames and spans of one capture window."""
    events: Tuple[ActivityEvent, ...]
    frames: Tuple[FrameMetadata, ...]
    spans: Tuple[Span, ...]
    time_range: TimeRange


def bundle_from_dict(data: Mapping[str, Any]) -> CaptureBundle:
    """
    Decode a capture payload.

    Without an explicit "time_range", the window covers every event.
    Missing keys raise KeyError; malformed values raise ValueError.
    """
    events = tuple(event_from_dict(e) for e in data.get("events", ()))
    frames = tuple(frame_from_dict(f) for f in data.get("frames", ()))
    spans = tuple(span_from_dict(s) for s in data.get("spans", ()))

    window: Optional[Dict[str, Any]] = data.get("time_range")
    if window:
        time_range = TimeRange(start=_timestamp(window["start"]), end=_timestamp(window["end"]))
    elif events:
        stamps = [e.timestamp for e in events]
        time_range = TimeRange(start=min(stamps), end=max(stamps))
    else:
        raise ValueError("time_range is required when there are no events")
    return CaptureBundle(events=events, frames=frames, spans=spans, time_range=time_range)


def load_bundle(path: str) -> CaptureBundle:
    with open(path, "r", encoding="utf-8") as f:
        return bundle_from_dict(json.load(f))
