"""
Engine Configuration
====================

Explicit configuration passed into every stage. There are no global
managers: each stage receives the config it needs as an argument.

Durations are seconds. Invalid values raise ValueError at construction.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional
import json
import logging
import os

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "AEE_CONFIG_PATH"


def _require_positive(name: str, value: float) -> None:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


def _require_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")


@dataclass(frozen=True)
class SegmentationConfig:
    """Configuration for session segmentation."""
    min_session_duration: float = 60.0
    max_event_gap: float = 300.0
    min_events_for_summary: int = 3
    max_events_for_analysis: int = 100
    max_events_per_session: int = 50
    # None disables the contextual split
    context_similarity_threshold: Optional[float] = None

    def __post_init__(self):
        if self.min_session_duration < 0:
            raise ValueError("min_session_duration must not be negative")
        _require_positive("max_event_gap", self.max_event_gap)
        _require_positive("min_events_for_summary", self.min_events_for_summary)
        _require_positive("max_events_for_analysis", self.max_events_for_analysis)
        _require_positive("max_events_per_session", self.max_events_per_session)
        if self.context_similarity_threshold is not None:
            _require_unit("context_similarity_threshold", self.context_similarity_threshold)


@dataclass(frozen=True)
class ContextConfig:
    """Configuration for temporal context analysis."""
    preceding_context_window: float = 3600.0
    following_context_window: float = 1800.0
    min_similarity_score: float = 0.6
    max_related_spans: int = 5

    def __post_init__(self):
        _require_positive("preceding_context_window", self.preceding_context_window)
        _require_positive("following_context_window", self.following_context_window)
        _require_unit("min_similarity_score", self.min_similarity_score)
        _require_positive("max_related_spans", self.max_related_spans)


@dataclass(frozen=True)
class CorrelationConfig:
    """Configuration for frame correlation."""
    max_temporal_distance: float = 300.0
    min_evidence_confidence: float = 0.5
    max_evidence_frames: int = 10
    temporal_decay_factor: float = 0.1
    frame_margin: float = 5.0

    def __post_init__(self):
        _require_positive("max_temporal_distance", self.max_temporal_distance)
        _require_unit("min_evidence_confidence", self.min_evidence_confidence)
        _require_positive("max_evidence_frames", self.max_evidence_frames)
        _require_unit("temporal_decay_factor", self.temporal_decay_factor)
        if self.frame_margin < 0:
            raise ValueError("frame_margin must not be negative")


@dataclass(frozen=True)
class ConfidenceConfig:
    """Defaults used when frame metadata lacks a measurement."""
    default_ocr_confidence: float = 0.8
    default_image_quality: float = 0.9
    stability_window: float = 30.0

    def __post_init__(self):
        _require_unit("default_ocr_confidence", self.default_ocr_confidence)
        _require_unit("default_image_quality", self.default_image_quality)
        _require_positive("stability_window", self.stability_window)


_SECTIONS = {
    "segmentation": SegmentationConfig,
    "context": ContextConfig,
    "correlation": CorrelationConfig,
    "confidence": ConfidenceConfig,
}


@dataclass
class EngineConfig:
    """Unified configuration for the entire pipeline."""
    segmentation: SegmentationConfig = None
    context: ContextConfig = None
    correlation: CorrelationConfig = None
    confidence: ConfidenceConfig = None

    def __post_init__(self):
        self.segmentation = self.segmentation or SegmentationConfig()
        self.context = self.context or ContextConfig()
        self.correlation = self.correlation or CorrelationConfig()
        self.confidence = self.confidence or ConfidenceConfig()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EngineConfig':
        """
        Build from a nested mapping, e.g. {"segmentation": {"max_event_gap": 120}}.

        Unknown sections or keys are rejected so typos do not pass silently.
        """
        unknown = set(data) - set(_SECTIONS)
        if unknown:
            raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")
        kwargs = {}
        for section, section_cls in _SECTIONS.items():
            values = data.get(section) or {}
            allowed = {f.name for f in fields(section_cls)}
            bad = set(values) - allowed
            if bad:
                raise ValueError(
                    f"Unknown keys in '{section}': {', '.join(sorted(bad))}"
                )
            kwargs[section] = section_cls(**values)
        return cls(**kwargs)

    @classmethod
    def from_json_file(cls, path: str) -> 'EngineConfig':
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_env(cls) -> 'EngineConfig':
        """Load from the JSON file named by AEE_CONFIG_PATH, else defaults."""
        path = os.environ.get(CONFIG_PATH_ENV)
        if not path:
            return cls()
        logger.info("Loading engine config from %s", path)
        return cls.from_json_file(path)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {name: asdict(getattr(self, name)) for name in _SECTIONS}
