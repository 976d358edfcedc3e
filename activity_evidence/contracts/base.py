"""
Base Contracts and Shared Types

Foundational types used by every stage of the evidence pipeline.
All types here are IMMUTABLE and represent pure data.

BOUNDARY ENFORCEMENT:
=====================
- Stages import these types but never extend them with behavior
- All types are frozen dataclasses for immutability guarantee
- All timestamps are timezone-aware UTC datetimes
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Tuple
from enum import Enum, auto
import hashlib


# =============================================================================
# ERROR STATES (Explicit, never silent)
# =============================================================================

class ErrorCode(Enum):
    """
    Explicit error codes for deterministic error handling.
    Degenerate inputs produce empty results annotated with one of these,
    never an exception.
    """
    # Segmentation outcomes
    EMPTY_INPUT = auto()
    INSUFFICIENT_EVENTS = auto()
    SESSION_TOO_SHORT = auto()
    EVENTS_TRUNCATED = auto()

    # Evidence graph
    GRAPH_INCONSISTENCY = auto()

    # Tracing
    TRACE_MISMATCH = auto()

    # Query / input errors
    INVALID_TIME_RANGE = auto()
    INVALID_INPUT = auto()


@dataclass(frozen=True)
class Error:
    """
    Immutable error representation with full context.
    Errors are data, not exceptions - they can be stored and queried.
    """
    code: ErrorCode
    message: str
    context: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)

    def with_context(self, key: str, value: str) -> Error:
        """Return new Error with additional context (immutable)."""
        return Error(
            code=self.code,
            message=self.message,
            context=self.context + ((key, value),)
        )

    def to_dict(self) -> dict:
        return {
            "code": self.code.name,
            "message": self.message,
            "context": dict(self.context),
        }


class EngineInvariantError(Exception):
    """
    Raised only when an internal invariant is broken.

    These indicate programming errors, not bad input, and are never
    caught inside the engine.
    """

    def __init__(self, error: Error):
        super().__init__(error.message)
        self.error = error


class GraphInconsistencyError(EngineInvariantError):
    """The evidence link maps disagree with each other."""


# =============================================================================
# IDENTITY (Deterministic, hash-derived)
# =============================================================================

def derive_id(prefix: str, *parts: str) -> str:
    """Generate a deterministic identifier from content parts."""
    seed = "|".join(parts)
    digest = hashlib.sha256(seed.encode('utf-8')).hexdigest()
    return f"{prefix}_{digest[:16]}"


# =============================================================================
# TEMPORAL TYPES (Immutable, explicit semantics)
# =============================================================================

def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are interpreted as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string (a trailing 'Z' is accepted)."""
    return ensure_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))


@dataclass(frozen=True)
class TimeRange:
    """Immutable, inclusive time range."""
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, 'start', ensure_utc(self.start))
        object.__setattr__(self, 'end', ensure_utc(self.end))
        if self.start > self.end:
            raise ValueError("TimeRange start must be before or equal to end")

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= ensure_utc(timestamp) <= self.end

    @property
    def duration(self) -> float:
        return (self.end - self.start).total_seconds()


# =============================================================================
# SCORE BOUNDS
# =============================================================================

def clamp_unit(value: float) -> float:
    """Clamp a computed score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


def clamp_impact(value: float) -> float:
    """Clamp a signed factor impact into [-1, 1]."""
    return max(-1.0, min(1.0, float(value)))


def validate_unit(name: str, value: Optional[float]) -> None:
    """Input scores must already be in [0, 1]; None is allowed."""
    if value is None:
        return
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0.0 and 1.0, got {value}")
