"""
Activity Evidence Engine

Derives activity sessions from interaction telemetry and links every
summary back to the events and captured frames that support it.

STAGE STRUCTURE:
================

1. SEGMENTATION (core/segmenter.py)
   - Events -> ActivitySessions (gap, size and duration thresholds)
   - Pure session-type classifier with matched reasons

2. TEMPORAL CONTEXT (core/context.py)
   - Session + spans -> TemporalContext (workflow continuity)

3. CORRELATION (core/correlation.py)
   - Session + frames -> CorrelatedFrames (scored, with reasons)

4. EVIDENCE GRAPH (core/graph.py)
   - Summary -> EvidenceReference with bidirectional links (networkx)

5. CONFIDENCE (core/confidence.py)
   - Frame -> event -> summary confidence with signed factors

6. TRACE (core/tracer.py)
   - Reference -> ordered, auditable EvidenceTrace

Stages communicate only through the frozen contracts in contracts/.
"""

from .config import EngineConfig
from .engine import ActivityEvidenceEngine, PipelineResult, SessionAnalysis

__all__ = [
    "ActivityEvidenceEngine",
    "EngineConfig",
    "PipelineResult",
    "SessionAnalysis",
]

__version__ = "0.1.0"
