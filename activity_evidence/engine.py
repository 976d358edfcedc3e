"""
Engine Orchestration Module

Runs the full evidence pipeline for one request:

    segment -> analyze context -> assemble summary -> build reference
    (correlate + link + propagate) -> trace

DESIGN PRINCIPLES:
==================
1. Stages communicate ONLY through contracts
2. No state survives between runs; every run gets its own audit
3. Sessions are independent and may be processed on worker threads
4. Output order always follows session order
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from .config import EngineConfig
from .contracts.base import Error, TimeRange
from .contracts.events import (
    ActivityEvent, ActivitySession, ActivitySummary, FrameMetadata, Span,
    TemporalContext
)
from .contracts.evidence import EvidenceReference, EvidenceTrace
from .core.context import analyze
from .core.correlation import SceneSignal
from .core.graph import build_reference
from .core.segmenter import RejectedCandidate, segment_with_diagnostics
from .core.tracer import trace
from .observability import PipelineAudit, StageRecord
from .summarization import Renderer, assemble_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionAnalysis:
    """Everything derived for one session."""
    session: ActivitySession
    context: TemporalContext
    summary: ActivitySummary
    reference: EvidenceReference
    trace: EvidenceTrace


@dataclass(frozen=True)
class PipelineResult:
    analyses: Tuple[SessionAnalysis, ...]
    rejected: Tuple[RejectedCandidate, ...] = field(default_factory=tuple)
    overflow_count: int = 0
    audit: Tuple[StageRecord, ...] = field(default_factory=tuple)
    notices: Tuple[Error, ...] = field(default_factory=tuple)
    stage_totals_ms: Dict[str, float] = field(default_factory=dict)

    @property
    def sessions(self) -> Tuple[ActivitySession, ...]:
        return tuple(a.session for a in self.analyses)

    @property
    def summaries(self) -> Tuple[ActivitySummary, ...]:
        return tuple(a.summary for a in self.analyses)

    @property
    def references(self) -> Tuple[EvidenceReference, ...]:
        return tuple(a.reference for a in self.analyses)

    @property
    def traces(self) -> Tuple[EvidenceTrace, ...]:
        return tuple(a.trace for a in self.analyses)


class ActivityEvidenceEngine:
    """
    Unified entry point for the evidence pipeline.

    The engine holds configuration only. Calls are independent and may be
    made concurrently.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config = config or EngineConfig()

    @property
    def config(self) -> EngineConfig:
        return self._config

    def segment(
        self,
        events: Sequence[ActivityEvent],
        time_range: TimeRange
    ) -> Tuple[ActivitySession, ...]:
        return segment_with_diagnostics(
            events, time_range, self._config.segmentation
        ).sessions

    def _analyze_session(
        self,
        session: ActivitySession,
        sessions: Sequence[ActivitySession],
        events: Sequence[ActivityEvent],
        frames: Sequence[FrameMetadata],
        spans: Sequence[Span],
        renderer: Optional[Renderer],
        scene_signal: Optional[SceneSignal],
        audit: PipelineAudit
    ) -> SessionAnalysis:
        sid = session.session_id
        with audit.stage("context", len(spans), subject=sid) as probe:
            context = analyze(session, spans, self._config.context, other_sessions=sessions)
            probe.output_count = len(context.preceding_spans) + len(context.following_spans)

        with audit.stage("summarize", len(session.events), subject=sid) as probe:
            summary = assemble_summary(session, context, renderer=renderer)
            probe.output_count = len(summary.key_events)

        with audit.stage("reference", len(frames), subject=sid) as probe:
            reference = build_reference(
                summary, events, frames, self._config,
                context=context, scene_signal=scene_signal,
            )
            probe.output_count = (
                len(reference.direct_evidence_frames) + len(reference.correlated_frames)
            )

        with audit.stage("trace", len(summary.key_events), subject=sid) as probe:
            evidence_trace = trace(summary.summary_id, reference)
            probe.output_count = len(evidence_trace.trace_path)

        return SessionAnalysis(
            session=session,
            context=context,
            summary=summary,
            reference=reference,
            trace=evidence_trace,
        )

    def run(
        self,
        events: Sequence[ActivityEvent],
        frames: Sequence[FrameMetadata],
        spans: Sequence[Span],
        time_range: TimeRange,
        renderer: Optional[Renderer] = None,
        scene_signal: Optional[SceneSignal] = None,
        max_workers: Optional[int] = None
    ) -> PipelineResult:
        """
        Run the pipeline over one window of telemetry.

        max_workers > 1 fans sessions out over a thread pool.
        """
        audit = PipelineAudit()
        with audit.stage("segment", len(events)) as probe:
            outcome = segment_with_diagnostics(events, time_range, self._config.segmentation)
            probe.output_count = len(outcome.sessions)
        sessions = outcome.sessions

        def work(session: ActivitySession) -> SessionAnalysis:
            return self._analyze_session(
                session, sessions, events, frames, spans,
                renderer, scene_signal, audit,
            )

        analyses: List[SessionAnalysis]
        if max_workers and max_workers > 1 and len(sessions) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                analyses = list(pool.map(work, sessions))
        else:
            analyses = [work(s) for s in sessions]

        logger.info(
            "Pipeline run: %d events -> %d sessions (%d rejected, %d overflow)",
            len(events), len(sessions), len(outcome.rejected), outcome.overflow_count,
        )
        return PipelineResult(
            analyses=tuple(analyses),
            rejected=outcome.rejected,
            overflow_count=outcome.overflow_count,
            audit=audit.records,
            notices=outcome.notices,
            stage_totals_ms=audit.totals(),
        )
