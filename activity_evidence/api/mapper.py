"""
API Mapper
==========

Transforms pipeline contracts into plain DTO dicts for the API and CLI.
Values are exposed as computed; no rounding or smoothing.
"""
from typing import Any, Dict

from ..contracts.events import ActivityEvent, ActivitySession, ActivitySummary, Span, TemporalContext
from ..contracts.evidence import (
    ConfidencePropagation, CorrelatedFrame, EvidenceReference, EvidenceTrace
)
from ..engine import PipelineResult, SessionAnalysis


def _iso(value) -> str:
    return value.isoformat().replace('+00:00', 'Z')


def map_event(event: ActivityEvent) -> Dict[str, Any]:
    return {
        "event_id": event.event_id,
        "timestamp": _iso(event.timestamp),
        "event_type": event.event_type.value,
        "target": event.target,
        "confidence": event.confidence,
        "evidence_frames": list(event.evidence_frames),
        "app_name": event.app_name,
        "metadata": event.metadata_dict,
    }


def map_session(session: ActivitySession) -> Dict[str, Any]:
    return {
        "session_id": session.session_id,
        "start_time": _iso(session.start_time),
        "end_time": _iso(session.end_time),
        "duration_seconds": session.duration,
        "primary_application": session.primary_application,
        "session_type": session.session_type.value,
        "classification_reasons": list(session.classification_reasons),
        "events": [map_event(e) for e in session.events],
    }


def _map_span(span: Span) -> Dict[str, Any]:
    return {
        "span_id": span.span_id,
        "kind": span.kind,
        "start_time": _iso(span.start_time),
        "end_time": _iso(span.end_time),
        "title": span.title,
        "tags": list(span.tags),
    }


def map_context(context: TemporalContext) -> Dict[str, Any]:
    continuity = context.workflow_continuity
    return {
        "preceding_spans": [_map_span(s) for s in context.preceding_spans],
        "following_spans": [_map_span(s) for s in context.following_spans],
        "related_session_ids": [s.session_id for s in context.related_sessions],
        "workflow_continuity": {
            "is_part_of_larger_workflow": continuity.is_part_of_larger_workflow,
            "workflow_phase": continuity.workflow_phase,
            "continuity_score": continuity.continuity_score,
            "related_activities": list(continuity.related_activities),
        },
    }


def map_summary(summary: ActivitySummary) -> Dict[str, Any]:
    return {
        "summary_id": summary.summary_id,
        "session_id": summary.session.session_id,
        "narrative": summary.narrative,
        "key_event_ids": [e.event_id for e in summary.key_events],
        "outcomes": list(summary.outcomes),
        "confidence": summary.confidence,
    }


def _map_correlated(frame: CorrelatedFrame) -> Dict[str, Any]:
    return {
        "frame_id": frame.frame_id,
        "timestamp": _iso(frame.timestamp),
        "correlation_score": frame.correlation_score,
        "correlation_reasons": [r.value for r in frame.correlation_reasons],
        "application_name": frame.application_name,
        "window_title": frame.window_title,
    }


def map_propagation(propagation: ConfidencePropagation) -> Dict[str, Any]:
    summary = propagation.summary_confidence
    return {
        "overall_confidence": propagation.overall_confidence,
        "summary_confidence": {
            "aggregated_confidence": summary.aggregated_confidence,
            "event_confidence_average": summary.event_confidence_average,
            "frame_confidence_average": summary.frame_confidence_average,
            "narrative_confidence": summary.narrative_confidence,
            "temporal_consistency": summary.temporal_consistency,
            "spatial_consistency": summary.spatial_consistency,
            "evidence_completeness": summary.evidence_completeness,
        },
        "frame_confidences": {
            fc.frame_id: fc.combined for fc in propagation.frame_confidences
        },
        "event_confidences": {
            ec.event_id: ec.combined for ec in propagation.event_confidences
        },
        "confidence_factors": [
            {"name": f.name, "description": f.description, "impact": f.impact}
            for f in propagation.confidence_factors
        ],
    }


def map_reference(reference: EvidenceReference) -> Dict[str, Any]:
    links = reference.bidirectional_links
    return {
        "summary_id": reference.summary_id,
        "session_id": reference.session_id,
        "direct_evidence_frames": list(reference.direct_evidence_frames),
        "correlated_frames": [_map_correlated(c) for c in reference.correlated_frames],
        "event_evidence_map": {k: list(v) for k, v in reference.event_evidence_map.items()},
        "links": {
            "frame_to_events": {k: list(v) for k, v in links.frame_to_events.items()},
            "event_to_frames": {k: list(v) for k, v in links.event_to_frames.items()},
            "summary_to_events": {k: list(v) for k, v in links.summary_to_events.items()},
            "event_to_summary": dict(links.event_to_summary),
        },
        "confidence": map_propagation(reference.confidence_propagation),
    }


def map_trace(evidence_trace: EvidenceTrace) -> Dict[str, Any]:
    return {
        "summary_id": evidence_trace.summary_id,
        "trace_complete": evidence_trace.trace_complete,
        "total_confidence": evidence_trace.total_confidence,
        "trace_path": [
            {
                "level": step.level.value,
                "evidence_type": step.evidence_type.value,
                "reference_id": step.reference_id,
                "confidence": step.confidence,
                "description": step.description,
            }
            for step in evidence_trace.trace_path
        ],
        "error": evidence_trace.error.to_dict() if evidence_trace.error else None,
    }


def map_analysis(analysis: SessionAnalysis) -> Dict[str, Any]:
    return {
        "session": map_session(analysis.session),
        "context": map_context(analysis.context),
        "summary": map_summary(analysis.summary),
        "reference": map_reference(analysis.reference),
        "trace": map_trace(analysis.trace),
    }


def map_result(result: PipelineResult) -> Dict[str, Any]:
    return {
        "analyses": [map_analysis(a) for a in result.analyses],
        "rejected": [
            {"event_ids": list(r.event_ids), "error": r.error.to_dict()}
            for r in result.rejected
        ],
        "overflow_count": result.overflow_count,
        "notices": [n.to_dict() for n in result.notices],
        "audit": [
            {
                "stage": r.stage,
                "subject": r.subject,
                "duration_ms": r.duration_ms,
                "input_count": r.input_count,
                "output_count": r.output_count,
            }
            for r in result.audit
        ],
        "stage_totals_ms": dict(result.stage_totals_ms),
    }
