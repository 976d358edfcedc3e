"""
Evidence Graph Builder
======================

Links a summary to its key events and their cited frames.

One directed networkx graph is the canonical edge set:

    summary --explains--> event --cites--> frame

Every link map in BidirectionalLinks is read off that graph (successors
for the forward maps, predecessors for the backward ones), so forward and
backward views describe the same edges. The invariant is still verified
after construction; a violation is an internal bug and raises
GraphInconsistencyError.

Correlated frames are kept beside the link maps. They appear in the
exported graph as `correlated` edges from the summary, never as event
links.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import logging

import networkx as nx

from ..config import EngineConfig
from ..contracts.base import Error, ErrorCode, GraphInconsistencyError
from ..contracts.events import ActivityEvent, ActivitySummary, FrameMetadata, TemporalContext
from ..contracts.evidence import BidirectionalLinks, EvidenceReference
from .confidence import propagate
from .correlation import SceneSignal, find_temporally_correlated_frames

logger = logging.getLogger(__name__)

SUMMARY = "summary"
EVENT = "event"
FRAME = "frame"

EXPLAINS = "explains"
CITES = "cites"
CORRELATED = "correlated"


def _node(kind: str, identifier: str) -> Tuple[str, str]:
    # Kind-qualified so an event and a frame may share an id.
    return (kind, identifier)


def unique_key_events(summary: ActivitySummary) -> Tuple[ActivityEvent, ...]:
    """Key events with duplicate ids removed, first occurrence kept."""
    seen = {}
    for event in summary.key_events:
        seen.setdefault(event.event_id, event)
    return tuple(seen.values())


def direct_evidence_frames(summary: ActivitySummary) -> Tuple[str, ...]:
    """Ordered union of the frames cited by the key events."""
    ordered: Dict[str, None] = {}
    for event in unique_key_events(summary):
        for frame_id in event.evidence_frames:
            ordered.setdefault(frame_id, None)
    return tuple(ordered)


# =============================================================================
# CANONICAL GRAPH
# =============================================================================

def build_evidence_graph(summary: ActivitySummary) -> nx.DiGraph:
    """Directed summary -> event -> frame graph for one summary."""
    graph = nx.DiGraph()
    root = _node(SUMMARY, summary.summary_id)
    graph.add_node(root, kind=SUMMARY, ref=summary.summary_id)
    for event in unique_key_events(summary):
        event_node = _node(EVENT, event.event_id)
        graph.add_node(event_node, kind=EVENT, ref=event.event_id,
                       timestamp=event.timestamp)
        graph.add_edge(root, event_node, relation=EXPLAINS)
        for frame_id in event.evidence_frames:
            frame_node = _node(FRAME, frame_id)
            graph.add_node(frame_node, kind=FRAME, ref=frame_id)
            graph.add_edge(event_node, frame_node, relation=CITES)
    return graph


def links_from_graph(graph: nx.DiGraph, summary_id: str) -> BidirectionalLinks:
    """Read all four link maps off the canonical graph."""
    root = _node(SUMMARY, summary_id)
    event_nodes = [n for n in graph.successors(root)
                   if graph.edges[root, n]["relation"] == EXPLAINS]

    event_to_frames: Dict[str, Tuple[str, ...]] = {}
    for event_node in event_nodes:
        event_to_frames[graph.nodes[event_node]["ref"]] = tuple(
            graph.nodes[n]["ref"] for n in graph.successors(event_node)
            if graph.nodes[n]["kind"] == FRAME and graph.edges[event_node, n]["relation"] == CITES
        )

    frame_to_events: Dict[str, Tuple[str, ...]] = {}
    for node, data in graph.nodes(data=True):
        if data["kind"] != FRAME:
            continue
        owners = tuple(
            graph.nodes[p]["ref"] for p in graph.predecessors(node)
            if graph.nodes[p]["kind"] == EVENT and graph.edges[p, node]["relation"] == CITES
        )
        if owners:
            frame_to_events[data["ref"]] = owners

    event_ids = tuple(graph.nodes[n]["ref"] for n in event_nodes)
    return BidirectionalLinks(
        frame_to_events=frame_to_events,
        event_to_frames=event_to_frames,
        summary_to_events={summary_id: event_ids},
        event_to_summary={event_id: summary_id for event_id in event_ids},
    )


def build_bidirectional_links(summary: ActivitySummary) -> BidirectionalLinks:
    links = links_from_graph(build_evidence_graph(summary), summary.summary_id)
    verify_bidirectional_links(links, summary.summary_id)
    return links


# =============================================================================
# INVARIANT
# =============================================================================

def find_link_violations(links: BidirectionalLinks, summary_id: str) -> List[str]:
    """
    Describe every way the link maps disagree. Empty means consistent.

    Checked:
    - e in frame_to_events[f]  iff  f in event_to_frames[e]
    - every event of summary_to_events maps back to summary_id
    - every key of event_to_summary appears in summary_to_events
    """
    violations: List[str] = []

    for frame_id, event_ids in links.frame_to_events.items():
        for event_id in event_ids:
            if frame_id not in links.event_to_frames.get(event_id, ()):
                violations.append(
                    f"frame {frame_id} -> event {event_id} has no reverse link"
                )
    for event_id, frame_ids in links.event_to_frames.items():
        for frame_id in frame_ids:
            if event_id not in links.frame_to_events.get(frame_id, ()):
                violations.append(
                    f"event {event_id} -> frame {frame_id} has no reverse link"
                )

    listed = set()
    for owner, event_ids in links.summary_to_events.items():
        for event_id in event_ids:
            listed.add(event_id)
            mapped = links.event_to_summary.get(event_id)
            if mapped != owner:
                violations.append(
                    f"event {event_id} maps to summary {mapped}, expected {owner}"
                )
    if summary_id not in links.summary_to_events:
        violations.append(f"summary {summary_id} has no event list")
    for event_id in links.event_to_summary:
        if event_id not in listed:
            violations.append(f"event {event_id} is not listed by any summary")
    return violations


def verify_bidirectional_links(links: BidirectionalLinks, summary_id: str) -> None:
    violations = find_link_violations(links, summary_id)
    if violations:
        error = Error(
            code=ErrorCode.GRAPH_INCONSISTENCY,
            message=f"Evidence links for {summary_id} are inconsistent",
            context=tuple(("violation", v) for v in violations),
        )
        raise GraphInconsistencyError(error)


# =============================================================================
# REFERENCE
# =============================================================================

def build_reference(
    summary: ActivitySummary,
    events: Sequence[ActivityEvent],
    frames: Sequence[FrameMetadata],
    config: Optional[EngineConfig] = None,
    context: Optional[TemporalContext] = None,
    scene_signal: Optional[SceneSignal] = None
) -> EvidenceReference:
    """
    Build the full evidence reference of a summary.

    `events` is the wider event stream; non-key events only contribute
    corroboration factors to the confidence propagation.
    """
    config = config or EngineConfig()
    context = context or summary.context

    graph = build_evidence_graph(summary)
    links = links_from_graph(graph, summary.summary_id)
    verify_bidirectional_links(links, summary.summary_id)

    correlated = find_temporally_correlated_frames(
        summary.session, frames, config.correlation,
        context=context, scene_signal=scene_signal,
    )
    propagation = propagate(summary, events, frames, config.confidence)

    logger.debug(
        "Reference %s: %d events, %d direct frames, %d correlated",
        summary.summary_id, len(links.event_to_frames),
        len(links.frame_to_events), len(correlated),
    )
    return EvidenceReference(
        summary_id=summary.summary_id,
        session_id=summary.session.session_id,
        direct_evidence_frames=direct_evidence_frames(summary),
        correlated_frames=correlated,
        event_evidence_map={
            e.event_id: e.evidence_frames for e in unique_key_events(summary)
        },
        bidirectional_links=links,
        confidence_propagation=propagation,
    )


# =============================================================================
# EXPORT & METRICS
# =============================================================================

@dataclass(frozen=True)
class EvidenceGraphMetrics:
    """Structural metrics of an exported evidence graph."""
    node_count: int
    edge_count: int
    density: float
    component_count: int
    event_count: int
    frame_count: int
    orphan_event_count: int
    orphan_frame_count: int


def to_networkx(reference: EvidenceReference) -> nx.DiGraph:
    """Export a reference, including correlated frames, as a DiGraph."""
    graph = nx.DiGraph()
    links = reference.bidirectional_links
    root = _node(SUMMARY, reference.summary_id)
    graph.add_node(root, kind=SUMMARY, ref=reference.summary_id)
    for event_id in links.summary_to_events.get(reference.summary_id, ()):
        event_node = _node(EVENT, event_id)
        graph.add_node(event_node, kind=EVENT, ref=event_id)
        graph.add_edge(root, event_node, relation=EXPLAINS)
        for frame_id in links.event_to_frames.get(event_id, ()):
            graph.add_node(_node(FRAME, frame_id), kind=FRAME, ref=frame_id)
            graph.add_edge(event_node, _node(FRAME, frame_id), relation=CITES)
    for correlated in reference.correlated_frames:
        frame_node = _node(FRAME, correlated.frame_id)
        if frame_node not in graph:
            graph.add_node(frame_node, kind=FRAME, ref=correlated.frame_id)
        graph.add_edge(root, frame_node, relation=CORRELATED,
                       score=correlated.correlation_score)
    return graph


def compute_graph_metrics(graph: nx.DiGraph) -> EvidenceGraphMetrics:
    kinds = nx.get_node_attributes(graph, "kind")
    event_nodes = [n for n, k in kinds.items() if k == EVENT]
    orphans = sum(
        1 for n in event_nodes
        if not any(kinds.get(s) == FRAME for s in graph.successors(n))
    )
    frame_nodes = [n for n, k in kinds.items() if k == FRAME]
    # A frame is orphaned when no event cites it (correlated only).
    orphan_frames = sum(
        1 for n in frame_nodes
        if not any(graph.edges[p, n].get("relation") == CITES for p in graph.predecessors(n))
    )
    node_count = graph.number_of_nodes()
    return EvidenceGraphMetrics(
        node_count=node_count,
        edge_count=graph.number_of_edges(),
        density=nx.density(graph) if node_count > 1 else 0.0,
        component_count=nx.number_weakly_connected_components(graph) if node_count else 0,
        event_count=len(event_nodes),
        frame_count=len(frame_nodes),
        orphan_event_count=orphans,
        orphan_frame_count=orphan_frames,
    )
