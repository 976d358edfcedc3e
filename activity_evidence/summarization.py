"""
Summary Assembly
================

Seam between the evidence core and the narrative stage.

This module picks the key events, scores the narrative stage's own
confidence and hands prose generation to a renderer. Rendering
(templates, Markdown, language models) lives outside this package; the
default renderer only produces one neutral sentence.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import numpy as np

from .contracts.base import clamp_unit, derive_id
from .contracts.events import (
    ActivityEvent, ActivityEventType, ActivitySession, ActivitySummary,
    TemporalContext
)

# Higher is more important when choosing key events.
EVENT_IMPORTANCE = {
    ActivityEventType.FORM_SUBMISSION: 10,
    ActivityEventType.ERROR_DISPLAY: 9,
    ActivityEventType.MODAL_APPEARANCE: 8,
    ActivityEventType.DATA_ENTRY: 7,
    ActivityEventType.FIELD_CHANGE: 6,
    ActivityEventType.NAVIGATION: 5,
    ActivityEventType.APP_SWITCH: 4,
    ActivityEventType.CLICK: 3,
}

DEFAULT_MAX_KEY_EVENTS = 5


@dataclass(frozen=True)
class RenderedNarrative:
    narrative: str
    outcomes: Tuple[str, ...] = field(default_factory=tuple)


Renderer = Callable[[ActivitySession, TemporalContext], RenderedNarrative]


def default_renderer(session: ActivitySession, context: TemporalContext) -> RenderedNarrative:
    app = session.primary_application or "an unknown application"
    minutes = session.duration / 60.0
    return RenderedNarrative(
        narrative=(
            f"{session.session_type.value.replace('_', ' ').capitalize()} in {app}: "
            f"{len(session.events)} events over {minutes:.1f} minutes."
        )
    )


def select_key_events(
    session: ActivitySession,
    max_key_events: int = DEFAULT_MAX_KEY_EVENTS
) -> Tuple[ActivityEvent, ...]:
    """Most important events (ties: higher confidence, then earlier), in time order."""
    ranked = sorted(
        enumerate(session.events),
        key=lambda item: (
            -EVENT_IMPORTANCE.get(item[1].event_type, 0),
            -item[1].confidence,
            item[0],
        ),
    )
    chosen = sorted(ranked[:max(1, max_key_events)], key=lambda item: item[0])
    return tuple(event for _, event in chosen)


def narrative_confidence(session: ActivitySession, context: TemporalContext) -> float:
    """Mean of event confidence, duration, continuity and event count signals."""
    signals = [
        float(np.mean([e.confidence for e in session.events])),
        min(session.duration / 300.0, 1.0),
        context.workflow_continuity.continuity_score,
        min(len(session.events) / 10.0, 1.0),
    ]
    return clamp_unit(np.mean(signals))


def assemble_summary(
    session: ActivitySession,
    context: TemporalContext,
    renderer: Optional[Renderer] = None,
    max_key_events: int = DEFAULT_MAX_KEY_EVENTS
) -> ActivitySummary:
    rendered = (renderer or default_renderer)(session, context)
    return ActivitySummary(
        summary_id=derive_id("sum", session.session_id),
        session=session,
        narrative=rendered.narrative,
        key_events=select_key_events(session, max_key_events),
        context=context,
        confidence=narrative_confidence(session, context),
        outcomes=tuple(rendered.outcomes),
    )
