"""
Activity Evidence Engine: API Server
====================================

Stateless HTTP surface over the evidence pipeline. Every request carries
its own telemetry; nothing is stored between requests.

Endpoints:
- GET  /health            -> Liveness and active configuration
- POST /api/v1/sessions   -> Segment events into sessions
- POST /api/v1/analyze    -> Full pipeline (contexts, summaries, references, traces)
- POST /api/v1/trace      -> Evidence trace of one summary

Usage:
    uvicorn activity_evidence.api.server:app --reload
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from ..config import EngineConfig
from ..contracts.base import Error, ErrorCode
from ..core.tracer import trace
from ..engine import ActivityEvidenceEngine
from .mapper import map_analysis, map_result, map_session, map_trace
from .schemas import AnalyzeRequest, SegmentRequest, TraceRequest

logger = logging.getLogger(__name__)

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

engine_instance: Optional[ActivityEvidenceEngine] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration (AEE_CONFIG_PATH) and build the engine."""
    global engine_instance
    config = EngineConfig.from_env()
    engine_instance = ActivityEvidenceEngine(config)
    logger.info("Evidence engine initialized")

    yield

    logger.info("Shutting down evidence engine")
    engine_instance = None


app = FastAPI(
    title="Activity Evidence Engine API",
    version="0.1.0",
    description="Session segmentation, evidence linking and confidence tracing",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def _engine() -> ActivityEvidenceEngine:
    if not engine_instance:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine_instance


def _bad_request(code: ErrorCode, exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=Error(code=code, message=str(exc)).to_dict())


def _bundle(request: SegmentRequest):
    """Convert a request into contracts; contract violations become 400s."""
    try:
        time_range = request.time_range.to_contract()
    except ValueError as e:
        raise _bad_request(ErrorCode.INVALID_TIME_RANGE, e)
    try:
        events = [e.to_contract() for e in request.events]
        frames = [f.to_contract() for f in getattr(request, "frames", [])]
        spans = [s.to_contract() for s in getattr(request, "spans", [])]
    except ValueError as e:
        raise _bad_request(ErrorCode.INVALID_INPUT, e)
    return events, frames, spans, time_range


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    engine = _engine()
    return {"status": "online", "config": engine.config.to_dict()}


@app.post("/api/v1/sessions")
async def segment_sessions(request: SegmentRequest):
    events, _, _, time_range = _bundle(request)
    sessions = _engine().segment(events, time_range)
    return {"sessions": [map_session(s) for s in sessions]}


@app.post("/api/v1/analyze")
async def analyze_window(request: AnalyzeRequest):
    events, frames, spans, time_range = _bundle(request)
    result = _engine().run(events, frames, spans, time_range)
    return map_result(result)


@app.post("/api/v1/trace")
async def trace_summary(request: TraceRequest):
    events, frames, spans, time_range = _bundle(request)
    result = _engine().run(events, frames, spans, time_range)
    if not result.analyses:
        raise HTTPException(status_code=404, detail="No sessions in the requested window")

    for analysis in result.analyses:
        if analysis.summary.summary_id == request.summary_id:
            return {"trace": map_trace(analysis.trace), "analysis": map_analysis(analysis)}

    # Unknown id: the tracer reports an incomplete, empty trace.
    mismatch = trace(request.summary_id, result.analyses[0].reference)
    return {"trace": map_trace(mismatch), "analysis": None}
