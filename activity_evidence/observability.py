"""
Observability & Audit

Request-scoped audit trail for one pipeline run.

WHAT THIS MODULE MUST NOT DO:
=============================
- Modify pipeline behavior
- Filter or interpret results (only record them)
- Hold state across runs (one PipelineAudit per run)

Process-level logging goes through the stdlib `logging` loggers of each
module; this module only records per-stage timings and counts.
"""

from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple
import logging
import threading
import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageRecord:
    """One completed stage invocation."""
    stage: str
    duration_ms: float
    input_count: int
    output_count: int
    subject: Optional[str] = None


class _StageProbe:
    """Handed to the caller of PipelineAudit.stage to report the output size."""

    def __init__(self):
        self.output_count = 0


class PipelineAudit:
    """
    Append-only collector of StageRecords.

    Safe to share between the worker threads of a single run.
    """

    def __init__(self):
        self._records: List[StageRecord] = []
        self._lock = threading.Lock()

    @contextmanager
    def stage(
        self,
        name: str,
        input_count: int,
        subject: Optional[str] = None
    ) -> Iterator[_StageProbe]:
        probe = _StageProbe()
        started = time.perf_counter()
        try:
            yield probe
        finally:
            record = StageRecord(
                stage=name,
                duration_ms=(time.perf_counter() - started) * 1000.0,
                input_count=input_count,
                output_count=probe.output_count,
                subject=subject,
            )
            with self._lock:
                self._records.append(record)
            logger.debug(
                "stage=%s subject=%s in=%d out=%d %.2fms",
                name, subject, input_count, probe.output_count, record.duration_ms,
            )

    @property
    def records(self) -> Tuple[StageRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def totals(self) -> Dict[str, float]:
        """Total milliseconds per stage name."""
        totals: Dict[str, float] = {}
        for record in self.records:
            totals[record.stage] = totals.get(record.stage, 0.0) + record.duration_ms
        return totals
