"""
Forensic Reporter CLI
=====================

Runs the evidence pipeline over a JSON capture file and reports what it
derived.

COMMANDS:
- sessions: List segmented sessions (and rejected candidates)
- analyze:  Full pipeline output as JSON
- trace:    Evidence trace of one summary (or all summaries)
- verify:   Check the bidirectional link invariant of every reference

The capture file holds "events", "frames", "spans" and an optional
"time_range" ({"start": ..., "end": ...}).

USAGE:
    python -m activity_evidence.forensic [--config FILE] COMMAND CAPTURE
"""
import argparse
import logging
import sys
from typing import List, Optional

from .api.mapper import map_result, map_trace
from .config import EngineConfig
from .core.graph import find_link_violations
from .core.tracer import trace
from .engine import ActivityEvidenceEngine, PipelineResult
from .serialization import CaptureBundle, dumps, load_bundle


def _run(engine: ActivityEvidenceEngine, bundle: CaptureBundle) -> PipelineResult:
    return engine.run(bundle.events, bundle.frames, bundle.spans, bundle.time_range)


def cmd_sessions(engine: ActivityEvidenceEngine, bundle: CaptureBundle, args) -> int:
    result = _run(engine, bundle)
    print("SESSION | START | EVENTS | TYPE | APP")
    print("-" * 80)
    for session in result.sessions:
        print(
            f"{session.session_id} | {session.start_time.isoformat()[:19]} | "
            f"{len(session.events):<3} | {session.session_type.value} | "
            f"{session.primary_application or '-'}"
        )
    for rejected in result.rejected:
        print(f"[SKIP] {len(rejected.event_ids)} events: "
              f"{rejected.error.code.name} ({rejected.error.message})")
    for notice in result.notices:
        print(f"[INFO] {notice.code.name}: {notice.message}")
    return 0


def cmd_analyze(engine: ActivityEvidenceEngine, bundle: CaptureBundle, args) -> int:
    print(dumps(map_result(_run(engine, bundle))))
    return 0


def cmd_trace(engine: ActivityEvidenceEngine, bundle: CaptureBundle, args) -> int:
    result = _run(engine, bundle)
    if not result.analyses:
        print("[!] No sessions in capture window.")
        return 1
    if args.summary_id:
        matches = [a.trace for a in result.analyses
                   if a.summary.summary_id == args.summary_id]
        traces = matches or [trace(args.summary_id, result.analyses[0].reference)]
    else:
        traces = list(result.traces)
    print(dumps([map_trace(t) for t in traces]))
    return 0 if all(t.trace_complete for t in traces) else 2


def cmd_verify(engine: ActivityEvidenceEngine, bundle: CaptureBundle, args) -> int:
    result = _run(engine, bundle)
    errors = 0
    for reference in result.references:
        violations = find_link_violations(reference.bidirectional_links, reference.summary_id)
        for violation in violations:
            print(f"[FAIL] {reference.summary_id}: {violation}")
        errors += len(violations)
    if errors:
        print(f"[FAIL] Found {errors} link violations.")
        return 1
    print(f"[PASS] Verified {len(result.references)} references. Links consistent.")
    return 0


COMMANDS = {
    "sessions": cmd_sessions,
    "analyze": cmd_analyze,
    "trace": cmd_trace,
    "verify": cmd_verify,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Activity evidence forensic reporter")
    parser.add_argument("--config", help="Path to an engine config JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")
    for name in ("sessions", "analyze", "verify"):
        sub = subparsers.add_parser(name)
        sub.add_argument("capture", help="Capture JSON file")
    trace_parser = subparsers.add_parser("trace")
    trace_parser.add_argument("capture", help="Capture JSON file")
    trace_parser.add_argument("--summary-id", help="Trace only this summary")

    args = parser.parse_args(argv)
    if args.command not in COMMANDS:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = EngineConfig.from_json_file(args.config) if args.config else EngineConfig.from_env()
        bundle = load_bundle(args.capture)
    except (OSError, KeyError, ValueError) as e:
        print(f"[!] Cannot load input: {e}", file=sys.stderr)
        return 1

    return COMMANDS[args.command](ActivityEvidenceEngine(config), bundle, args)


if __name__ == "__main__":
    sys.exit(main())
