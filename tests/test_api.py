"""
API Tests
=========

Exercises the HTTP surface with FastAPI's TestClient.
"""

import json

import pytest
from fastapi.testclient import TestClient

from activity_evidence.api.server import app
from tests.fixtures import scenario_events, scenario_frames, scenario_range, scenario_spans


def scenario_payload():
    time_range = scenario_range()
    return {
        "time_range": {"start": time_range.start.isoformat(), "end": time_range.end.isoformat()},
        "events": [
            {
                "event_id": e.event_id,
                "timestamp": e.timestamp.isoformat(),
                "event_type": e.event_type.value,
                "target": e.target,
                "confidence": e.confidence,
                "evidence_frames": list(e.evidence_frames),
                "metadata": e.metadata_dict,
            }
            for e in scenario_events()
        ],
        "frames": [
            {
                "frame_id": f.frame_id,
                "timestamp": f.timestamp.isoformat(),
                "application_name": f.application_name,
                "window_title": f.window_title,
                "ocr_confidence": f.ocr_confidence,
                "image_quality": f.image_quality,
            }
            for f in scenario_frames()
        ],
        "spans": [
            {
                "span_id": s.span_id,
                "kind": s.kind,
                "start_time": s.start_time.isoformat(),
                "end_time": s.end_time.isoformat(),
                "title": s.title,
                "tags": list(s.tags),
            }
            for s in scenario_spans()
        ],
    }


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


class TestEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "online"
        assert response.json()["config"]["segmentation"]["max_event_gap"] == 300.0

    def test_sessions(self, client):
        payload = scenario_payload()
        response = client.post("/api/v1/sessions", json={
            "events": payload["events"], "time_range": payload["time_range"]
        })
        assert response.status_code == 200
        sessions = response.json()["sessions"]
        assert len(sessions) == 1
        assert sessions[0]["session_type"] == "form_filling"
        assert sessions[0]["primary_application"] == "Safari"

    def test_analyze(self, client):
        response = client.post("/api/v1/analyze", json=scenario_payload())
        assert response.status_code == 200
        body = response.json()
        assert len(body["analyses"]) == 1
        analysis = body["analyses"][0]
        assert analysis["context"]["workflow_continuity"]["is_part_of_larger_workflow"] is True
        links = analysis["reference"]["links"]
        assert links["frame_to_events"]["f1"] == ["e1"]
        assert [r["stage"] for r in body["audit"]][0] == "segment"
        assert set(body["stage_totals_ms"]) == {
            "segment", "context", "summarize", "reference", "trace"
        }
        assert body["notices"] == []
        first_event = analysis["session"]["events"][0]
        assert first_event["metadata"] == {"app_name": "Safari"}

    def test_trace(self, client):
        analysis = client.post("/api/v1/analyze", json=scenario_payload()).json()["analyses"][0]
        payload = scenario_payload()
        payload["summary_id"] = analysis["summary"]["summary_id"]
        response = client.post("/api/v1/trace", json=payload)
        assert response.status_code == 200
        assert response.json()["trace"]["trace_complete"] is True

    def test_trace_unknown_summary(self, client):
        payload = scenario_payload()
        payload["summary_id"] = "sum_unknown"
        body = client.post("/api/v1/trace", json=payload).json()
        assert body["trace"]["trace_complete"] is False
        assert body["trace"]["trace_path"] == []
        assert body["trace"]["error"]["code"] == "TRACE_MISMATCH"
        assert body["analysis"] is None


class TestValidation:

    def test_confidence_out_of_range_is_rejected(self, client):
        payload = scenario_payload()
        payload["events"][0]["confidence"] = 1.5
        assert client.post("/api/v1/analyze", json=payload).status_code == 422

    def test_unknown_event_type_is_rejected(self, client):
        payload = scenario_payload()
        payload["events"][0]["event_type"] = "telepathy"
        assert client.post("/api/v1/analyze", json=payload).status_code == 422

    def test_inverted_time_range_is_bad_request(self, client):
        payload = scenario_payload()
        payload["time_range"] = {
            "start": payload["time_range"]["end"], "end": payload["time_range"]["start"]
        }
        response = client.post("/api/v1/analyze", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_TIME_RANGE"

    def test_inverted_span_is_bad_request(self, client):
        payload = scenario_payload()
        span = payload["spans"][0]
        span["start_time"], span["end_time"] = span["end_time"], span["start_time"]
        response = client.post("/api/v1/analyze", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_INPUT"

    def test_config_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "engine.json"
        path.write_text(json.dumps({"segmentation": {"max_event_gap": 120}}))
        monkeypatch.setenv("AEE_CONFIG_PATH", str(path))
        with TestClient(app) as c:
            config = c.get("/health").json()["config"]
        assert config["segmentation"]["max_event_gap"] == 120
