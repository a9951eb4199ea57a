"""
Tests for the operator API.
"""

import pytest
from fastapi.testclient import TestClient

from conftest import ManualTimerQueue, RecordingAudioOutput, ScriptedSource
from models.config import Config
from runtime.context import build_context
from web.app import create_app


def _client(source=None, audio=None):
    ctx = build_context(
        Config(),
        source=source or ScriptedSource(),
        audio=audio or RecordingAudioOutput(),
        timers=ManualTimerQueue(),
    )
    return TestClient(create_app(ctx)), ctx


@pytest.fixture
def client():
    test_client, ctx = _client()
    yield test_client
    ctx.shutdown()


class TestStatus:
    def test_idle_status(self, client):
        resp = client.get("/api/drill/status")
        assert resp.status_code == 200
        body = resp.json()
        assert body["drill_state"] == "idle"
        assert body["session_state"] == "setup"
        assert body["status_text"] == "DRILL_ENDED"
        assert body["drill"] == "faceoff"
        assert body["measurements"] == []


class TestSession:
    def test_start_count_session(self, client):
        resp = client.post("/api/session/start", json={"type": "count", "value": 3})
        assert resp.status_code == 200
        body = resp.json()
        assert body["session_state"] == "running"
        assert body["drill_state"] == "countdown"
        assert body["session_type"] == "count"
        assert body["session_value"] == 3

    def test_start_timed_shooting_session(self, client):
        resp = client.post("/api/session/start", json={
            "type": "timed", "value": 2, "drill": "shooting", "mode": "placement",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["drill"] == "shooting"
        assert body["mode"] == "placement"
        assert body["remaining_seconds"] == 120

    def test_start_twice_conflicts(self, client):
        client.post("/api/session/start", json={"type": "count", "value": 3})
        resp = client.post("/api/session/start", json={"type": "count", "value": 3})
        assert resp.status_code == 409
        assert resp.json()["error"] == "INVALID_STATE"

    def test_invalid_target_rejected(self, client):
        resp = client.post("/api/session/start", json={"type": "count", "value": 0})
        assert resp.status_code == 422
        assert resp.json()["error"] == "INVALID_CONFIGURATION"
        assert client.get("/api/drill/status").json()["session_state"] == "setup"

    def test_unknown_mode_rejected(self, client):
        resp = client.post("/api/session/start", json={"type": "count", "value": 3, "mode": "juggling"})
        assert resp.status_code == 422

    def test_camera_failure_is_unavailable(self):
        test_client, ctx = _client(source=ScriptedSource(fail_open=True))
        resp = test_client.post("/api/session/start", json={"type": "count", "value": 3})
        assert resp.status_code == 503
        body = resp.json()
        assert body["error"] == "ACQUISITION_FAILED"
        assert body["details"]["device"] == "test-cam"

    def test_abort_then_new_session(self, client):
        client.post("/api/session/start", json={"type": "count", "value": 3})
        body = client.post("/api/session/abort").json()
        assert body["session_state"] == "finished"
        assert body["drill_state"] == "idle"

        body = client.post("/api/session/new").json()
        assert body["session_state"] == "setup"

    def test_end_without_session_conflicts(self, client):
        assert client.post("/api/session/end").status_code == 409

    def test_assignment_sets_target(self, client):
        resp = client.post("/api/session/assignment", json={"id": "a-1", "notes": "12 shots top shelf"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["assignment_id"] == "a-1"
        assert body["drill"] == "shooting"
        assert body["session_value"] == 12

    def test_zone_without_pending_shot(self, client):
        resp = client.post("/api/drill/zone", json={"zone": 3})
        assert resp.status_code == 409

    def test_zone_needs_index_or_tap(self, client):
        resp = client.post("/api/drill/zone", json={"x": 200})
        assert resp.status_code == 422
        assert resp.json()["error"] == "INVALID_CONFIGURATION"

    def test_tap_without_pending_shot(self, client):
        assert client.post("/api/drill/zone", json={"x": 200, "y": 150}).status_code == 409
        client.post("/api/session/start", json={
            "type": "count", "value": 2, "drill": "shooting", "mode": "placement",
        })
        assert client.post("/api/drill/zone", json={"x": 200, "y": 150}).status_code == 409
        resp = client.post("/api/drill/zone", json={"x": 5, "y": 5})
        assert resp.status_code == 422


class TestCalibration:
    def test_roi_rect_roundtrip(self, client):
        resp = client.put("/api/calibration/roi", json={"x": 100, "y": 80, "width": 200, "height": 150})
        assert resp.status_code == 200
        assert resp.json() == {
            "x": 100, "y": 80, "width": 200, "height": 150,
            "display_width": 480, "display_height": 360,
        }
        assert client.get("/api/calibration/roi").json()["x"] == 100

    def test_roi_quad(self, client):
        quad = {
            "tl": {"x": 140, "y": 100}, "tr": {"x": 340, "y": 100},
            "bl": {"x": 140, "y": 260}, "br": {"x": 340, "y": 260},
        }
        body = client.put("/api/calibration/roi", json={"quad": quad}).json()
        assert (body["x"], body["y"], body["width"], body["height"]) == (140, 100, 200, 160)

    def test_roi_requires_shape(self, client):
        assert client.put("/api/calibration/roi", json={"x": 10}).status_code == 422

    def test_roi_adjust(self, client):
        client.put("/api/calibration/roi", json={"x": 100, "y": 100, "width": 100, "height": 100})
        body = client.patch("/api/calibration/roi", json={"dx": 20, "dy": -10}).json()
        assert (body["x"], body["y"]) == (120, 90)

        body = client.patch("/api/calibration/roi", json={"width": 50, "height": 60}).json()
        assert (body["width"], body["height"]) == (50, 60)

        body = client.patch("/api/calibration/roi", json={"corner": "br", "dx": 30, "dy": 40}).json()
        assert (body["x"], body["y"], body["width"], body["height"]) == (120, 90, 80, 100)

        assert client.patch("/api/calibration/roi", json={"corner": "middle"}).status_code == 422

    def test_roi_locked_while_running(self, client):
        client.post("/api/session/start", json={"type": "count", "value": 3})
        resp = client.put("/api/calibration/roi", json={"x": 0, "y": 0, "width": 50, "height": 50})
        assert resp.status_code == 409

    def test_preview_needs_camera(self, client):
        assert client.get("/api/preview.jpg").status_code == 503

        assert client.post("/api/session/calibrate").json()["session_state"] == "calibration"
        resp = client.get("/api/preview.jpg")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/jpeg"
        assert resp.content[:2] == b"\xff\xd8"
