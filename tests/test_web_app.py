"""Flask 接口测试（摄像头、检测器与调度器均为替身）"""

from unittest.mock import MagicMock

import numpy as np
import pytest

import web_app
from models.data_models import FailureCause
from models.errors import ResourceAcquisitionFailure
from web_app import WebDetectionSystem


class ScriptedDetector:
    def __init__(self, build):
        self.build = build
        self.ears = []

    def detect(self, frame):
        ear = self.ears.pop(0)
        if ear is None:
            return None
        return self.build(ear)

    def close(self):
        pass


class ManualTicker:
    def __init__(self, tick):
        self.tick = tick

    def start(self):
        return MagicMock()


def _camera():
    camera = MagicMock()
    camera.read.return_value = np.zeros((480, 640, 3), dtype=np.uint8)
    return camera


@pytest.fixture
def detector(landmarks_for):
    return ScriptedDetector(landmarks_for)


@pytest.fixture
def web_system(monkeypatch, detector):
    s = WebDetectionSystem(
        camera_factory=lambda cfg: _camera(),
        detector_factory=lambda cfg: detector,
        ticker_factory=ManualTicker,
    )
    s.renderer._use_pil = False
    monkeypatch.setattr(web_app, "system", s)
    return s


@pytest.fixture
def client(web_system):
    web_app.app.config["TESTING"] = True
    return web_app.app.test_client()


def _feed(system, detector, ears):
    detector.ears.extend(ears)
    for _ in ears:
        system.session.loop.tick()


class TestLifecycleApi:
    def test_initial_state(self, client):
        data = client.get("/api/state").get_json()
        assert data["state"] == "idle"
        assert data["is_drowsy"] is False
        assert data["alarm_armed"] is False
        assert data["ear_threshold"] == 0.22
        assert data["consec_frames"] == 15

    def test_start_and_stop(self, client):
        resp = client.post("/api/start").get_json()
        assert resp["success"] is True
        assert resp["state"] == "active"

        resp = client.post("/api/stop").get_json()
        assert resp["success"] is True
        assert client.get("/api/state").get_json()["state"] == "idle"

    def test_camera_failure_reports_error(self, monkeypatch, client, web_system):
        def fail(cfg):
            raise ResourceAcquisitionFailure(FailureCause.PERMISSION_DENIED)

        monkeypatch.setattr(web_system.session, "_camera_factory", fail)
        resp = client.post("/api/start").get_json()
        assert resp["success"] is False
        assert "权限" in resp["message"]

        data = client.get("/api/state").get_json()
        assert data["state"] == "error"
        assert data["error_cause"] == "permission_denied"

    def test_start_in_error_retries(self, monkeypatch, client, web_system):
        def fail(cfg):
            raise ResourceAcquisitionFailure(FailureCause.CAMERA_UNAVAILABLE)

        monkeypatch.setattr(web_system.session, "_camera_factory", fail)
        client.post("/api/start")
        monkeypatch.setattr(web_system.session, "_camera_factory", lambda cfg: _camera())

        resp = client.post("/api/start").get_json()
        assert resp["success"] is True
        assert resp["state"] == "active"

    def test_retry_when_idle(self, client):
        resp = client.post("/api/retry").get_json()
        assert resp["success"] is False
        assert resp["state"] == "idle"


class TestDetectionApi:
    def test_drowsy_state_exposed(self, client, web_system, detector):
        client.post("/api/start")
        _feed(web_system, detector, [0.1] * 16)

        data = client.get("/api/state").get_json()
        assert data["is_drowsy"] is True
        assert data["alarm_armed"] is True
        assert data["eye_closed"] is True
        assert data["frame_count"] == 16
        assert web_system.get_frame() is not None

    def test_mute_toggle_keeps_verdict(self, client, web_system, detector):
        client.post("/api/start")
        _feed(web_system, detector, [0.1] * 16)

        resp = client.post("/api/mute").get_json()
        assert resp["muted"] is True
        data = client.get("/api/state").get_json()
        assert data["is_drowsy"] is True
        assert data["alarm_armed"] is False

    def test_mute_explicit(self, client):
        assert client.post("/api/mute", json={"muted": True}).get_json()["muted"] is True
        assert client.post("/api/mute", json={"muted": True}).get_json()["muted"] is True
        assert client.post("/api/mute", json={"muted": False}).get_json()["muted"] is False

    def test_no_face_flag(self, client, web_system, detector):
        client.post("/api/start")
        _feed(web_system, detector, [0.3, None])
        assert client.get("/api/state").get_json()["face_detected"] is False


class TestConfigApi:
    def test_update(self, client):
        resp = client.post("/api/config", json={"ear_threshold": 0.2, "consec_frames": 10})
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["ear_threshold"] == 0.2
        assert body["consec_frames"] == 10

    def test_invalid_rejected(self, client):
        resp = client.post("/api/config", json={"consec_frames": 0})
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        assert client.get("/api/state").get_json()["consec_frames"] == 15


class TestLogsApi:
    def test_lifecycle_logged(self, client, web_system, detector):
        client.post("/api/start")
        _feed(web_system, detector, [0.1] * 16)
        client.post("/api/stop")

        body = client.get("/api/logs").get_json()
        messages = [entry["message"] for entry in body["logs"]]
        assert body["total"] == len(messages)
        assert "系统启动，摄像头已开启" in messages
        assert any("疲劳驾驶警告" in m for m in messages)
        assert messages[-1] == "系统已停止"

    def test_since(self, client):
        client.post("/api/start")
        total = client.get("/api/logs").get_json()["total"]
        client.post("/api/stop")

        body = client.get(f"/api/logs?since={total}").get_json()
        assert [entry["message"] for entry in body["logs"]] == ["系统已停止"]

    def test_log_cap(self, web_system):
        for i in range(WebDetectionSystem.MAX_LOG_ENTRIES + 10):
            web_system._add_log("info", str(i))
        logs, total = web_system.get_logs()
        assert total == WebDetectionSystem.MAX_LOG_ENTRIES
        assert logs[-1]["message"] == str(WebDetectionSystem.MAX_LOG_ENTRIES + 9)

    def test_mute_in_idle_logs_only_mute(self, client):
        client.post("/api/mute")
        messages = [entry["message"] for entry in client.get("/api/logs").get_json()["logs"]]
        assert messages == ["报警已静音"]
