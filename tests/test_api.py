import time
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from scanner.app import main
from scanner.app.config import Settings
from scanner.app.sensors.camera import CameraService
from scanner.app.session_manager import ScanManager
from scanner.app.state import ScannerEvent, ScanPhase


@pytest.fixture
def offline_client(monkeypatch):
    """App wired to a camera with hardware disabled, as in headless dev."""

    manager = ScanManager(settings=Settings(), camera=CameraService(enable_hardware=False))
    monkeypatch.setattr(main, "manager", manager)
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def scanning_client(monkeypatch, fake_camera, make_detection):
    detection = make_detection()
    manager = ScanManager(
        settings=Settings(scan_duration_s=0.3, tick_interval_s=0.05),
        camera=fake_camera(),
        detect_face=lambda image: detection,
    )
    monkeypatch.setattr(main, "manager", manager)
    with TestClient(main.app) as client:
        yield client


def test_healthz(offline_client):
    response = offline_client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "phase": "idle"}


def test_state_before_scan(offline_client):
    body = offline_client.get("/scan/state").json()
    assert body["phase"] == "idle"
    assert body["guidance_instruction"] == "Center your face"
    assert body["result"] is None


def test_result_pending(offline_client):
    response = offline_client.get("/scan/result")
    assert response.status_code == 404
    assert response.json() == {"status": "pending"}


def test_start_without_camera_is_forbidden(offline_client):
    response = offline_client.post("/scan/start")
    assert response.status_code == 403
    body = response.json()
    assert body["status"] == "permission_denied"
    assert "camera_hardware_disabled" in body["error"]
    assert offline_client.get("/scan/state").json()["phase"] == "idle"


def test_stop_when_idle(offline_client):
    response = offline_client.post("/scan/stop")
    assert response.status_code == 200
    assert response.json() == {"status": "idle", "result": None}


def test_invalid_configuration(monkeypatch, fake_camera):
    manager = ScanManager(settings=Settings(scan_duration_s=0), camera=fake_camera())
    monkeypatch.setattr(main, "manager", manager)
    with TestClient(main.app) as client:
        response = client.post("/scan/start")
    assert response.status_code == 422
    assert response.json()["status"] == "invalid_configuration"


def test_full_scan(scanning_client):
    response = scanning_client.post("/scan/start")
    assert response.status_code == 200
    assert response.json()["status"] == "scanning"
    assert scanning_client.post("/scan/start").status_code == 409

    deadline = time.monotonic() + 3.0
    response = scanning_client.get("/scan/result")
    while response.status_code == 404 and time.monotonic() < deadline:
        time.sleep(0.05)
        response = scanning_client.get("/scan/result")
    assert response.status_code == 200
    result = response.json()
    assert result["sample_count"] > 0
    assert 0.0 <= result["liveness_score"] <= 1.0

    stopped = scanning_client.post("/scan/stop").json()
    assert stopped["status"] == "finalized"
    assert stopped["result"] == result


def test_stop_early_returns_result(monkeypatch, fake_camera):
    manager = ScanManager(settings=Settings(scan_duration_s=30.0), camera=fake_camera())
    monkeypatch.setattr(main, "manager", manager)
    with TestClient(main.app) as client:
        client.post("/scan/start")
        body = client.post("/scan/stop").json()
        again = client.post("/scan/stop").json()
    assert body["status"] == "finalized"
    assert body["result"]["sample_count"] == 0
    assert again == body


def test_event_payload_shape():
    event = ScannerEvent(type="face", data={"face_detected": True}, phase=ScanPhase.SCANNING)
    assert main._event_payload(event) == {"type": "face", "phase": "scanning", "data": {"face_detected": True}}
    failed = ScannerEvent(type="state", data={}, phase=ScanPhase.IDLE, error="camera_unavailable")
    assert main._event_payload(failed)["error"] == "camera_unavailable"


def test_mjpeg_part_framing():
    part = main._mjpeg_part(b"\xff\xd8abc")
    assert part.startswith(b"--frame\r\nContent-Type: image/jpeg\r\nContent-Length: 5\r\n\r\n")
    assert part.endswith(b"\xff\xd8abc\r\n")


def test_shutdown_releases_detector(monkeypatch, fake_camera):
    detector = MagicMock()
    manager = ScanManager(settings=Settings(), camera=fake_camera(), detect_face=detector.detect)
    monkeypatch.setattr(main, "manager", manager)
    monkeypatch.setattr(main, "detector", detector)
    with TestClient(main.app) as client:
        assert client.get("/healthz").status_code == 200
        detector.close.assert_not_called()
    detector.close.assert_called_once_with()


def test_build_detector_skipped_without_hardware():
    assert main._build_detector(Settings(camera_enable_hardware=False)) is None


def test_build_detector_uses_configured_assets(monkeypatch, tmp_path):
    from detector import mediapipe_detector

    built = {}

    class RecordingDetector:
        def __init__(self, **kwargs):
            built.update(kwargs)

    monkeypatch.setattr(mediapipe_detector, "MediaPipeFaceDetector", RecordingDetector)
    settings = Settings(
        camera_enable_hardware=True,
        detector_confidence=0.7,
        face_detector_model_path=tmp_path / "detector.tflite",
        face_landmarker_model_path=tmp_path / "landmarker.task",
    )
    assert isinstance(main._build_detector(settings), RecordingDetector)
    assert built == {
        "min_confidence": 0.7,
        "detector_model_path": tmp_path / "detector.tflite",
        "landmarker_model_path": tmp_path / "landmarker.task",
    }
