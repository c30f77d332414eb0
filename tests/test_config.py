import logging

import pytest

from scanner.app.config import Settings, get_settings
from scanner.app.liveness.thresholds import ScanConfig
from scanner.app.logging_config import configure_logging


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults_match_scan_config():
    config = Settings().scan_config()
    assert config == ScanConfig()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("SCAN_DURATION_S", "3.5")
    monkeypatch.setenv("BLINK_DEBOUNCE_S", "0.25")
    monkeypatch.setenv("MIN_FACE_CONFIDENCE", "0.5")
    config = Settings().scan_config()
    assert config.scan_duration_s == 3.5
    assert config.tracker.blink_debounce_s == 0.25
    assert config.validator.min_confidence == 0.5
    # untouched thresholds keep their defaults
    assert config.validator.min_area == 0.005


def test_env_file_override(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("SCANNER_PORT=6123\nCAMERA_ENABLE_HARDWARE=true\n")
    settings = get_settings(env_file)
    assert settings.scanner_port == 6123
    assert settings.camera_enable_hardware is True


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_configure_logging_sets_scanner_level():
    configure_logging("debug")
    try:
        assert logging.getLogger("scanner").level == logging.DEBUG
        assert logging.getLogger("detector").level == logging.DEBUG
    finally:
        configure_logging("INFO")


def test_model_asset_paths(monkeypatch, tmp_path):
    defaults = Settings()
    assert defaults.face_detector_model_path.name == "blaze_face_short_range.tflite"
    assert defaults.face_landmarker_model_path.name == "face_landmarker.task"
    monkeypatch.setenv("FACE_LANDMARKER_MODEL_PATH", str(tmp_path / "landmarker.task"))
    assert Settings().face_landmarker_model_path == tmp_path / "landmarker.task"
