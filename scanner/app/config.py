"""Central configuration for the liveness scanner service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .liveness.thresholds import ScanConfig, TrackerThresholds, ValidatorThresholds

ROOT_DIR = Path(__file__).resolve().parents[2]
DEFAULT_ENV_FILE = ROOT_DIR / ".env"


class Settings(BaseSettings):
    """Environment-driven settings for scanner subsystems."""

    model_config = SettingsConfigDict(
        env_file=str(DEFAULT_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    scanner_host: str = Field("0.0.0.0", description="Host interface for local FastAPI server")
    scanner_port: int = Field(5000, description="Port for FastAPI server")

    camera_index: int = Field(0, description="OpenCV device index of the front camera")
    camera_enable_hardware: bool = Field(
        False, description="Open the physical camera (disable for headless dev without a device)"
    )
    preview_frame_width: int = Field(640, description="Preview width for MJPEG streaming")
    preview_frame_height: int = Field(480, description="Preview height for MJPEG streaming")
    preview_fps: int = Field(15, description="Target FPS for preview stream")

    detector_confidence: float = Field(0.5, description="Minimum MediaPipe face detector confidence")
    face_detector_model_path: Path = Field(
        ROOT_DIR / "models" / "blaze_face_short_range.tflite", description="MediaPipe Tasks face detector asset"
    )
    face_landmarker_model_path: Path = Field(
        ROOT_DIR / "models" / "face_landmarker.task", description="MediaPipe Tasks face landmarker asset"
    )

    scan_duration_s: float = Field(5.0, description="Wall-clock length of one liveness scan")
    tick_interval_s: float = Field(0.1, description="Period of the progress/guidance driver")
    history_cap: int = Field(50, description="Samples retained per movement history")

    min_face_confidence: float = Field(0.3, description="Validator confidence floor")
    max_center_distance: float = Field(0.6, description="Validator limit on box-center offset")
    blink_debounce_s: float = Field(0.5, description="Minimum spacing between counted blinks")
    smile_debounce_s: float = Field(1.0, description="Minimum spacing between counted smiles")
    head_movement_debounce_s: float = Field(0.5, description="Minimum spacing between counted head movements")

    log_level: str = Field("INFO", description="Logging level for scanner")

    def scan_config(self) -> ScanConfig:
        """Algorithm configuration derived from the env-facing tunables."""

        return ScanConfig(
            scan_duration_s=self.scan_duration_s,
            tick_interval_s=self.tick_interval_s,
            history_cap=self.history_cap,
            validator=ValidatorThresholds(
                min_confidence=self.min_face_confidence,
                max_center_distance=self.max_center_distance,
            ),
            tracker=TrackerThresholds(
                blink_debounce_s=self.blink_debounce_s,
                smile_debounce_s=self.smile_debounce_s,
                head_movement_debounce_s=self.head_movement_debounce_s,
            ),
        )


@lru_cache()
def get_settings(override_env_file: Optional[Path] = None) -> Settings:
    """Cached Settings instance; accepts optional env override for tests."""

    if override_env_file:
        return Settings(_env_file=str(override_env_file))
    return Settings()
