"""Tunable thresholds for the liveness pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ValidatorThresholds:
    min_confidence: float = 0.3
    min_area: float = 0.005
    max_area: float = 0.9
    min_aspect_ratio: float = 0.5
    max_aspect_ratio: float = 1.2
    max_center_distance: float = 0.6
    min_eye_points: int = 4
    min_mouth_points: int = 6


@dataclass(frozen=True)
class FeatureThresholds:
    ear_closed: float = 0.15  # EAR mapped to openness 0
    ear_span: float = 0.15
    mar_neutral: float = 0.3  # MAR mapped to smile intensity 0
    mar_span: float = 0.5
    excellent_above: float = 0.8
    good_above: float = 0.6
    fair_above: float = 0.4
    missing_landmark_score: float = 0.5


@dataclass(frozen=True)
class TrackerThresholds:
    blink_openness: float = 0.3
    blink_debounce_s: float = 0.5
    smile_intensity: float = 0.6
    smile_debounce_s: float = 1.0
    head_movement_delta: float = 0.1
    head_movement_debounce_s: float = 0.5
    gaze_yaw: float = 0.2  # radians either side of straight ahead
    gaze_debounce_s: float = 0.5


@dataclass(frozen=True)
class ScanConfig:
    scan_duration_s: float = 5.0
    tick_interval_s: float = 0.1
    history_cap: int = 50
    validator: ValidatorThresholds = field(default_factory=ValidatorThresholds)
    features: FeatureThresholds = field(default_factory=FeatureThresholds)
    tracker: TrackerThresholds = field(default_factory=TrackerThresholds)


__all__ = ["FeatureThresholds", "ScanConfig", "TrackerThresholds", "ValidatorThresholds"]
