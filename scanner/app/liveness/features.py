"""Per-frame feature derivation: eye/mouth ratios, pose, quality and movement."""
from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .models import FaceDetection, FaceSample, HeadPose, Landmarks, Point, QualityGrade, clamp
from .thresholds import FeatureThresholds

NATURAL_WINDOW = 10
NATURAL_MIN_SAMPLES = 5
NATURAL_DEFAULT = 0.5
CLOSED_EYE_OPENNESS = 0.3
SIGNIFICANT_POSE_DELTA = 0.1


def _distance(a: Point, b: Point) -> float:
    return float(np.linalg.norm(np.subtract(a, b)))


def eye_aspect_ratio(points: Sequence[Point]) -> float:
    """EAR over a 6-point contour that starts at the outer corner."""

    if len(points) < 6:
        return 0.0
    horizontal = _distance(points[0], points[3])
    if horizontal < 1e-9:
        return 0.0
    vertical = _distance(points[1], points[5]) + _distance(points[2], points[4])
    return vertical / (2.0 * horizontal)


def mouth_aspect_ratio(points: Sequence[Point]) -> float:
    """MAR over an 8-point outer-lip contour that starts at a mouth corner."""

    if len(points) < 8:
        return 0.0
    horizontal = _distance(points[0], points[4])
    if horizontal < 1e-9:
        return 0.0
    vertical = _distance(points[2], points[6]) + _distance(points[3], points[5])
    return vertical / (2.0 * horizontal)


def _interval_score(mean_interval: float, best: tuple, acceptable: tuple) -> float:
    if best[0] <= mean_interval <= best[1]:
        return 1.0
    if acceptable[0] <= mean_interval <= acceptable[1]:
        return 0.5
    return 0.0


def _mean_interval(timestamps: Sequence[float]) -> Optional[float]:
    if len(timestamps) < 2:
        return None
    return float(np.mean(np.diff(timestamps)))


class FeatureExtractor:
    """Turns a validated detection into a fully populated FaceSample.

    Extraction is pure: the only state consulted is what the caller passes in,
    so repeated calls with the same inputs return equal samples.
    """

    def __init__(self, thresholds: Optional[FeatureThresholds] = None) -> None:
        self.thresholds = thresholds or FeatureThresholds()

    def extract(
        self,
        detection: FaceDetection,
        timestamp: float,
        recent: Sequence[FaceSample] = (),
    ) -> FaceSample:
        landmarks = detection.landmarks
        eye_openness = self.eye_openness(landmarks)
        smile_intensity = self.smile_intensity(landmarks)
        head_pose = detection.head_pose or HeadPose()
        quality = grade_quality(self.frame_quality_score(detection), self.thresholds)
        movement = self.movement_score(eye_openness, smile_intensity, head_pose, recent)
        return FaceSample(
            timestamp=timestamp,
            confidence=detection.confidence,
            bounding_box=detection.bounding_box,
            quality=quality,
            landmarks=landmarks,
            movement_score=movement,
            eye_openness=eye_openness,
            smile_intensity=smile_intensity,
            head_pose=head_pose,
        )

    def eye_openness(self, landmarks: Optional[Landmarks]) -> float:
        if landmarks is None or not landmarks.left_eye or not landmarks.right_eye:
            return 0.0
        avg_ear = (eye_aspect_ratio(landmarks.left_eye) + eye_aspect_ratio(landmarks.right_eye)) / 2.0
        t = self.thresholds
        return clamp((avg_ear - t.ear_closed) / t.ear_span)

    def smile_intensity(self, landmarks: Optional[Landmarks]) -> float:
        if landmarks is None or not landmarks.mouth:
            return 0.0
        t = self.thresholds
        return clamp((mouth_aspect_ratio(landmarks.mouth) - t.mar_neutral) / t.mar_span)

    def frame_quality_score(self, detection: FaceDetection) -> float:
        box = detection.bounding_box
        size_score = clamp(box.area * 4.0)
        cx, cy = box.center
        centering_score = max(0.0, 1.0 - (abs(cx - 0.5) + abs(cy - 0.5)))
        landmark_score = 1.0 if detection.landmarks is not None else self.thresholds.missing_landmark_score
        return (detection.confidence + size_score + centering_score + landmark_score) / 4.0

    def movement_score(
        self,
        eye_openness: float,
        smile_intensity: float,
        head_pose: HeadPose,
        recent: Sequence[FaceSample] = (),
    ) -> float:
        eye_score = min(eye_openness * 2.0, 1.0)
        head_score = min(head_pose.magnitude() / 0.5, 1.0)
        natural = natural_movement_score(recent)
        score = eye_score * 0.3 + smile_intensity * 0.2 + head_score * 0.3 + natural * 0.2
        return clamp(score)


def natural_movement_score(recent: Sequence[FaceSample]) -> float:
    window = list(recent)[-NATURAL_WINDOW:]
    if len(window) < NATURAL_MIN_SAMPLES:
        return NATURAL_DEFAULT

    variance = float(np.var([s.eye_openness for s in window]))
    variance_score = clamp((variance - 0.01) / 0.05)

    closed = [s.timestamp for s in window if s.eye_openness < CLOSED_EYE_OPENNESS]
    blink_interval = _mean_interval(closed)
    blink_score = 0.0 if blink_interval is None else _interval_score(blink_interval, (2.0, 4.0), (1.0, 6.0))

    moves = [
        cur.timestamp
        for prev, cur in zip(window, window[1:])
        if cur.head_pose.delta(prev.head_pose) > SIGNIFICANT_POSE_DELTA
    ]
    head_interval = _mean_interval(moves)
    head_score = 0.0 if head_interval is None else _interval_score(head_interval, (1.0, 3.0), (0.5, 5.0))

    timing = blink_score * 0.5 + head_score * 0.5
    return clamp(variance_score * 0.5 + timing * 0.5)


def grade_quality(score: float, thresholds: Optional[FeatureThresholds] = None) -> QualityGrade:
    t = thresholds or FeatureThresholds()
    if score > t.excellent_above:
        return QualityGrade.EXCELLENT
    if score > t.good_above:
        return QualityGrade.GOOD
    if score > t.fair_above:
        return QualityGrade.FAIR
    return QualityGrade.POOR


__all__ = [
    "FeatureExtractor",
    "eye_aspect_ratio",
    "grade_quality",
    "mouth_aspect_ratio",
    "natural_movement_score",
]
