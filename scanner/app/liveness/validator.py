"""Gate that drops detections unlikely to be a real face."""
from __future__ import annotations

import enum
import logging
from typing import Optional

from .models import FaceDetection
from .thresholds import ValidatorThresholds

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


class RejectionReason(str, enum.Enum):
    NO_DETECTION = "no_detection"
    LOW_CONFIDENCE = "low_confidence"
    INVALID_SIZE = "invalid_size"
    INVALID_ASPECT_RATIO = "invalid_aspect_ratio"
    OFF_CENTER = "off_center"
    MISSING_LANDMARKS = "missing_landmarks"
    INCOMPLETE_LANDMARKS = "incomplete_landmarks"
    OUT_OF_ORDER = "out_of_order"


def _within(value: float, lo: float, hi: float) -> bool:
    return lo - _EPSILON <= value <= hi + _EPSILON


class FaceValidator:
    """Rejects detections from objects, partial faces and far-off-center boxes."""

    def __init__(self, thresholds: Optional[ValidatorThresholds] = None) -> None:
        self.thresholds = thresholds or ValidatorThresholds()

    def validate(self, detection: Optional[FaceDetection]) -> bool:
        return self.check(detection) is None

    def check(self, detection: Optional[FaceDetection]) -> Optional[RejectionReason]:
        reason = self._evaluate(detection)
        if reason is not None and detection is not None:
            logger.debug(
                "Face detection rejected reason=%s confidence=%.2f bbox=%s",
                reason.value,
                detection.confidence,
                detection.bounding_box,
            )
        return reason

    def _evaluate(self, detection: Optional[FaceDetection]) -> Optional[RejectionReason]:
        t = self.thresholds
        if detection is None:
            return RejectionReason.NO_DETECTION

        if detection.confidence < t.min_confidence - _EPSILON:
            return RejectionReason.LOW_CONFIDENCE

        box = detection.bounding_box
        if not _within(box.area, t.min_area, t.max_area):
            return RejectionReason.INVALID_SIZE

        aspect = box.aspect_ratio
        if aspect is None or not _within(aspect, t.min_aspect_ratio, t.max_aspect_ratio):
            return RejectionReason.INVALID_ASPECT_RATIO

        if box.distance_from_frame_center() > t.max_center_distance + _EPSILON:
            return RejectionReason.OFF_CENTER

        landmarks = detection.landmarks
        if landmarks is None:
            return RejectionReason.MISSING_LANDMARKS
        has_eyes = len(landmarks.left_eye) >= t.min_eye_points and len(landmarks.right_eye) >= t.min_eye_points
        has_mouth = len(landmarks.mouth) >= t.min_mouth_points
        if not (has_eyes and has_mouth):
            return RejectionReason.INCOMPLETE_LANDMARKS
        return None


__all__ = ["FaceValidator", "RejectionReason"]
