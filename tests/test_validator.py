import logging

import pytest

from scanner.app.liveness.models import BoundingBox, FaceDetection, Landmarks
from scanner.app.liveness.validator import FaceValidator, RejectionReason


def _landmarks(eye_points=4, mouth_points=6):
    return Landmarks.from_points(
        left_eye=[(0.1 * i, 0.0) for i in range(eye_points)],
        right_eye=[(0.1 * i, 0.0) for i in range(eye_points)],
        mouth=[(0.1 * i, 0.5) for i in range(mouth_points)],
    )


def _detection(confidence=0.9, box=None, landmarks="default"):
    if landmarks == "default":
        landmarks = _landmarks()
    return FaceDetection(
        confidence=confidence,
        bounding_box=box or BoundingBox.from_center(0.5, 0.5, 0.4, 0.45),
        landmarks=landmarks,
    )


# Every limit sits exactly on its threshold: confidence 0.3, area 0.005,
# aspect 0.5, centre distance 0.6, four eye points and six mouth points.
BOUNDARY_BOX = BoundingBox.from_center(0.5, 1.1, 0.05, 0.1)


def test_accepts_detection_exactly_on_every_threshold():
    validator = FaceValidator()
    det = _detection(confidence=0.3, box=BOUNDARY_BOX)
    assert validator.check(det) is None
    assert validator.validate(det)


def test_accepts_typical_face():
    assert FaceValidator().validate(_detection())


def test_missing_detection():
    assert FaceValidator().check(None) == RejectionReason.NO_DETECTION
    assert not FaceValidator().validate(None)


@pytest.mark.parametrize(
    "det, reason",
    [
        (_detection(confidence=0.29, box=BOUNDARY_BOX), RejectionReason.LOW_CONFIDENCE),
        (_detection(box=BoundingBox.from_center(0.5, 0.5, 0.045, 0.09)), RejectionReason.INVALID_SIZE),
        (_detection(box=BoundingBox(0.0, 0.0, 0.95, 1.0)), RejectionReason.INVALID_SIZE),
        (_detection(box=BoundingBox.from_center(0.5, 0.5, 0.06, 0.125)), RejectionReason.INVALID_ASPECT_RATIO),
        (_detection(box=BoundingBox.from_center(0.5, 0.5, 0.52, 0.4)), RejectionReason.INVALID_ASPECT_RATIO),
        (_detection(box=BoundingBox.from_center(0.5, 1.11, 0.05, 0.1)), RejectionReason.OFF_CENTER),
        (_detection(landmarks=None), RejectionReason.MISSING_LANDMARKS),
        (_detection(landmarks=_landmarks(eye_points=3)), RejectionReason.INCOMPLETE_LANDMARKS),
        (_detection(landmarks=_landmarks(mouth_points=5)), RejectionReason.INCOMPLETE_LANDMARKS),
    ],
)
def test_rejects_each_threshold_crossing(det, reason):
    assert FaceValidator().check(det) == reason


def test_one_missing_eye_is_incomplete():
    landmarks = Landmarks.from_points(
        left_eye=[(0.1 * i, 0.0) for i in range(6)],
        mouth=[(0.1 * i, 0.5) for i in range(8)],
    )
    assert FaceValidator().check(_detection(landmarks=landmarks)) == RejectionReason.INCOMPLETE_LANDMARKS


def test_zero_height_box_rejected():
    det = _detection(box=BoundingBox(0.4, 0.4, 0.2, 0.0))
    assert FaceValidator().check(det) in (RejectionReason.INVALID_SIZE, RejectionReason.INVALID_ASPECT_RATIO)


def test_rejection_is_logged(caplog):
    caplog.set_level(logging.DEBUG, logger="scanner.app.liveness.validator")
    FaceValidator().check(_detection(confidence=0.1))
    assert "low_confidence" in caplog.text
