"""Shared fixtures: synthetic detections, samples and a fake camera."""
from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

import numpy as np
import pytest

from scanner.app.errors import PermissionDeniedError
from scanner.app.liveness.models import (
    BoundingBox,
    FaceDetection,
    FaceSample,
    HeadPose,
    Landmarks,
    QualityGrade,
)

CENTERED_BOX = BoundingBox.from_center(0.5, 0.5, 0.4, 0.45)


def eye_points(ear: float) -> List[Tuple[float, float]]:
    """Six-point eye contour whose EAR equals ``ear`` (horizontal span 1)."""

    h = ear / 2.0
    return [(0.0, 0.0), (0.33, h), (0.66, h), (1.0, 0.0), (0.66, -h), (0.33, -h)]


def mouth_points(mar: float) -> List[Tuple[float, float]]:
    """Eight-point outer-lip contour whose MAR equals ``mar``."""

    v = mar / 2.0
    return [
        (0.0, 0.0),
        (0.15, v / 2.0),
        (0.3, v),
        (0.7, v),
        (1.0, 0.0),
        (0.7, -v),
        (0.3, -v),
        (0.15, -v / 2.0),
    ]


def landmarks_for(eye_openness: float = 0.8, smile_intensity: float = 0.0) -> Landmarks:
    ear = 0.15 + eye_openness * 0.15
    mar = 0.3 + smile_intensity * 0.5
    return Landmarks.from_points(
        left_eye=eye_points(ear),
        right_eye=eye_points(ear),
        nose=[(0.5, 0.4), (0.5, 0.5), (0.5, 0.6)],
        mouth=mouth_points(mar),
        left_eyebrow=[(0.1, 0.2), (0.2, 0.15), (0.3, 0.2)],
        right_eyebrow=[(0.7, 0.2), (0.8, 0.15), (0.9, 0.2)],
    )


def detection_for(
    *,
    eye_openness: float = 0.8,
    smile_intensity: float = 0.0,
    head_pose: Optional[HeadPose] = None,
    confidence: float = 0.9,
    box: BoundingBox = CENTERED_BOX,
) -> FaceDetection:
    return FaceDetection(
        confidence=confidence,
        bounding_box=box,
        landmarks=landmarks_for(eye_openness, smile_intensity),
        head_pose=head_pose,
    )


def sample_at(
    timestamp: float,
    *,
    eye_openness: float = 0.8,
    smile_intensity: float = 0.0,
    head_pose: Optional[HeadPose] = None,
    confidence: float = 0.9,
    quality: QualityGrade = QualityGrade.EXCELLENT,
) -> FaceSample:
    return FaceSample(
        timestamp=timestamp,
        confidence=confidence,
        bounding_box=CENTERED_BOX,
        quality=quality,
        eye_openness=eye_openness,
        smile_intensity=smile_intensity,
        head_pose=head_pose or HeadPose(),
    )


def lively_scan_frames() -> List[Tuple[float, float, float, HeadPose]]:
    """50 frames over 5s: blinking every 5 frames, two head shifts 1.5s apart, one smile."""

    shifted = HeadPose(pitch=0.1, yaw=0.1, roll=0.1)
    frames = []
    for i in range(50):
        t = i * 0.1
        eye = 0.8 if (i // 5) % 2 == 0 else 0.1
        smile = 0.8 if i == 25 else 0.0
        pose = shifted if 20 <= i < 35 else HeadPose()
        frames.append((t, eye, smile, pose))
    return frames


@pytest.fixture
def make_detection():
    return detection_for


@pytest.fixture
def make_sample():
    return sample_at


@pytest.fixture
def make_landmarks():
    return landmarks_for


@pytest.fixture
def lively_frames():
    return lively_scan_frames()


class FakeCamera:
    """Stands in for CameraService: yields numbered dummy frames at a fixed pace."""

    def __init__(self, *, allow: bool = True, interval: float = 0.01, access_delay: float = 0.0) -> None:
        self.allow = allow
        self.interval = interval
        self.access_delay = access_delay
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.started = False

    async def ensure_access(self) -> None:
        if self.access_delay:
            await asyncio.sleep(self.access_delay)
        if not self.allow:
            raise PermissionDeniedError("camera_permission_denied")

    async def frames(self):
        t = 0.0
        while True:
            await asyncio.sleep(self.interval)
            t += self.interval
            yield np.zeros((4, 4, 3), dtype=np.uint8), t

    async def preview_stream(self):
        while True:
            await asyncio.sleep(self.interval)
            yield b""


@pytest.fixture
def fake_camera():
    return FakeCamera
