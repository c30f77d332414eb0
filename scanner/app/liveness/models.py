"""Value types shared by the liveness pipeline."""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

Point = Tuple[float, float]


class QualityGrade(str, enum.Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"

    @property
    def weight(self) -> float:
        return _QUALITY_WEIGHTS[self]


_QUALITY_WEIGHTS = {
    QualityGrade.EXCELLENT: 1.0,
    QualityGrade.GOOD: 0.8,
    QualityGrade.FAIR: 0.6,
    QualityGrade.POOR: 0.4,
}


@dataclass(frozen=True)
class BoundingBox:
    """Face rectangle in normalized frame coordinates (origin + size)."""

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_center(cls, cx: float, cy: float, width: float, height: float) -> "BoundingBox":
        return cls(x=cx - width / 2.0, y=cy - height / 2.0, width=width, height=height)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> Optional[float]:
        if self.height <= 0:
            return None
        return self.width / self.height

    @property
    def center(self) -> Point:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def distance_from_frame_center(self) -> float:
        cx, cy = self.center
        return math.hypot(cx - 0.5, cy - 0.5)


@dataclass(frozen=True)
class Landmarks:
    left_eye: Tuple[Point, ...] = ()
    right_eye: Tuple[Point, ...] = ()
    nose: Tuple[Point, ...] = ()
    mouth: Tuple[Point, ...] = ()
    left_eyebrow: Tuple[Point, ...] = ()
    right_eyebrow: Tuple[Point, ...] = ()

    @classmethod
    def from_points(
        cls,
        *,
        left_eye: Sequence[Point] = (),
        right_eye: Sequence[Point] = (),
        nose: Sequence[Point] = (),
        mouth: Sequence[Point] = (),
        left_eyebrow: Sequence[Point] = (),
        right_eyebrow: Sequence[Point] = (),
    ) -> "Landmarks":
        def _freeze(points: Sequence[Point]) -> Tuple[Point, ...]:
            return tuple((float(px), float(py)) for px, py in points)

        return cls(
            left_eye=_freeze(left_eye),
            right_eye=_freeze(right_eye),
            nose=_freeze(nose),
            mouth=_freeze(mouth),
            left_eyebrow=_freeze(left_eyebrow),
            right_eyebrow=_freeze(right_eyebrow),
        )


@dataclass(frozen=True)
class HeadPose:
    pitch: float = 0.0
    yaw: float = 0.0
    roll: float = 0.0

    def delta(self, other: "HeadPose") -> float:
        """Sum of absolute per-axis differences."""

        return abs(self.pitch - other.pitch) + abs(self.yaw - other.yaw) + abs(self.roll - other.roll)

    def magnitude(self) -> float:
        return abs(self.pitch) + abs(self.yaw) + abs(self.roll)


@dataclass(frozen=True)
class FaceDetection:
    """Raw detector output for a single frame."""

    confidence: float
    bounding_box: BoundingBox
    landmarks: Optional[Landmarks] = None
    head_pose: Optional[HeadPose] = None


@dataclass(frozen=True)
class FaceSample:
    timestamp: float
    confidence: float
    bounding_box: BoundingBox
    quality: QualityGrade
    landmarks: Optional[Landmarks] = None
    movement_score: float = 0.0
    eye_openness: float = 0.0
    smile_intensity: float = 0.0
    head_pose: HeadPose = field(default_factory=HeadPose)


@dataclass(frozen=True)
class LivenessResult:
    confidence: float
    quality: QualityGrade
    liveness_score: float
    timestamp: float
    sample_count: int = 0

    def as_dict(self) -> dict:
        return {
            "confidence": self.confidence,
            "quality": self.quality.value,
            "liveness_score": self.liveness_score,
            "timestamp": self.timestamp,
            "sample_count": self.sample_count,
        }


def clamp(val: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, val))


__all__ = [
    "BoundingBox",
    "FaceDetection",
    "FaceSample",
    "HeadPose",
    "Landmarks",
    "LivenessResult",
    "Point",
    "QualityGrade",
    "clamp",
]
