"""Weighted multi-factor liveness scoring over a closed sample set."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence

import numpy as np

from .models import FaceSample, QualityGrade, clamp
from .tracker import MovementTracking

EXPECTED_SAMPLES = 50.0
RECENT_WINDOW = 10
PATTERN_WINDOW = 20
SIGNIFICANT_EYE_DELTA = 0.1
SIGNIFICANT_POSE_DELTA = 0.1
CHANGE_DELTA = 0.05
# Population variance of values bounded to [0, 1] never exceeds 0.25.
MAX_VARIANCE = 0.25
ERRATIC_VARIANCE = 0.2
_EPSILON = 1e-9


@dataclass(frozen=True)
class ScoreBreakdown:
    liveness: float = 0.0
    avg_confidence: float = 0.0
    detection_frequency: float = 0.0
    avg_quality: float = 0.0
    movement: float = 0.0
    eye: float = 0.0
    smile: float = 0.0
    head: float = 0.0
    natural: float = 0.0
    pattern: float = 0.0
    anti_spoof: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.var(values))


def _mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return float(np.mean(values))


def _fraction(hits: int, total: int) -> float:
    return hits / total if total > 0 else 0.0


def _moderate_variance(value: float, floor: float, span: float) -> float:
    score = clamp((value - floor) / span)
    if value > ERRATIC_VARIANCE:
        score *= clamp((MAX_VARIANCE - value) / (MAX_VARIANCE - ERRATIC_VARIANCE))
    return score


class LivenessScorer:
    """Scores a finished scan.

    The composite weights confidence (25%), detection frequency (20%), frame
    quality (15%) and behavioral movement (40%). Movement itself blends eye,
    smile, head and naturalness sub-scores; every term is clamped to [0, 1].
    """

    def score(self, samples: Sequence[FaceSample], tracking: MovementTracking) -> ScoreBreakdown:
        samples = list(samples)
        if not samples:
            return ScoreBreakdown()

        avg_confidence = _mean([s.confidence for s in samples])
        frequency = min(len(samples) / EXPECTED_SAMPLES, 1.0)
        avg_quality = _mean([s.quality.weight for s in samples])

        eye = self.eye_score(samples, tracking)
        smile = self.smile_score(samples, tracking)
        head = self.head_score(samples, tracking)
        pattern = self.pattern_score(samples)
        anti_spoof = self.anti_spoof_score(samples)
        natural = clamp(pattern * 0.5 + anti_spoof * 0.5)
        movement = clamp(eye * 0.30 + smile * 0.20 + head * 0.30 + natural * 0.20)

        liveness = clamp(avg_confidence * 0.25 + frequency * 0.20 + avg_quality * 0.15 + movement * 0.40)
        return ScoreBreakdown(
            liveness=liveness,
            avg_confidence=clamp(avg_confidence),
            detection_frequency=frequency,
            avg_quality=clamp(avg_quality),
            movement=movement,
            eye=eye,
            smile=smile,
            head=head,
            natural=natural,
            pattern=pattern,
            anti_spoof=anti_spoof,
        )

    def liveness_score(self, samples: Sequence[FaceSample], tracking: MovementTracking) -> float:
        return self.score(samples, tracking).liveness

    # -- eye ---------------------------------------------------------------

    def eye_score(self, samples: Sequence[FaceSample], tracking: MovementTracking) -> float:
        if not samples:
            return 0.0
        expected_blinks = min(len(samples) / 30.0, 3.0)
        blink = min(tracking.blink_count / expected_blinks, 1.0) if expected_blinks > 0 else 0.0
        spread = min(variance([s.eye_openness for s in samples]) * 10.0, 1.0)
        return clamp(blink * 0.4 + spread * 0.3 + self.eye_variation_score(samples) * 0.3)

    def eye_variation_score(self, samples: Sequence[FaceSample]) -> float:
        if len(samples) < 5:
            return 0.0
        recent = list(samples)[-RECENT_WINDOW:]
        moves = sum(
            1 for prev, cur in zip(recent, recent[1:]) if abs(cur.eye_openness - prev.eye_openness) > SIGNIFICANT_EYE_DELTA
        )
        return min(_fraction(moves, len(recent) - 1) * 2.0, 1.0)

    # -- smile -------------------------------------------------------------

    def smile_score(self, samples: Sequence[FaceSample], tracking: MovementTracking) -> float:
        if not samples:
            return 0.0
        detected = min(tracking.smile_count / 1.0, 1.0)
        intensity = min(_mean([s.smile_intensity for s in samples]) * 1.5, 1.0)
        return clamp(detected * 0.5 + intensity * 0.5)

    # -- head --------------------------------------------------------------

    def head_score(self, samples: Sequence[FaceSample], tracking: MovementTracking) -> float:
        if not samples:
            return 0.0
        movements = min(tracking.head_movement_count / 2.0, 1.0)
        return clamp(movements * 0.4 + self.pose_variation_score(samples) * 0.3 + self.movement_timing_score(samples) * 0.3)

    def pose_variation_score(self, samples: Sequence[FaceSample]) -> float:
        if len(samples) < 5:
            return 0.0
        recent = list(samples)[-RECENT_WINDOW:]
        deltas = [cur.head_pose.delta(prev.head_pose) for prev, cur in zip(recent, recent[1:])]
        return min(_mean(deltas) * 5.0, 1.0)

    def movement_timing_score(self, samples: Sequence[FaceSample]) -> float:
        movement_times: List[float] = [
            cur.timestamp
            for prev, cur in zip(samples, list(samples)[1:])
            if cur.head_pose.delta(prev.head_pose) > SIGNIFICANT_POSE_DELTA
        ]
        if len(movement_times) < 2:
            return 0.0
        avg_interval = float(np.mean(np.diff(movement_times)))
        if 1.0 <= avg_interval <= 3.0:
            return 1.0
        if 0.5 <= avg_interval <= 5.0:
            return 0.5
        return 0.0

    # -- naturalness -------------------------------------------------------

    def pattern_score(self, samples: Sequence[FaceSample]) -> float:
        if len(samples) < 10:
            return 0.0
        recent = list(samples)[-PATTERN_WINDOW:]
        eye = _moderate_variance(variance([s.eye_openness for s in recent]), 0.01, 0.05)
        smile = _moderate_variance(variance([s.smile_intensity for s in recent]), 0.02, 0.08)
        return (eye + smile) / 2.0

    def anti_spoof_score(self, samples: Sequence[FaceSample]) -> float:
        if not samples:
            return 0.0
        score = (
            self.natural_timing_score(samples) * 0.4
            + self.realistic_range_score(samples) * 0.3
            + self.correlation_score(samples) * 0.3
        )
        return clamp(score)

    def natural_timing_score(self, samples: Sequence[FaceSample]) -> float:
        if len(samples) < 5:
            return 0.0
        recent = list(samples)[-RECENT_WINDOW:]
        intervals = [cur.timestamp - prev.timestamp for prev, cur in zip(recent, recent[1:])]
        natural = sum(1 for dt in intervals if 0.1 - _EPSILON <= dt <= 2.0 + _EPSILON)
        return _fraction(natural, len(intervals))

    def realistic_range_score(self, samples: Sequence[FaceSample]) -> float:
        if not samples:
            return 0.0
        eyes = [s.eye_openness for s in samples]
        smiles = [s.smile_intensity for s in samples]
        eye_range = min(max(eyes) - min(eyes), 1.0)
        smile_range = min(max(smiles) - min(smiles), 1.0)
        return (eye_range + smile_range) / 2.0

    def correlation_score(self, samples: Sequence[FaceSample]) -> float:
        if len(samples) < 5:
            return 0.0
        recent = list(samples)[-RECENT_WINDOW:]
        changed = sum(
            1
            for prev, cur in zip(recent, recent[1:])
            if abs(cur.eye_openness - prev.eye_openness) > CHANGE_DELTA
            or abs(cur.smile_intensity - prev.smile_intensity) > CHANGE_DELTA
        )
        return _fraction(changed, len(recent) - 1)

    # -- overall grade -----------------------------------------------------

    def overall_quality(self, samples: Sequence[FaceSample]) -> QualityGrade:
        count = len(samples)
        avg_confidence = _mean([s.confidence for s in samples])
        if count >= 30 and avg_confidence > 0.8:
            return QualityGrade.EXCELLENT
        if count >= 20 and avg_confidence > 0.6:
            return QualityGrade.GOOD
        if count >= 10 and avg_confidence > 0.4:
            return QualityGrade.FAIR
        return QualityGrade.POOR


__all__ = ["LivenessScorer", "ScoreBreakdown", "variance"]
