"""Single-scan state machine tying validation, tracking, guidance and scoring together."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from ..errors import InvalidConfigurationError
from ..state import ScanPhase
from .features import FeatureExtractor
from .guidance import GuidanceStateMachine, GuidanceStep
from .models import FaceDetection, FaceSample, LivenessResult, QualityGrade
from .scorer import LivenessScorer, ScoreBreakdown
from .thresholds import ScanConfig
from .tracker import MovementTracker, MovementTracking
from .validator import FaceValidator, RejectionReason

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


@dataclass(frozen=True)
class ScanSnapshot:
    """Read-only view of a session handed to UI consumers."""

    phase: ScanPhase
    scan_progress: float
    guidance_step: GuidanceStep
    guidance_instruction: str
    guidance_progress: float
    face_detected: bool
    sample_count: int
    result: Optional[LivenessResult] = None

    def as_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "scan_progress": self.scan_progress,
            "guidance_step": self.guidance_step.name.lower(),
            "guidance_instruction": self.guidance_instruction,
            "guidance_icon": self.guidance_step.icon,
            "guidance_progress": self.guidance_progress,
            "face_detected": self.face_detected,
            "sample_count": self.sample_count,
            "result": self.result.as_dict() if self.result else None,
        }


class ScanSession:
    """Accumulates face samples between start and finalization.

    Not thread-safe: exactly one owner drives ``process_detection`` and
    ``tick``. Once finalized, frames and ticks are ignored until ``start`` is
    called again.
    """

    def __init__(self, config: Optional[ScanConfig] = None, *, clock: Callable[[], float] = time.time) -> None:
        self.config = config or ScanConfig()
        self._clock = clock
        self.validator = FaceValidator(self.config.validator)
        self.extractor = FeatureExtractor(self.config.features)
        self.tracker = MovementTracker(self.config.tracker, history_cap=self.config.history_cap)
        self.guidance = GuidanceStateMachine(self.config.tick_interval_s)
        self.scorer = LivenessScorer()

        self.phase = ScanPhase.IDLE
        self.scan_progress = 0.0
        self.face_detected = False
        self.start_time: Optional[float] = None
        self.result: Optional[LivenessResult] = None
        self.breakdown: Optional[ScoreBreakdown] = None
        self.last_rejection: Optional[RejectionReason] = None
        self._samples: List[FaceSample] = []
        self._elapsed = 0.0

    @property
    def samples(self) -> Tuple[FaceSample, ...]:
        return tuple(self._samples)

    @property
    def tracking(self) -> MovementTracking:
        return self.tracker.tracking

    @property
    def is_scanning(self) -> bool:
        return self.phase == ScanPhase.SCANNING

    def start(self) -> None:
        if self.config.scan_duration_s <= 0:
            raise InvalidConfigurationError(f"scan duration must be positive, got {self.config.scan_duration_s}")
        if self.config.tick_interval_s <= 0:
            raise InvalidConfigurationError(f"tick interval must be positive, got {self.config.tick_interval_s}")

        self._samples.clear()
        self.tracker.reset()
        self.guidance.reset()
        self.scan_progress = 0.0
        self._elapsed = 0.0
        self.face_detected = False
        self.result = None
        self.last_rejection = None
        self.breakdown = None
        self.start_time = self._clock()
        self.phase = ScanPhase.SCANNING
        logger.info("Starting face liveness scan duration=%.1fs", self.config.scan_duration_s)

    def process_detection(self, detection: Optional[FaceDetection], timestamp: float) -> bool:
        """Validate, extract and track one frame; returns True when a sample was recorded."""

        if not self.is_scanning:
            return False

        reason = self.validator.check(detection)
        if reason is None and self._samples and timestamp <= self._samples[-1].timestamp:
            reason = RejectionReason.OUT_OF_ORDER
            logger.debug("Dropping out-of-order frame t=%.3f last=%.3f", timestamp, self._samples[-1].timestamp)
        self.last_rejection = reason
        if reason is not None or detection is None:
            self.face_detected = False
            return False

        sample = self.extractor.extract(detection, timestamp, self._samples[-10:])
        self.tracker.update(sample)
        self._samples.append(sample)
        self.face_detected = True
        return True

    def tick(self) -> Optional[LivenessResult]:
        """Advance guidance and scan progress by one tick interval."""

        if not self.is_scanning:
            return None
        self.guidance.tick()
        self._elapsed += self.config.tick_interval_s
        if self._elapsed >= self.config.scan_duration_s - _EPSILON:
            self.scan_progress = 1.0
            return self._finalize()
        self.scan_progress = min(self._elapsed / self.config.scan_duration_s, 1.0)
        return None

    def stop(self) -> Optional[LivenessResult]:
        """Cancel early; scores whatever has been accumulated. Idempotent."""

        if not self.is_scanning:
            return None
        logger.info("Scan stopped early at progress=%.2f", self.scan_progress)
        return self._finalize()

    def snapshot(self) -> ScanSnapshot:
        return ScanSnapshot(
            phase=self.phase,
            scan_progress=self.scan_progress,
            guidance_step=self.guidance.current_step,
            guidance_instruction=self.guidance.current_step.instruction,
            guidance_progress=self.guidance.step_progress,
            face_detected=self.face_detected,
            sample_count=len(self._samples),
            result=self.result,
        )

    def _finalize(self) -> LivenessResult:
        self.phase = ScanPhase.FINALIZED
        samples = self._samples
        breakdown = self.scorer.score(samples, self.tracking)
        quality = self.scorer.overall_quality(samples) if samples else QualityGrade.POOR
        self.breakdown = breakdown
        self.result = LivenessResult(
            confidence=breakdown.avg_confidence,
            quality=quality,
            liveness_score=breakdown.liveness,
            timestamp=self._clock(),
            sample_count=len(samples),
        )
        logger.info(
            "Face liveness scan complete confidence=%.2f%% quality=%s liveness=%.2f%% frames=%s",
            breakdown.avg_confidence * 100,
            quality.value,
            breakdown.liveness * 100,
            len(samples),
        )
        return self.result


__all__ = ["ScanSession", "ScanSnapshot"]
