"""Debounced blink/smile/head/gaze event counting over bounded histories."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from .models import FaceSample, HeadPose
from .thresholds import TrackerThresholds

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_CAP = 50


def _history(cap: int) -> Deque:
    return deque(maxlen=cap)


@dataclass
class MovementTracking:
    """Counters, last-event timestamps and capped histories for one scan."""

    history_cap: int = DEFAULT_HISTORY_CAP
    blink_count: int = 0
    smile_count: int = 0
    head_movement_count: int = 0
    gaze_change_count: int = 0
    last_blink_time: Optional[float] = None
    last_smile_time: Optional[float] = None
    last_head_movement_time: Optional[float] = None
    last_gaze_change_time: Optional[float] = None
    last_gaze_direction: Optional[str] = None
    eye_openness_history: Deque[float] = field(init=False)
    smile_intensity_history: Deque[float] = field(init=False)
    head_pose_history: Deque[HeadPose] = field(init=False)

    def __post_init__(self) -> None:
        self.eye_openness_history = _history(self.history_cap)
        self.smile_intensity_history = _history(self.history_cap)
        self.head_pose_history = _history(self.history_cap)


def _elapsed_since(last: Optional[float], now: float, window: float) -> bool:
    return last is None or now - last > window


class MovementTracker:
    """Sole writer of a MovementTracking instance."""

    def __init__(self, thresholds: Optional[TrackerThresholds] = None, *, history_cap: int = DEFAULT_HISTORY_CAP) -> None:
        self.thresholds = thresholds or TrackerThresholds()
        self.history_cap = history_cap
        self.tracking = MovementTracking(history_cap=history_cap)

    def reset(self) -> None:
        self.tracking = MovementTracking(history_cap=self.history_cap)

    def update(self, sample: FaceSample) -> None:
        t = self.thresholds
        tr = self.tracking
        now = sample.timestamp

        if sample.eye_openness < t.blink_openness and _elapsed_since(tr.last_blink_time, now, t.blink_debounce_s):
            tr.blink_count += 1
            tr.last_blink_time = now
            logger.debug("Blink detected count=%s t=%.2f", tr.blink_count, now)

        if sample.smile_intensity > t.smile_intensity and _elapsed_since(tr.last_smile_time, now, t.smile_debounce_s):
            tr.smile_count += 1
            tr.last_smile_time = now
            logger.debug("Smile detected count=%s t=%.2f", tr.smile_count, now)

        if tr.head_pose_history:
            pose_change = sample.head_pose.delta(tr.head_pose_history[-1])
            if pose_change > t.head_movement_delta and _elapsed_since(
                tr.last_head_movement_time, now, t.head_movement_debounce_s
            ):
                tr.head_movement_count += 1
                tr.last_head_movement_time = now
                logger.debug("Head movement detected count=%s delta=%.3f", tr.head_movement_count, pose_change)

        direction = self._gaze_direction(sample.head_pose)
        if tr.last_gaze_direction is not None and direction != tr.last_gaze_direction:
            if _elapsed_since(tr.last_gaze_change_time, now, t.gaze_debounce_s):
                tr.gaze_change_count += 1
                tr.last_gaze_change_time = now
        tr.last_gaze_direction = direction

        tr.eye_openness_history.append(sample.eye_openness)
        tr.smile_intensity_history.append(sample.smile_intensity)
        tr.head_pose_history.append(sample.head_pose)

    def _gaze_direction(self, pose: HeadPose) -> str:
        if pose.yaw < -self.thresholds.gaze_yaw:
            return "left"
        if pose.yaw > self.thresholds.gaze_yaw:
            return "right"
        return "center"


__all__ = ["MovementTracker", "MovementTracking"]
