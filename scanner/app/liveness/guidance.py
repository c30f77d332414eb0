"""Cyclic on-screen guidance prompts shown during a scan."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


class GuidanceStep(enum.IntEnum):
    CENTER = 0
    SMILE = 1
    LOOK_LEFT = 2
    LOOK_RIGHT = 3
    LOOK_UP = 4
    LOOK_DOWN = 5
    BLINK = 6

    @property
    def instruction(self) -> str:
        return GUIDANCE_TABLE[self].instruction

    @property
    def icon(self) -> str:
        return GUIDANCE_TABLE[self].icon

    @property
    def duration(self) -> float:
        return GUIDANCE_TABLE[self].duration

    def next(self) -> "GuidanceStep":
        return GuidanceStep((self + 1) % len(GUIDANCE_TABLE))


@dataclass(frozen=True)
class GuidancePrompt:
    instruction: str
    icon: str
    duration: float


# Indexed by GuidanceStep ordinal.
GUIDANCE_TABLE = (
    GuidancePrompt("Center your face", "face.smiling", 1.5),
    GuidancePrompt("Smile naturally", "face.smiling.fill", 1.0),
    GuidancePrompt("Look to the left", "arrow.left", 0.8),
    GuidancePrompt("Look to the right", "arrow.right", 0.8),
    GuidancePrompt("Look up", "arrow.up", 0.8),
    GuidancePrompt("Look down", "arrow.down", 0.8),
    GuidancePrompt("Blink naturally", "eye", 0.5),
)


class GuidanceStateMachine:
    """Advances through GUIDANCE_TABLE on fixed ticks; never affects scoring."""

    def __init__(self, tick_interval: float = 0.1) -> None:
        self.tick_interval = tick_interval
        self.current_step = GuidanceStep.CENTER
        self.step_progress = 0.0
        self._step_elapsed = 0.0

    def reset(self) -> None:
        self.current_step = GuidanceStep.CENTER
        self.step_progress = 0.0
        self._step_elapsed = 0.0

    def tick(self) -> bool:
        """Advance one tick; returns True when the step changed."""

        duration = self.current_step.duration
        self._step_elapsed += self.tick_interval
        if self._step_elapsed >= duration - _EPSILON:
            self.step_progress = 1.0
            self._advance()
            return True
        self.step_progress = min(self._step_elapsed / duration, 1.0)
        return False

    def _advance(self) -> None:
        self.current_step = self.current_step.next()
        self.step_progress = 0.0
        self._step_elapsed = 0.0
        logger.debug("Moving to guidance step: %s", self.current_step.instruction)


__all__ = ["GUIDANCE_TABLE", "GuidanceStateMachine", "GuidanceStep", "GuidancePrompt"]
