"""Shared scanner state definitions."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ScanPhase(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    FINALIZED = "finalized"


@dataclass
class ScannerEvent:
    """Event payload distributed to UI clients over the local WebSocket."""

    type: str
    data: Dict[str, Any]
    phase: ScanPhase
    error: Optional[str] = None


__all__ = ["ScanPhase", "ScannerEvent"]
