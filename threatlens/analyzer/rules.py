"""Rule-based building blocks for the analyzers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from .models import AppMetadata, RiskFactor, Target


@dataclass
class DetectionContext:
    """Shared context passed to each detector of an analyzer."""

    target: Target
    text: str = ""
    host: str = ""
    app: Optional[AppMetadata] = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass
class SignalResult:
    """Outcome of a single detector."""

    name: str
    score: int = 0
    factors: list[RiskFactor] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    recommendations: list[str] = field(default_factory=list)

    @property
    def clamped_score(self) -> int:
        return max(0, min(100, int(round(self.score))))


class Detector(Protocol):
    """Interface for signal detectors."""

    name: str

    def detect(self, context: DetectionContext) -> SignalResult:  # pragma: no cover - interface
        ...
