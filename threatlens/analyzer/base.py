"""Shared analyzer engine: runs an ordered list of detectors over a target."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..constants import DEFAULT_ANALYZER_CONFIDENCE, AnalyzerKind
from ..errors import AnalyzerUnavailable, InvalidInput
from .models import AnalyzerOutcome, AnalyzerResult, RiskFactor, Target, Unavailable
from .rules import DetectionContext, Detector

logger = logging.getLogger(__name__)


class BaseAnalyzer:
    """Runs detectors and folds their clamped scores into one AnalyzerResult.

    Subclasses set ``kind``, provide ``default_detectors()`` and build the
    ``DetectionContext`` in ``prepare()``. ``prepare()`` raises
    ``AnalyzerUnavailable`` when there is nothing to analyze and
    ``InvalidInput`` when the target is malformed.
    """

    kind: AnalyzerKind

    def __init__(
        self,
        detectors: Optional[Sequence[Detector]] = None,
        weights: Optional[dict[str, float]] = None,
    ):
        self.detectors: list[Detector] = list(detectors) if detectors is not None else self.default_detectors()
        self.weights = dict(weights or {})

    def default_detectors(self) -> list[Detector]:
        return []

    async def prepare(self, target: Target) -> DetectionContext:
        raise NotImplementedError

    async def analyze(self, target: Target) -> AnalyzerOutcome:
        """Analyze a target. Never raises except InvalidInput."""
        try:
            context = await self.prepare(target)
        except InvalidInput:
            raise
        except AnalyzerUnavailable as exc:
            return Unavailable(self.kind, exc.reason)
        except Exception as exc:
            logger.warning("%s analyzer failed to prepare %s: %s", self.kind.value, target.url, exc)
            return Unavailable(self.kind, f"analyzer error: {exc}")

        try:
            return self.run(context)
        except InvalidInput:
            raise
        except Exception as exc:
            logger.warning("%s analyzer failed for %s: %s", self.kind.value, target.url, exc)
            return Unavailable(self.kind, f"analyzer error: {exc}")

    def run(self, context: DetectionContext) -> AnalyzerResult:
        """Apply every detector and build the result (synchronous, pure)."""
        scores: dict[str, int] = {}
        factors: list[RiskFactor] = []
        recommendations: list[str] = []
        metadata: dict = {}

        for detector in self.detectors:
            name = getattr(detector, "name", type(detector).__name__)
            try:
                signal = detector.detect(context)
            except Exception as exc:
                logger.warning(
                    "Detector %s failed for %s: %s", name, context.target.url, exc
                )
                continue

            scores[signal.name] = signal.clamped_score
            factors.extend(signal.factors or [])
            recommendations.extend(signal.recommendations or [])

            for key, value in (signal.metadata or {}).items():
                if value is None:
                    continue
                if isinstance(value, list):
                    existing = metadata.get(key, [])
                    metadata[key] = (existing if isinstance(existing, list) else []) + value
                else:
                    metadata[key] = value

        score = self.combine_scores(scores, metadata)
        metadata.setdefault("detector_scores", dict(scores))
        return AnalyzerResult(
            kind=self.kind,
            score=score,
            factors=tuple(factors),
            confidence=self.confidence(factors, metadata),
            signals=metadata,
            recommendations=tuple(dict.fromkeys(recommendations)),
        )

    def combine_scores(self, scores: dict[str, int], metadata: dict) -> int:
        """Bounded weighted sum of detector scores."""
        total = sum(score * self.weights.get(name, 1.0) for name, score in scores.items())
        return max(0, min(100, int(round(total))))

    def confidence(self, factors: list[RiskFactor], metadata: dict) -> float:
        return DEFAULT_ANALYZER_CONFIDENCE[self.kind]
