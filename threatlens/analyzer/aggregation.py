"""Aggregation engine: folds analyzer outcomes into one ThreatVerdict."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Mapping, Optional

from ..constants import (
    CATEGORY_BRAND_IMPERSONATION,
    CATEGORY_KNOWN_MALICIOUS,
    CATEGORY_LANGUAGE,
    CATEGORY_LAYOUT,
    CATEGORY_MALWARE,
    CATEGORY_MOBILE_CLONE,
    CATEGORY_NEW_DOMAIN,
    CATEGORY_PHISHING,
    CATEGORY_SAFE,
    CATEGORY_UNDETERMINED,
    DEFAULT_ANALYZER_CONFIDENCE,
    DEFAULT_ANALYZER_WEIGHTS,
    MAX_RECOMMENDATIONS,
    MAX_RISK_FACTORS,
    AnalyzerKind,
    RiskLevel,
    Severity,
)
from ..errors import AggregationInvariantViolation
from .models import AnalyzerOutcome, AnalyzerResult, RiskFactor, Target, ThreatVerdict
from .threat_intel import PatternRule, ThreatIntel, ThreatIntelLoader

logger = logging.getLogger(__name__)

# Order in which analyzer factors and recommendations are collected.
KIND_ORDER = (
    AnalyzerKind.LEXICAL,
    AnalyzerKind.REGISTRATION,
    AnalyzerKind.NLP,
    AnalyzerKind.VISUAL,
    AnalyzerKind.MOBILE,
)

BLOCKED_RECOMMENDATIONS = (
    "IMMEDIATELY LEAVE THIS SITE",
    "Do not enter any personal information",
    "Run antivirus scan",
    "Report this site",
)

PRIMARY_REASONS = {
    CATEGORY_MOBILE_CLONE: "This app appears to imitate a legitimate app from another developer.",
    CATEGORY_BRAND_IMPERSONATION: "This site imitates a well-known brand to gain your trust.",
    CATEGORY_PHISHING: "This content impersonates a trusted organization to obtain your information.",
    CATEGORY_MALWARE: "This target shows signs of distributing malicious software.",
    CATEGORY_LAYOUT: "This page is built like a phishing kit, with hidden or deceptive elements.",
    CATEGORY_LANGUAGE: "This content uses pressure, threats or financial bait typical of scams.",
    CATEGORY_NEW_DOMAIN: "This domain was registered very recently, a common trait of short-lived scam sites.",
    CATEGORY_SAFE: "No significant threats were detected.",
    CATEGORY_UNDETERMINED: "Analysis could not be completed; treat this target with caution.",
}

CATEGORY_RECOMMENDATIONS = {
    CATEGORY_MOBILE_CLONE: ("Install the original app from the official developer instead",),
    CATEGORY_BRAND_IMPERSONATION: ("Navigate to the brand's official website directly",),
    CATEGORY_PHISHING: (
        "Do not enter credentials or personal details",
        "Contact the organization through its official channels",
    ),
    CATEGORY_MALWARE: ("Do not download files from this source", "Run antivirus scan"),
    CATEGORY_LAYOUT: ("Do not submit any forms on this page",),
    CATEGORY_LANGUAGE: ("Take time to verify urgent requests through official channels",),
    CATEGORY_NEW_DOMAIN: ("Be cautious with newly registered domains",),
}

LEVEL_RECOMMENDATIONS = {
    RiskLevel.CRITICAL: ("Leave this site immediately", "Report this site"),
    RiskLevel.HIGH: ("Do not enter personal or payment information", "Report this site"),
    RiskLevel.MEDIUM: ("Proceed with caution and verify the site independently",),
    RiskLevel.LOW: ("Stay alert for unexpected requests for personal information",),
}

TIER_SEVERITY = {
    3: Severity.CRITICAL,
    2: Severity.HIGH,
    1: Severity.MEDIUM,
    0: Severity.MEDIUM,
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _dedupe(items, limit: int) -> tuple:
    return tuple(dict.fromkeys(item for item in items if item))[:limit]


class AggregationEngine:
    """Combines analyzer outcomes, applies overrides and explains the verdict."""

    def __init__(
        self,
        intel: Optional[ThreatIntel] = None,
        weights: Optional[Mapping[AnalyzerKind, float]] = None,
        loader: Optional[ThreatIntelLoader] = None,
    ):
        self._loader = loader
        if intel is None:
            intel = loader.get() if loader is not None else ThreatIntel()
        self.intel = intel
        self.weights = dict(weights or DEFAULT_ANALYZER_WEIGHTS)

    def reload_threat_intel(self) -> str:
        """Reload threat intelligence from file (hot reload). Returns version."""
        if self._loader is None:
            return self.intel.version
        self.intel = self._loader.reload()
        logger.info("Threat intel reloaded: v%s", self.intel.version)
        return self.intel.version

    def combine(
        self,
        target: Target,
        results: Mapping[AnalyzerKind, AnalyzerOutcome],
        now: Optional[datetime] = None,
    ) -> ThreatVerdict:
        """Build the verdict. Never raises; faults yield a best-effort verdict."""
        now = now or datetime.now(timezone.utc)
        # One snapshot per scan so a concurrent reload cannot mix old and new sets.
        intel = self.intel
        try:
            return self._combine(target, results, intel, now)
        except Exception as exc:
            logger.exception("Aggregation failed for %s: %s", target.url, exc)
            return self._fallback(target, results, now)

    def _combine(
        self,
        target: Target,
        results: Mapping[AnalyzerKind, AnalyzerOutcome],
        intel: ThreatIntel,
        now: datetime,
    ) -> ThreatVerdict:
        domain = target.domain
        blocked = intel.indicators.match_blocked(domain)
        if blocked:
            logger.info("Blocked domain %s matched %s", domain, blocked)
            return self._blocked_verdict(target, domain, blocked, now)

        available: dict[AnalyzerKind, AnalyzerResult] = {
            kind: outcome for kind, outcome in results.items() if outcome is not None and outcome.available
        }

        score = self.weighted_score(available)

        pattern_factors, pattern_matches, override_category, score = self._apply_pattern_rules(
            target, intel.pattern_rules, score
        )

        watched = intel.indicators.match_watched(domain)
        if watched:
            pattern_factors.append(RiskFactor(
                "Watch-listed Domain",
                Severity.MEDIUM,
                0.7,
                f"{domain} is under enhanced scrutiny ({watched})",
            ))

        score = self._checked_score(score, target.url)
        level = RiskLevel.from_score(score)
        category = override_category or self.resolve_category(available)

        return ThreatVerdict(
            url=target.url,
            risk_score=score,
            risk_level=level,
            threat_category=category,
            primary_reason=PRIMARY_REASONS.get(
                category, f"This target matches known {category.lower()} patterns."
            ),
            confidence=self.confidence(available),
            risk_factors=self.explain(pattern_factors, available),
            recommended_actions=self.recommend(category, level, available),
            timestamp=now,
            pattern_matches=tuple(pattern_matches),
            analyzers=tuple(kind for kind in KIND_ORDER if kind in available),
        )

    def weighted_score(self, available: Mapping[AnalyzerKind, AnalyzerResult]) -> int:
        """Weighted mean of available analyzer scores; registration shares the lexical slot."""
        slot_scores: dict[AnalyzerKind, float] = {}
        lexical = available.get(AnalyzerKind.LEXICAL)
        registration = available.get(AnalyzerKind.REGISTRATION)
        if lexical is not None and registration is not None:
            slot_scores[AnalyzerKind.LEXICAL] = (lexical.score + registration.score) / 2
        elif lexical is not None:
            slot_scores[AnalyzerKind.LEXICAL] = lexical.score
        elif registration is not None:
            slot_scores[AnalyzerKind.LEXICAL] = registration.score

        for kind in (AnalyzerKind.NLP, AnalyzerKind.VISUAL, AnalyzerKind.MOBILE):
            if kind in available:
                slot_scores[kind] = available[kind].score

        total = 0.0
        weight_sum = 0.0
        for kind, slot_score in slot_scores.items():
            weight = self.weights.get(kind, 0.0)
            if weight <= 0:
                continue
            total += slot_score * weight
            weight_sum += weight
        if weight_sum == 0:
            return 0
        return round_half_up(total / weight_sum)

    def _apply_pattern_rules(self, target: Target, rules, score: int):
        content = (target.content or "").lower()
        app_text = content
        app = target.resolve_app_metadata()
        if app is not None:
            app_text = f"{content}\n{app.app_name}\n{app.description}".lower()

        factors: list[RiskFactor] = []
        matches: list[str] = []
        category: Optional[str] = None
        best_tier = -1
        rule: PatternRule
        for rule in rules:
            rule_matches = rule.match(target.domain, content, app_text)
            if not rule_matches:
                continue
            score = min(100, round_half_up(score * rule.risk_multiplier))
            matches.extend(rule_matches)
            factors.append(RiskFactor(
                f"Pattern Match: {rule.name}",
                TIER_SEVERITY.get(rule.tier, Severity.MEDIUM),
                0.9,
                "; ".join(rule_matches),
            ))
            if rule.tier > best_tier:
                best_tier = rule.tier
                category = rule.category
            logger.debug("Pattern rule %s fired for %s (score now %s)", rule.name, target.url, score)
        return factors, matches, category, score

    @staticmethod
    def _checked_score(score: float, url: str) -> int:
        try:
            if not 0 <= score <= 100:
                raise AggregationInvariantViolation(f"risk score {score} outside [0, 100]")
        except AggregationInvariantViolation as exc:
            logger.error("Clamping verdict for %s: %s", url, exc)
            score = max(0, min(100, score))
        return int(score)

    @staticmethod
    def resolve_category(available: Mapping[AnalyzerKind, AnalyzerResult]) -> str:
        """First matching category wins."""

        def signal(kind: AnalyzerKind, key: str, default=None):
            result = available.get(kind)
            if result is None:
                return default
            return result.signals.get(key, default)

        if signal(AnalyzerKind.MOBILE, "is_clone", False):
            return CATEGORY_MOBILE_CLONE
        if (signal(AnalyzerKind.VISUAL, "best_brand_similarity", 0) or 0) > 50:
            return CATEGORY_BRAND_IMPERSONATION
        if (signal(AnalyzerKind.NLP, "impersonation_score", 0) or 0) > 30:
            return CATEGORY_PHISHING
        if (
            signal(AnalyzerKind.MOBILE, "malware_keywords")
            or signal(AnalyzerKind.VISUAL, "obfuscated_script", False)
            or signal(AnalyzerKind.VISUAL, "unsafe_form_action", False)
        ):
            return CATEGORY_MALWARE
        if (signal(AnalyzerKind.VISUAL, "layout_suspicion", 0) or 0) > 50:
            return CATEGORY_LAYOUT
        if set(signal(AnalyzerKind.NLP, "flags", None) or ()) & {"urgency", "threat", "financial"}:
            return CATEGORY_LANGUAGE
        age = signal(AnalyzerKind.REGISTRATION, "domain_age_days")
        if age is not None and age < 90:
            return CATEGORY_NEW_DOMAIN
        return CATEGORY_SAFE

    @staticmethod
    def confidence(available: Mapping[AnalyzerKind, AnalyzerResult]) -> int:
        if not available:
            return 50
        values = [
            result.confidence if result.confidence is not None else DEFAULT_ANALYZER_CONFIDENCE[kind]
            for kind, result in available.items()
        ]
        return max(0, min(100, round_half_up(sum(values) / len(values) * 100)))

    @staticmethod
    def explain(pattern_factors: list[RiskFactor], available: Mapping[AnalyzerKind, AnalyzerResult]):
        """Pattern factors first, dedupe by label, stable sort by severity, keep the top few."""
        collected = list(pattern_factors)
        for kind in KIND_ORDER:
            if kind in available:
                collected.extend(available[kind].factors)

        unique: dict[str, RiskFactor] = {}
        for factor in collected:
            unique.setdefault(factor.label, factor)
        ordered = sorted(unique.values(), key=lambda f: f.severity, reverse=True)
        return tuple(ordered[:MAX_RISK_FACTORS])

    @staticmethod
    def recommend(category: str, level: RiskLevel, available: Mapping[AnalyzerKind, AnalyzerResult]):
        items: list[str] = list(CATEGORY_RECOMMENDATIONS.get(category, ()))
        for kind in KIND_ORDER:
            if kind in available:
                items.extend(available[kind].recommendations)
        items.extend(LEVEL_RECOMMENDATIONS[level])
        return _dedupe(items, MAX_RECOMMENDATIONS)

    @staticmethod
    def _blocked_verdict(target: Target, domain: str, entry: str, now: datetime) -> ThreatVerdict:
        return ThreatVerdict(
            url=target.url,
            risk_score=100,
            risk_level=RiskLevel.CRITICAL,
            threat_category=CATEGORY_KNOWN_MALICIOUS,
            primary_reason=f"{domain} is a known malicious domain and was blocked automatically.",
            confidence=95,
            risk_factors=(
                RiskFactor(
                    CATEGORY_KNOWN_MALICIOUS,
                    Severity.CRITICAL,
                    0.95,
                    f"Domain matches block list entry {entry}",
                ),
            ),
            recommended_actions=BLOCKED_RECOMMENDATIONS,
            timestamp=now,
            pattern_matches=(f"Blocked domain: {domain}",),
        )

    def _fallback(self, target: Target, results, now: datetime) -> ThreatVerdict:
        scores = [
            outcome.score for outcome in results.values()
            if outcome is not None and outcome.available
        ]
        score = max(0, min(100, max(scores, default=0)))
        level = RiskLevel.from_score(score)
        return ThreatVerdict(
            url=target.url,
            risk_score=score,
            risk_level=level,
            threat_category=CATEGORY_UNDETERMINED,
            primary_reason=PRIMARY_REASONS[CATEGORY_UNDETERMINED],
            confidence=50,
            recommended_actions=LEVEL_RECOMMENDATIONS[level],
            timestamp=now,
        )
