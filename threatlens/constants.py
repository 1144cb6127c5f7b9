"""Centralized constants for ThreatLens.

This module contains enums and constants used across multiple modules
to ensure consistency and reduce duplication.
"""

from enum import Enum, IntEnum


class Severity(IntEnum):
    """Risk factor severity with ranking for comparison."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_string(cls, value: str | None) -> "Severity":
        """Convert string severity to enum, defaulting to LOW."""
        if not value:
            return cls.LOW
        mapping = {
            "low": cls.LOW,
            "medium": cls.MEDIUM,
            "high": cls.HIGH,
            "critical": cls.CRITICAL,
        }
        return mapping.get(value.lower(), cls.LOW)

    def __str__(self) -> str:
        return self.name.lower()


class RiskLevel(IntEnum):
    """Verdict risk levels with ranking for comparison."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def from_score(cls, score: int) -> "RiskLevel":
        """Map a 0-100 score onto a level (lower bounds inclusive)."""
        if score >= RISK_LEVEL_CRITICAL:
            return cls.CRITICAL
        if score >= RISK_LEVEL_HIGH:
            return cls.HIGH
        if score >= RISK_LEVEL_MEDIUM:
            return cls.MEDIUM
        return cls.LOW

    @classmethod
    def from_string(cls, value: str | None) -> "RiskLevel":
        """Convert string level to enum, defaulting to LOW."""
        if not value:
            return cls.LOW
        return cls.__members__.get(value.upper(), cls.LOW)

    @property
    def is_alertable(self) -> bool:
        return self >= RiskLevel.HIGH

    def __str__(self) -> str:
        return self.name.lower()


class AnalyzerKind(str, Enum):
    """Signal category produced by an analyzer."""

    LEXICAL = "lexical"
    NLP = "nlp"
    VISUAL = "visual"
    MOBILE = "mobile"
    REGISTRATION = "registration"


RISK_LEVEL_CRITICAL = 85
RISK_LEVEL_HIGH = 70
RISK_LEVEL_MEDIUM = 45

# Aggregation weights; registration intelligence shares the lexical slot.
DEFAULT_ANALYZER_WEIGHTS: dict[AnalyzerKind, float] = {
    AnalyzerKind.LEXICAL: 0.30,
    AnalyzerKind.NLP: 0.25,
    AnalyzerKind.VISUAL: 0.25,
    AnalyzerKind.MOBILE: 0.20,
}

# Used when an analyzer does not compute its own confidence.
DEFAULT_ANALYZER_CONFIDENCE: dict[AnalyzerKind, float] = {
    AnalyzerKind.LEXICAL: 0.8,
    AnalyzerKind.NLP: 0.85,
    AnalyzerKind.VISUAL: 0.75,
    AnalyzerKind.MOBILE: 0.9,
    AnalyzerKind.REGISTRATION: 0.8,
}

MAX_RISK_FACTORS = 5
MAX_RECOMMENDATIONS = 8

APP_STORE_HOSTS = ("play.google.com", "apps.apple.com")

CATEGORY_KNOWN_MALICIOUS = "Known Malicious Domain"
CATEGORY_SAFE = "Safe Content"
CATEGORY_MOBILE_CLONE = "Mobile App Clone"
CATEGORY_BRAND_IMPERSONATION = "Brand Impersonation"
CATEGORY_PHISHING = "Phishing Attempt"
CATEGORY_MALWARE = "Malware Indicators"
CATEGORY_LAYOUT = "Suspicious Page Layout"
CATEGORY_LANGUAGE = "Language Manipulation"
CATEGORY_NEW_DOMAIN = "Recently Registered Domain"
CATEGORY_UNDETERMINED = "Undetermined"
