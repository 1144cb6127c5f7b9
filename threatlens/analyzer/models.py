"""Scan data models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union
from urllib.parse import parse_qs

from ..constants import APP_STORE_HOSTS, AnalyzerKind, RiskLevel, Severity
from ..errors import InvalidInput
from ..utils.domains import parse_target_url, registered_domain

_APPLE_ID_RE = re.compile(r"/id(\d+)")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _freeze(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class AppMetadata:
    """Store listing details for a mobile app."""

    app_id: str
    platform: str
    app_name: str = "Unknown App"
    developer_name: str = "Unknown Developer"
    rating: float = 0.0
    review_count: int = 0
    install_count: str = "1,000+"
    permissions: tuple[str, ...] = ()
    content_rating: str = "Everyone"
    last_updated: Optional[str] = None
    description: str = ""
    store_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppMetadata":
        """Build metadata from a loose dict (camelCase or snake_case keys)."""

        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        app_id = str(pick("app_id", "appId", default="") or "").strip()
        if not app_id:
            raise InvalidInput("App metadata requires an app_id")
        platform = str(pick("platform", default="android")).lower()
        if platform not in ("android", "ios"):
            raise InvalidInput(f"Unsupported app platform: {platform}")
        try:
            rating = float(pick("rating", default=0.0))
            review_count = int(pick("review_count", "reviewCount", default=0))
        except (TypeError, ValueError) as exc:
            raise InvalidInput(f"Invalid numeric app metadata: {exc}") from exc
        permissions = tuple(
            str(p).strip().upper() for p in (pick("permissions", default=[]) or []) if str(p).strip()
        )
        return cls(
            app_id=app_id,
            platform=platform,
            app_name=str(pick("app_name", "appName", "title", default="Unknown App")),
            developer_name=str(pick("developer_name", "developerName", "developer", default="Unknown Developer")),
            rating=rating,
            review_count=review_count,
            install_count=str(pick("install_count", "installCount", default="1,000+")),
            permissions=permissions,
            content_rating=str(pick("content_rating", "contentRating", default="Everyone")),
            last_updated=pick("last_updated", "lastUpdated"),
            description=str(pick("description", default="") or ""),
            store_url=pick("store_url", "appStoreUrl"),
        )

    @classmethod
    def from_store_url(
        cls, url: str, overrides: Optional[Mapping[str, Any]] = None
    ) -> Optional["AppMetadata"]:
        """Resolve an app-store URL into metadata; None when no app id is present."""
        parsed = parse_target_url(url)
        host = (parsed.hostname or "").lower()
        if host == "play.google.com":
            platform = "android"
            app_id = (parse_qs(parsed.query).get("id") or [""])[0]
        elif host == "apps.apple.com":
            platform = "ios"
            match = _APPLE_ID_RE.search(parsed.path)
            app_id = match.group(1) if match else ""
        else:
            return None
        if not app_id:
            return None
        data: dict[str, Any] = dict(overrides or {})
        data.setdefault("app_id", app_id)
        data.setdefault("platform", platform)
        data.setdefault("store_url", url)
        return cls.from_dict(data)


@dataclass(frozen=True)
class Target:
    """What is being scanned: a URL plus optional page content and app metadata."""

    url: str
    content: Optional[str] = None
    app_metadata: Optional[AppMetadata] = None

    @classmethod
    def from_url(
        cls,
        url: str,
        content: Optional[str] = None,
        app_metadata: Union[AppMetadata, Mapping[str, Any], None] = None,
    ) -> "Target":
        """Validate the URL and build a target. Raises InvalidInput."""
        parse_target_url(url)
        if app_metadata is not None and not isinstance(app_metadata, AppMetadata):
            app_metadata = AppMetadata.from_dict(app_metadata)
        return cls(url=url.strip(), content=content, app_metadata=app_metadata)

    @property
    def key(self) -> str:
        return self.url.strip()

    @property
    def domain(self) -> str:
        return (parse_target_url(self.url).hostname or "").lower().strip(".")

    @property
    def registered_domain(self) -> str:
        return registered_domain(self.url)

    @property
    def is_app_store(self) -> bool:
        return self.domain in APP_STORE_HOSTS

    @property
    def has_content(self) -> bool:
        return bool(self.content and self.content.strip())

    def resolve_app_metadata(self) -> Optional[AppMetadata]:
        if self.app_metadata is not None:
            return self.app_metadata
        if not self.is_app_store:
            return None
        return AppMetadata.from_store_url(self.url)


@dataclass(frozen=True)
class RiskFactor:
    """A single explainable reason contributing to risk."""

    label: str
    severity: Severity
    confidence: float
    explanation: str = ""

    def __post_init__(self):
        object.__setattr__(self, "severity", Severity(self.severity))
        object.__setattr__(self, "confidence", _clamp(float(self.confidence), 0.0, 1.0))

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "severity": str(self.severity),
            "confidence": round(self.confidence, 3),
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class AnalyzerResult:
    """Output of one analyzer for one scan."""

    kind: AnalyzerKind
    score: int
    factors: tuple[RiskFactor, ...] = ()
    confidence: Optional[float] = None
    signals: Mapping[str, Any] = field(default_factory=dict)
    recommendations: tuple[str, ...] = ()

    available = True

    def __post_init__(self):
        object.__setattr__(self, "score", int(round(_clamp(float(self.score), 0, 100))))
        object.__setattr__(self, "factors", tuple(self.factors))
        object.__setattr__(self, "recommendations", tuple(self.recommendations))
        object.__setattr__(self, "signals", _freeze(self.signals))
        if self.confidence is not None:
            object.__setattr__(self, "confidence", _clamp(float(self.confidence), 0.0, 1.0))


@dataclass(frozen=True)
class Unavailable:
    """An analyzer had nothing to contribute (no content, not an app, fault, timeout)."""

    kind: AnalyzerKind
    reason: str = ""

    available = False


AnalyzerOutcome = Union[AnalyzerResult, Unavailable]


@dataclass(frozen=True)
class ThreatVerdict:
    """Final aggregated risk assessment for one scan."""

    url: str
    risk_score: int
    risk_level: RiskLevel
    threat_category: str
    primary_reason: str
    confidence: int
    risk_factors: tuple[RiskFactor, ...] = ()
    recommended_actions: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pattern_matches: tuple[str, ...] = ()
    analyzers: tuple[AnalyzerKind, ...] = ()

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "riskScore": self.risk_score,
            "riskLevel": str(self.risk_level),
            "threatCategory": self.threat_category,
            "primaryReason": self.primary_reason,
            "confidence": self.confidence,
            "riskFactors": [factor.to_dict() for factor in self.risk_factors],
            "recommendedActions": list(self.recommended_actions),
            "timestamp": self.timestamp.isoformat(),
            "patternMatches": list(self.pattern_matches),
            "analyzers": [kind.value for kind in self.analyzers],
        }
