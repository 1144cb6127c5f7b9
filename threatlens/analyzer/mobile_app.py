"""Mobile app risk analysis from store metadata."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..constants import AnalyzerKind, Severity
from ..errors import AnalyzerUnavailable
from ..utils.similarity import edit_similarity
from .base import BaseAnalyzer
from .models import RiskFactor, Target
from .rules import DetectionContext, Detector, SignalResult

logger = logging.getLogger(__name__)

SUSPICIOUS_PERMISSIONS = frozenset({
    "SYSTEM_ALERT_WINDOW", "DEVICE_ADMIN", "ACCESSIBILITY_SERVICE",
    "READ_SMS", "SEND_SMS", "RECEIVE_SMS", "READ_PHONE_STATE",
    "RECORD_AUDIO", "CAMERA", "ACCESS_FINE_LOCATION",
    "READ_CONTACTS", "WRITE_CONTACTS", "GET_ACCOUNTS",
    "READ_CALL_LOG", "WRITE_CALL_LOG", "CALL_PHONE", "PROCESS_OUTGOING_CALLS",
    "WRITE_EXTERNAL_STORAGE", "READ_EXTERNAL_STORAGE",
    "INSTALL_PACKAGES", "DELETE_PACKAGES", "CLEAR_APP_CACHE", "CLEAR_APP_USER_DATA",
})

# Permissions an app of each type can legitimately ask for
EXPECTED_PERMISSIONS = {
    "messaging": {"CAMERA", "RECORD_AUDIO", "READ_CONTACTS", "INTERNET"},
    "banking": {"INTERNET", "ACCESS_NETWORK_STATE", "CAMERA"},
    "fitness": {"ACCESS_FINE_LOCATION", "INTERNET"},
    "utility": {"INTERNET", "ACCESS_NETWORK_STATE"},
    "game": {"INTERNET", "ACCESS_NETWORK_STATE"},
}

APP_TYPE_KEYWORDS = (
    ("messaging", ("whatsapp", "messenger", "chat")),
    ("banking", ("bank", "wallet", "pay")),
    ("fitness", ("fitness", "step", "health")),
    ("utility", ("calculator", "cleaner", "scanner")),
    ("game", ("game", "puzzle", "play")),
)

FLEECEWARE_PATTERNS = (
    "step counter premium", "fortune teller pro", "palm reader premium",
    "horoscope plus", "qr scanner pro", "wifi analyzer premium",
    "battery optimizer pro", "cleaner master premium", "antivirus premium",
    "vpn premium",
)

MALICIOUS_KEYWORDS = (
    "covidlock", "coronavirus tracker", "covid tracker",
    "free whatsapp", "whatsapp plus", "gb whatsapp",
    "free netflix", "netflix premium", "netflix hack",
    "free spotify", "spotify premium", "spotify hack",
    "instagram hack", "facebook hack", "snapchat hack",
    "bank account hack", "credit card generator",
    "fake gps", "location spoofer", "imei changer",
    "root access", "superuser", "bootloader unlock",
)

KNOWN_CLONE_NAMES = (
    "whatsapp plus", "gb whatsapp", "whatsapp gold",
    "netflix premium", "netflix free", "netflix hack",
    "facebook lite", "messenger plus", "instagram plus",
)


@dataclass(frozen=True)
class LegitimateApp:
    app_id: str
    app_name: str
    developer_name: str


LEGITIMATE_APPS = (
    LegitimateApp("com.whatsapp", "WhatsApp Messenger", "WhatsApp LLC"),
    LegitimateApp("com.netflix.mediaclient", "Netflix", "Netflix, Inc."),
    LegitimateApp("com.instagram.android", "Instagram", "Instagram"),
    LegitimateApp("com.facebook.katana", "Facebook", "Meta Platforms, Inc."),
    LegitimateApp("com.spotify.music", "Spotify: Music and Podcasts", "Spotify AB"),
)

CLONE_SIMILARITY_THRESHOLD = 0.7
CLONE_SCORE = 70


def detect_app_type(app_name: str) -> str:
    name = app_name.lower()
    for app_type, keywords in APP_TYPE_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return app_type
    return "unknown"


class PermissionRiskDetector:
    name = "permissions"

    def detect(self, context: DetectionContext) -> SignalResult:
        app = context.app
        permissions = set(app.permissions)
        app_name = app.app_name.lower()

        suspicious = sorted(p for p in permissions if p in SUSPICIOUS_PERMISSIONS)
        score = 15 * len(suspicious)

        if ("step" in app_name or "fitness" in app_name) and permissions & {"CAMERA", "RECORD_AUDIO"}:
            score += 30
        if ("calculator" in app_name or "calc" in app_name) and permissions & {"READ_SMS", "SEND_SMS"}:
            score += 40

        expected = EXPECTED_PERMISSIONS.get(detect_app_type(app.app_name), set())
        unusual = [p for p in suspicious if p not in expected]
        score += 10 * len(unusual)

        result = SignalResult(
            self.name,
            min(100, score),
            metadata={
                "total_permissions": len(permissions),
                "suspicious_permissions": suspicious,
                "unusual_permissions": unusual,
            },
        )
        if unusual:
            result.factors.append(RiskFactor(
                "Unusual Permission Requests",
                Severity.HIGH,
                0.9,
                f"App requests {', '.join(unusual)} which are unusual for this app type",
            ))
        if suspicious:
            result.recommendations.append("Review app permissions carefully before granting access")
        return result


class DeveloperReputationDetector:
    """Scores developer risk as 100 minus a name-based reputation."""

    name = "developer"

    def detect(self, context: DetectionContext) -> SignalResult:
        developer = context.app.developer_name
        reputation = 70
        if len(developer) < 5:
            reputation -= 20
        if re.search(r"\d{3,}", developer):
            reputation -= 15
        lowered = developer.lower()
        if "hack" in lowered or "crack" in lowered:
            reputation -= 50
        reputation = max(0, reputation)

        patterns = []
        if "LLC" in developer and len(developer) < 10:
            patterns.append("Suspicious LLC name")
        if re.fullmatch(r"[A-Z]{2,}", developer):
            patterns.append("All caps developer name")

        result = SignalResult(
            self.name,
            100 - reputation,
            metadata={"developer_reputation": reputation, "developer_patterns": patterns},
        )
        if reputation < 50:
            result.factors.append(RiskFactor(
                "Low Developer Reputation",
                Severity.MEDIUM,
                0.7,
                f"Developer '{developer}' has a reputation score of {reputation}/100",
            ))
        return result


class MetadataSuspicionDetector:
    name = "metadata"

    def detect(self, context: DetectionContext) -> SignalResult:
        app = context.app
        name = app.app_name.lower()
        flags = []

        if app.rating < 3.0 and "1,000,000" in app.install_count:
            flags.append("Low rating despite high install count")
        if app.review_count < 1000 and "100,000" in app.install_count:
            flags.append("Few reviews for install count")

        fleeceware = any(pattern in name for pattern in FLEECEWARE_PATTERNS)
        if fleeceware:
            flags.append("Potential fleeceware pattern")
        malware_keywords = [keyword for keyword in MALICIOUS_KEYWORDS if keyword in name]
        if malware_keywords:
            flags.append("Contains malicious keywords")

        result = SignalResult(
            self.name,
            10 * len(flags),
            metadata={
                "suspicious_metadata": flags,
                "fleeceware": fleeceware,
                "malware_keywords": malware_keywords,
            },
        )
        if malware_keywords:
            result.factors.append(RiskFactor(
                "Malicious App Keywords",
                Severity.HIGH,
                0.85,
                f"App name contains {', '.join(malware_keywords)}",
            ))
            result.recommendations.append("Do not install this app")
        if fleeceware:
            result.factors.append(RiskFactor(
                "Potential Fleeceware",
                Severity.MEDIUM,
                0.8,
                "App name matches subscription-scam apps that charge hidden recurring fees",
            ))
            result.recommendations.append("Be aware of hidden subscription fees")
        return result


class CloneDetector:
    name = "clone"

    def __init__(self, legitimate_apps: Sequence[LegitimateApp] = LEGITIMATE_APPS):
        self.legitimate_apps = tuple(legitimate_apps)

    def detect(self, context: DetectionContext) -> SignalResult:
        app = context.app
        name = app.app_name.lower()
        is_clone = False
        original: Optional[str] = None
        similarity = 0.0
        indicators: list[str] = []

        for legit in self.legitimate_apps:
            name_similarity = edit_similarity(name, legit.app_name.lower())
            if name_similarity > CLONE_SIMILARITY_THRESHOLD and app.app_id != legit.app_id:
                is_clone = True
                original = legit.app_name
                similarity = name_similarity
                indicators.append(f"Similar name to {legit.app_name}")
            if app.developer_name != legit.developer_name and name_similarity > 0.6:
                indicators.append("Different developer for similar app")

        if any(clone in name for clone in KNOWN_CLONE_NAMES):
            is_clone = True
            indicators.append("Known clone app pattern")

        result = SignalResult(
            self.name,
            CLONE_SCORE if is_clone else 0,
            metadata={
                "is_clone": is_clone,
                "original_app": original,
                "clone_similarity": round(similarity, 3),
                "clone_indicators": indicators,
            },
        )
        if is_clone:
            explanation = (
                f"App appears to be a clone of {original}" if original
                else "App name matches a known clone pattern"
            )
            result.factors.append(RiskFactor(
                "Potential App Clone",
                Severity.CRITICAL,
                similarity or 0.9,
                explanation,
            ))
            result.recommendations.append("Install the original app from the official developer instead")
        return result


class MobileAppAnalyzer(BaseAnalyzer):
    """Scores app-store listings for clones, fleeceware and permission abuse."""

    kind = AnalyzerKind.MOBILE

    DEFAULT_WEIGHTS = {
        "permissions": 0.30,
        "developer": 0.25,
        "clone": 0.25,
        "metadata": 0.20,
    }

    def __init__(
        self,
        detectors: Optional[Sequence[Detector]] = None,
        weights: Optional[dict[str, float]] = None,
    ):
        super().__init__(detectors, weights or self.DEFAULT_WEIGHTS)

    def default_detectors(self) -> list[Detector]:
        return [
            PermissionRiskDetector(),
            DeveloperReputationDetector(),
            MetadataSuspicionDetector(),
            CloneDetector(),
        ]

    async def prepare(self, target: Target) -> DetectionContext:
        app = target.resolve_app_metadata()
        if app is None:
            raise AnalyzerUnavailable(self.kind.value, "not an app-store target")
        return DetectionContext(target=target, app=app, host=target.domain)
