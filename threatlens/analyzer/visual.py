"""Brand/UI similarity heuristics over page markup."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from ..constants import AnalyzerKind, Severity
from ..errors import AnalyzerUnavailable
from .base import BaseAnalyzer
from .models import RiskFactor, Target
from .rules import DetectionContext, Detector, SignalResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BrandReference:
    name: str
    colors: tuple[str, ...]
    key_elements: tuple[str, ...]


BRAND_REFERENCES = (
    BrandReference("PayPal", ("#003087", "#009cde", "#012169"), ("paypal logo", "secure payment")),
    BrandReference("Amazon", ("#ff9900", "#232f3e"), ("orange smile", "amazon logo")),
    BrandReference("Microsoft", ("#00bcf2", "#80bb01", "#ffbb00", "#f25022"), ("four squares", "microsoft logo")),
    BrandReference("Google", ("#4285f4", "#ea4335", "#fbbc05", "#34a853"), ("search box", "google logo")),
    BrandReference("Apple", ("#1d1d1f",), ("apple logo", "apple id")),
    BrandReference("Facebook", ("#1877f2",), ("facebook logo", "blue header")),
    BrandReference("Netflix", ("#e50914",), ("red logo", "streaming")),
    BrandReference("Banking", ("#003366",), ("security icons", "bank logo", "online banking")),
)

UI_ELEMENT_PATTERNS = {
    "login-form": re.compile(r"<form[^>]*(?:login|signin|sign-in)[^>]*>", re.IGNORECASE),
    "password-input": re.compile(r"<input[^>]*type=[\"']password[\"'][^>]*>", re.IGNORECASE),
    "email-input": re.compile(r"<input[^>]*type=[\"']email[\"'][^>]*>", re.IGNORECASE),
    "submit-button": re.compile(r"<(?:button|input)[^>]*(?:submit|login|signin)[^>]*>", re.IGNORECASE),
    "payment-form": re.compile(r"<input[^>]*(?:card|cvv|cvc|expiry|iban)[^>]*>", re.IGNORECASE),
    "security-badge": re.compile(r"\b(?:secure|verified|ssl|trusted|safe)\b", re.IGNORECASE),
    "urgency-text": re.compile(r"\b(?:urgent|immediate|expires|limited time|act now)\b", re.IGNORECASE),
    "logo-image": re.compile(r"<img[^>]*(?:logo|brand)[^>]*>", re.IGNORECASE),
    "popup-modal": re.compile(r"class=[\"'][^\"']*(?:modal|popup|overlay)[^\"']*[\"']", re.IGNORECASE),
    "redirect-script": re.compile(r"(?:window|document)\.location(?:\.href)?\s*=|http-equiv=[\"']refresh", re.IGNORECASE),
    "social-login": re.compile(r"(?:facebook|google|twitter|linkedin|github).*(?:login|signin|connect)", re.IGNORECASE),
}

HIDDEN_STYLE_RE = re.compile(r"style=[\"'][^\"']*(?:hidden|display:\s*none)[^\"']*[\"']", re.IGNORECASE)
IFRAME_RE = re.compile(r"<iframe", re.IGNORECASE)
OBFUSCATED_JS_RE = re.compile(r"eval\(|document\.write\(|unescape\(|atob\(")
UNSAFE_FORM_ACTION_RE = re.compile(r"<form[^>]*action=[\"'][^\"']*(?:data:|javascript:)[^\"']*[\"']", re.IGNORECASE)
MARKUP_RE = re.compile(r"<\s*(?:[a-zA-Z][a-zA-Z0-9-]*|!doctype)[\s>/]", re.IGNORECASE)

MIN_BRAND_SIMILARITY = 30


def extract_ui_elements(content: str) -> list[str]:
    return [name for name, pattern in UI_ELEMENT_PATTERNS.items() if pattern.search(content)]


class UiElementDetector:
    name = "ui_elements"

    def detect(self, context: DetectionContext) -> SignalResult:
        return SignalResult(self.name, 0, metadata={"ui_elements": list(context.extras.get("ui_elements", []))})


class BrandResemblanceDetector:
    """Brand mentions, colour palette and key elements."""

    name = "brand_similarity"

    def __init__(self, brands: Sequence[BrandReference] = BRAND_REFERENCES):
        self.brands = tuple(brands)

    def score_brand(self, brand: BrandReference, content: str, ui_elements: list[str]) -> int:
        lowered = content.lower()
        similarity = 20 * len(re.findall(re.escape(brand.name.lower()), lowered))
        similarity += 15 * sum(1 for color in brand.colors if color.lower() in lowered)
        similarity += 10 * sum(1 for element in brand.key_elements if element in lowered)

        key = brand.name.lower()
        if key == "paypal" and "login-form" in ui_elements:
            similarity += 25
        elif key == "amazon" and "prime" in lowered:
            similarity += 20
        elif key == "microsoft" and "office" in lowered:
            similarity += 20
        elif key == "banking" and "password-input" in ui_elements:
            similarity += 10
        return min(100, similarity)

    def detect(self, context: DetectionContext) -> SignalResult:
        ui_elements = context.extras.get("ui_elements", [])
        similarities = []
        for brand in self.brands:
            similarity = self.score_brand(brand, context.text, ui_elements)
            if similarity > MIN_BRAND_SIMILARITY:
                similarities.append({"brand": brand.name, "similarity": similarity})
        similarities.sort(key=lambda item: item["similarity"], reverse=True)

        best = similarities[0]["similarity"] if similarities else 0
        result = SignalResult(
            self.name,
            best,
            metadata={"brand_similarities": similarities, "best_brand_similarity": best},
        )
        if best > 50:
            brand = similarities[0]["brand"]
            result.factors.append(RiskFactor(
                f"Visual resemblance to {brand}",
                Severity.HIGH if best >= 70 else Severity.MEDIUM,
                best / 100,
                f"Page markup closely mimics {brand} branding ({best}% similarity)",
            ))
            result.recommendations.append(f"Open {brand} by typing its address yourself instead of using this page")
        return result


class LayoutSuspicionDetector:
    name = "layout"

    def detect(self, context: DetectionContext) -> SignalResult:
        content = context.text
        ui_elements = context.extras.get("ui_elements", [])
        suspicion = 0
        factors: list[RiskFactor] = []

        if "login-form" in ui_elements and "urgency-text" in ui_elements:
            suspicion += 40
        if "password-input" in ui_elements and "https" not in content.lower():
            suspicion += 30
        suspicion += 15 * len(HIDDEN_STYLE_RE.findall(content))
        if len(IFRAME_RE.findall(content)) > 2:
            suspicion += 25

        obfuscated = bool(OBFUSCATED_JS_RE.search(content))
        if obfuscated:
            suspicion += 35
            factors.append(RiskFactor(
                "Obfuscated JavaScript",
                Severity.HIGH,
                0.8,
                "Page runs eval/unescape-style code often used to hide malicious payloads",
            ))

        unsafe_action = bool(UNSAFE_FORM_ACTION_RE.search(content))
        if unsafe_action:
            suspicion += 50
            factors.append(RiskFactor(
                "Form submits to script or data URI",
                Severity.CRITICAL,
                0.9,
                "A form posts to a data: or javascript: target instead of a server",
            ))

        suspicion = min(100, suspicion)
        if suspicion > 50:
            factors.insert(0, RiskFactor(
                "Suspicious page layout",
                Severity.HIGH if suspicion >= 70 else Severity.MEDIUM,
                suspicion / 100,
                "Page combines credential forms, hidden elements or frames in ways typical of phishing kits",
            ))

        return SignalResult(
            self.name,
            suspicion,
            factors=factors,
            metadata={
                "layout_suspicion": suspicion,
                "obfuscated_script": obfuscated,
                "unsafe_form_action": unsafe_action,
            },
        )


class LogoMentionDetector:
    name = "logos"

    def __init__(self, brands: Sequence[BrandReference] = BRAND_REFERENCES):
        self.brands = tuple(brands)

    def detect(self, context: DetectionContext) -> SignalResult:
        lowered = context.text.lower()
        detections = []
        for brand in self.brands:
            key = re.escape(brand.name.lower())
            if re.search(rf"{key}.*logo|logo.*{key}", lowered):
                detections.append({"brand": brand.name, "confidence": 0.7})
        return SignalResult(self.name, 0, metadata={"logo_detections": detections})


class VisualSimilarityAnalyzer(BaseAnalyzer):
    """Approximates visual brand similarity from markup; no rendering."""

    kind = AnalyzerKind.VISUAL

    def __init__(self, detectors: Optional[Sequence[Detector]] = None):
        super().__init__(detectors)

    def default_detectors(self) -> list[Detector]:
        return [
            UiElementDetector(),
            BrandResemblanceDetector(),
            LayoutSuspicionDetector(),
            LogoMentionDetector(),
        ]

    async def prepare(self, target: Target) -> DetectionContext:
        if not target.has_content:
            raise AnalyzerUnavailable(self.kind.value, "no content")
        content = target.content
        if not MARKUP_RE.search(content):
            raise AnalyzerUnavailable(self.kind.value, "no markup")
        ui_elements = extract_ui_elements(content)
        return DetectionContext(
            target=target,
            text=content,
            extras={"ui_elements": ui_elements},
        )

    def combine_scores(self, scores: dict[str, int], metadata: dict) -> int:
        """Max of layout suspicion and best brand similarity."""
        return max(scores.get("brand_similarity", 0), scores.get("layout", 0))
