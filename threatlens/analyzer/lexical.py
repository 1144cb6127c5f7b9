"""Lexical domain/URL analysis: typosquatting, homographs, structural red flags."""

from __future__ import annotations

import logging
import unicodedata
from typing import Iterable, Optional, Sequence

import idna
import tldextract

from ..config import (
    DEFAULT_BRAND_DOMAINS,
    DEFAULT_BRAND_PATTERNS,
    DEFAULT_DOMAIN_KEYWORDS,
    DEFAULT_SUBSTITUTIONS,
    DEFAULT_SUSPICIOUS_TLDS,
)
from ..constants import AnalyzerKind, Severity
from ..utils.domains import is_ip_address, parse_target_url, registered_domain
from ..utils.similarity import partial_ratio, ratio
from .base import BaseAnalyzer
from .models import AnalyzerResult, RiskFactor, Target
from .rules import DetectionContext, Detector, SignalResult

logger = logging.getLogger(__name__)

# Cyrillic/Armenian characters that look like Latin
HOMOGLYPHS = {
    "а": "a",  # Cyrillic а
    "е": "e",  # Cyrillic е
    "о": "o",  # Cyrillic о
    "р": "p",  # Cyrillic р
    "с": "c",  # Cyrillic с
    "у": "y",  # Cyrillic у
    "х": "x",  # Cyrillic х
    "ѕ": "s",  # Cyrillic ѕ
    "і": "i",  # Cyrillic і
    "ј": "j",  # Cyrillic ј
    "ԁ": "d",  # Cyrillic ԁ
    "ɡ": "g",  # Latin script g
    "ո": "n",  # Armenian ո
    "ս": "u",  # Armenian ս
}

MAX_URL_LENGTH = 75
MAX_SUBDOMAINS = 3


def normalize_homoglyphs(text: str) -> str:
    """Replace homoglyphs with their Latin equivalents."""
    result = []
    for char in text:
        if char in HOMOGLYPHS:
            result.append(HOMOGLYPHS[char])
        else:
            result.append(unicodedata.normalize("NFKC", char))
    return "".join(result)


def decode_punycode(host: str) -> str:
    """Best-effort punycode decode so homoglyph checks see Unicode."""
    if "xn--" not in host:
        return host
    try:
        decoded = idna.decode(host)
    except (idna.IDNAError, UnicodeError):
        return host
    return decoded or host


class BrandSimilarityDetector:
    """Fuzzy match of the registrable label against brand names."""

    name = "brand_similarity"

    def __init__(self, brand_patterns: Sequence[str]):
        self.brand_patterns = [p.lower() for p in brand_patterns]

    def detect(self, context: DetectionContext) -> SignalResult:
        result = SignalResult(self.name)
        label = context.extras["extracted"].domain.lower()
        if not label:
            return result

        matched: list[str] = []
        for pattern in self.brand_patterns:
            if pattern == label:
                continue

            if pattern in label:
                result.score += 30
                matched.append(pattern)
                result.factors.append(RiskFactor(
                    f"Brand name in domain: '{pattern}'",
                    Severity.HIGH,
                    0.85,
                    f"The domain '{context.host}' embeds the brand '{pattern}' without belonging to it",
                ))
                continue

            score = ratio(pattern, label)
            if score >= 85:
                result.score += 35
                matched.append(pattern)
                result.factors.append(RiskFactor(
                    f"Typosquatting: very similar to '{pattern}'",
                    Severity.HIGH,
                    0.9,
                    f"Domain label '{label}' is a {score}% match to '{pattern}'",
                ))
            elif score >= 70:
                result.score += 20
                matched.append(pattern)
                result.factors.append(RiskFactor(
                    f"Typosquatting: similar to '{pattern}'",
                    Severity.MEDIUM,
                    0.7,
                    f"Domain label '{label}' is a {score}% match to '{pattern}'",
                ))

            partial = partial_ratio(pattern, label)
            if partial >= 90 and partial > score:
                result.score += 15
                result.factors.append(RiskFactor(
                    f"Partial brand match: '{pattern}'",
                    Severity.MEDIUM,
                    0.6,
                    f"Domain label '{label}' partially matches '{pattern}' ({partial}%)",
                ))

        if matched:
            result.metadata["brand_matches"] = matched
            result.recommendations.append("Verify domain spelling carefully")
        return result


class HomographDetector:
    name = "homograph"

    def __init__(self, brand_patterns: Sequence[str]):
        self.brand_patterns = [p.lower() for p in brand_patterns]

    def detect(self, context: DetectionContext) -> SignalResult:
        result = SignalResult(self.name)
        candidate = decode_punycode(context.host)
        if candidate.isascii():
            return result
        try:
            idna.encode(candidate)
        except (idna.IDNAError, UnicodeError):
            return result

        normalized = normalize_homoglyphs(candidate).lower()
        for pattern in self.brand_patterns:
            if pattern in normalized:
                result.score = 40
                result.factors.append(RiskFactor(
                    "Homograph attack detected",
                    Severity.CRITICAL,
                    0.95,
                    f"Domain uses look-alike characters to imitate '{pattern}'",
                ))
                result.recommendations.append("Verify domain spelling carefully")
                result.metadata["homograph_of"] = pattern
                break
        else:
            result.score = 10
            result.factors.append(RiskFactor(
                "Internationalized domain name",
                Severity.LOW,
                0.5,
                "Domain contains non-ASCII characters",
            ))
        return result


class SubstitutionDetector:
    """Digit/symbol substitutions (l33t speak) that reveal a brand."""

    name = "substitution"

    def __init__(self, brand_patterns: Sequence[str], substitutions: dict[str, str]):
        self.brand_patterns = [p.lower() for p in brand_patterns]
        self.substitutions = dict(substitutions)

    def detect(self, context: DetectionContext) -> SignalResult:
        result = SignalResult(self.name)
        label = context.extras["extracted"].domain.lower()
        normalized = label
        for sub, char in self.substitutions.items():
            normalized = normalized.replace(sub, char)

        if normalized == label:
            return result
        for pattern in self.brand_patterns:
            if pattern in normalized:
                result.score = 25
                result.factors.append(RiskFactor(
                    "Character substitution",
                    Severity.HIGH,
                    0.85,
                    f"'{label}' reads as '{normalized}' after undoing character substitutions",
                ))
                break
        return result


class SuspiciousTldDetector:
    name = "suspicious_tld"

    def __init__(self, suspicious_tlds: Iterable[str]):
        self.suspicious_tlds = {t.lower().lstrip(".") for t in suspicious_tlds}

    def detect(self, context: DetectionContext) -> SignalResult:
        result = SignalResult(self.name)
        suffix = context.extras["extracted"].suffix.lower()
        last = suffix.rsplit(".", 1)[-1] if suffix else ""
        if suffix in self.suspicious_tlds or last in self.suspicious_tlds:
            result.score = 15
            result.factors.append(RiskFactor(
                f"Suspicious TLD: .{suffix}",
                Severity.MEDIUM,
                0.7,
                "This top-level domain is disproportionately used for abuse",
            ))
        return result


class HostKeywordDetector:
    name = "host_keywords"

    def __init__(self, keyword_weights: Sequence[tuple[str, int]]):
        self.keyword_weights = [(k.lower(), int(p)) for k, p in keyword_weights]

    def detect(self, context: DetectionContext) -> SignalResult:
        result = SignalResult(self.name)
        found: list[str] = []
        for keyword, points in self.keyword_weights:
            if keyword in context.host:
                result.score += points
                found.append(keyword)
        if found:
            result.factors.append(RiskFactor(
                "Suspicious keywords in domain",
                Severity.LOW,
                0.6,
                f"Domain contains: {', '.join(found)}",
            ))
            result.metadata["host_keywords"] = found
        return result


class UrlStructureDetector:
    """Structural URL red flags: IP hosts, plain HTTP, ports, deep subdomains."""

    name = "url_structure"

    def detect(self, context: DetectionContext) -> SignalResult:
        result = SignalResult(self.name)
        parsed = context.extras["parsed"]
        extracted = context.extras["extracted"]
        url = context.target.url

        if is_ip_address(context.host):
            result.score += 25
            result.factors.append(RiskFactor(
                "IP address instead of domain",
                Severity.MEDIUM,
                0.8,
                "Website uses an IP address instead of a domain name, which can hide the true destination",
            ))

        if parsed.scheme.lower() != "https":
            result.score += 20
            result.factors.append(RiskFactor(
                "Insecure HTTP protocol",
                Severity.MEDIUM,
                1.0,
                "Website does not use HTTPS encryption, making data transmission vulnerable",
            ))
            result.recommendations.append("Avoid entering sensitive information on HTTP sites")

        subdomains = [part for part in (extracted.subdomain or "").split(".") if part]
        result.metadata["subdomain_count"] = len(subdomains)
        if len(subdomains) > MAX_SUBDOMAINS:
            result.score += 15
            result.factors.append(RiskFactor(
                "Excessive subdomains",
                Severity.MEDIUM,
                0.7,
                f"Host has {len(subdomains)} subdomain levels",
            ))

        if parsed.port:
            result.score += 10
            result.factors.append(RiskFactor(
                "Non-standard port",
                Severity.LOW,
                0.6,
                f"URL specifies port {parsed.port}",
            ))

        if len(url) > MAX_URL_LENGTH:
            result.score += 10
            result.factors.append(RiskFactor(
                "Unusually long URL",
                Severity.LOW,
                0.5,
                f"URL is {len(url)} characters long",
            ))

        if "@" in (parsed.netloc or "") or "%" in (parsed.netloc or "") + (parsed.path or ""):
            result.score += 10
            result.factors.append(RiskFactor(
                "Suspicious characters in URL",
                Severity.MEDIUM,
                0.6,
                "URL hides its destination behind '@' user info or percent-encoding",
            ))
        return result


class LexicalAnalyzer(BaseAnalyzer):
    """Scores a URL's domain for phishing likelihood based on lexical heuristics."""

    kind = AnalyzerKind.LEXICAL

    def __init__(
        self,
        brand_patterns: Optional[Sequence[str]] = None,
        allowlist: Optional[Iterable[str]] = None,
        suspicious_tlds: Optional[Iterable[str]] = None,
        keyword_weights: Optional[Sequence[tuple[str, int]]] = None,
        substitutions: Optional[dict[str, str]] = None,
        detectors: Optional[Sequence[Detector]] = None,
    ):
        self.brand_patterns = list(brand_patterns or DEFAULT_BRAND_PATTERNS)
        self.allowlist = {d.lower() for d in (allowlist if allowlist is not None else DEFAULT_BRAND_DOMAINS)}
        self.suspicious_tlds = set(suspicious_tlds or DEFAULT_SUSPICIOUS_TLDS)
        self.keyword_weights = list(keyword_weights or DEFAULT_DOMAIN_KEYWORDS)
        self.substitutions = dict(substitutions or DEFAULT_SUBSTITUTIONS)
        super().__init__(detectors)

    def default_detectors(self) -> list[Detector]:
        return [
            HomographDetector(self.brand_patterns),
            BrandSimilarityDetector(self.brand_patterns),
            SubstitutionDetector(self.brand_patterns, self.substitutions),
            SuspiciousTldDetector(self.suspicious_tlds),
            HostKeywordDetector(self.keyword_weights),
            UrlStructureDetector(),
        ]

    async def prepare(self, target: Target) -> DetectionContext:
        parsed = parse_target_url(target.url)
        host = (parsed.hostname or "").lower().strip(".")
        extracted = tldextract.extract(host)
        return DetectionContext(
            target=target,
            host=host,
            extras={"parsed": parsed, "extracted": extracted},
        )

    def run(self, context: DetectionContext) -> AnalyzerResult:
        registered = registered_domain(context.host)
        if registered in self.allowlist or context.host in self.allowlist:
            return AnalyzerResult(
                kind=self.kind,
                score=0,
                confidence=0.9,
                signals={"allowlisted": True, "registered_domain": registered},
            )
        return super().run(context)

    def confidence(self, factors, metadata) -> float:
        return min(0.95, 0.7 + 0.05 * len(factors))
