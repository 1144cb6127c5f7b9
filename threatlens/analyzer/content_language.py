"""Scam-language analysis of page or message text."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional, Sequence

from ..constants import AnalyzerKind, Severity
from ..errors import AnalyzerUnavailable
from .base import BaseAnalyzer
from .models import RiskFactor, Target
from .rules import DetectionContext, Detector, SignalResult

logger = logging.getLogger(__name__)

URGENCY_KEYWORDS = (
    "urgent", "immediate", "expires", "limited time", "act now", "hurry",
    "deadline", "last chance", "time sensitive", "expires today",
    "within 24 hours", "before midnight", "don't delay", "instant",
    "asap", "emergency", "critical", "final notice", "last warning",
)

FINANCIAL_KEYWORDS = (
    "money", "payment", "credit card", "bank account", "routing number",
    "ssn", "social security", "tax refund", "inheritance", "lottery",
    "winner", "prize", "million dollars", "bitcoin", "cryptocurrency",
    "investment", "profit", "guaranteed returns", "wire transfer",
    "western union", "moneygram", "paypal", "venmo", "cashapp",
)

THREAT_KEYWORDS = (
    "suspended", "blocked", "terminated", "legal action", "lawsuit",
    "arrest", "warrant", "police", "investigation", "fraud alert",
    "security breach", "compromised", "hacked", "unauthorized access",
    "verify identity", "confirm account", "update payment method",
)

AUTHORITY_TERMS = (
    "irs", "fbi", "police", "government", "microsoft", "apple", "google",
    "amazon", "paypal", "bank", "visa", "mastercard", "american express",
    "wells fargo", "chase", "citibank", "customer service", "support team",
    "security department", "fraud prevention", "account verification",
)

IMPERSONATION_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"we are (microsoft|apple|google|amazon|paypal)",
    r"this is .* from (the irs|fbi|police department)",
    r"(bank|financial institution) security (alert|department)",
    r"your (microsoft|apple|google) account",
    r"(customer|technical) support (team|department)",
))

TIME_PRESSURE_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"within \d+ (hours?|minutes?|days?)",
    r"expires? (today|tomorrow|soon)",
    r"before \d+",
    r"only \d+ (hours?|minutes?|days?) (left|remaining)",
))

CONSEQUENCE_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"will be (suspended|terminated|blocked|closed)",
    r"legal action will be taken",
    r"account will be (frozen|locked|suspended)",
    r"failure to (respond|comply|verify)",
))

FINANCIAL_REQUEST_PATTERNS = tuple(re.compile(p, re.IGNORECASE) for p in (
    r"enter.*(credit card|bank account|ssn|social security)",
    r"provide.*(payment|financial|banking) (information|details)",
    r"verify.*(account|payment) (information|details)",
    r"update.*(payment|billing) (method|information)",
    r"verify your (account|identity)",
    r"(send|pay|make)\b.*\b(wire transfer|western union|moneygram|gift cards?)",
))

COMMON_MISSPELLINGS = (
    "recieve", "seperate", "teh", "adn", "hte", "youre", "there account",
    "you account", "verificiation", "secuirty", "suspeneded",
)

SCAM_PHRASES = (
    "congratulations, you have won",
    "verify your account immediately",
    "click here to claim",
    "limited time offer",
    "act now or lose",
    "this is not a scam",
    "100% guaranteed",
    "no risk involved",
    "government grant",
    "work from home",
)

URL_RE = re.compile(r"https?://[^\s\"'<>]+", re.IGNORECASE)
EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
PHONE_RE = re.compile(r"(\(\d{3}\)\s?\d{3}[-.\s]?\d{4}|\b\d{3}[-.\s]?\d{3}[-.\s]?\d{4}\b)")
CAPS_WORD_RE = re.compile(r"\b[A-Z]{3,}\b")
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

# Urgency is normalised per 100 words; short texts use this floor.
MIN_WORDS_FOR_NORMALISATION = 20

PRIMARY_SIGNALS = ("urgency", "impersonation", "threat", "financial")


def _keyword_re(keyword: str) -> re.Pattern:
    return re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)


def count_keywords(text: str, keywords: Iterable[str]) -> int:
    """Total occurrences of all keywords (word-bounded)."""
    return sum(len(_keyword_re(k).findall(text)) for k in keywords)


def matched_keywords(text: str, keywords: Iterable[str]) -> list[str]:
    return [k for k in keywords if _keyword_re(k).search(text)]


def _flag_severity(score: int) -> Severity:
    return Severity.HIGH if score >= 70 else Severity.MEDIUM


class UrgencyDetector:
    name = "urgency"
    threshold = 40

    def detect(self, context: DetectionContext) -> SignalResult:
        text = context.text
        lowered = text.lower()
        word_count = len(text.split())

        raw = count_keywords(lowered, URGENCY_KEYWORDS) * 15
        raw += 20 * sum(1 for pattern in TIME_PRESSURE_PATTERNS if pattern.search(lowered))
        raw += min(len(CAPS_WORD_RE.findall(text)) * 5, 25)
        raw += min(text.count("!") * 3, 20)

        score = int(round(min(100.0, raw / max(word_count, MIN_WORDS_FOR_NORMALISATION) * 100)))
        result = SignalResult(self.name, score, metadata={"urgency_score": score})
        if score > self.threshold:
            result.factors.append(RiskFactor(
                "High Urgency Language",
                _flag_severity(score),
                score / 100,
                "Text contains multiple urgency indicators and time pressure tactics commonly used in scams",
            ))
            result.metadata["flags"] = ["urgency"]
            result.recommendations.append("Take time to verify urgent requests through official channels")
        return result


class ImpersonationDetector:
    name = "impersonation"
    threshold = 30

    def detect(self, context: DetectionContext) -> SignalResult:
        lowered = context.text.lower()
        terms = matched_keywords(lowered, AUTHORITY_TERMS)
        score = 25 * len(terms)
        score += 30 * sum(1 for pattern in IMPERSONATION_PATTERNS if pattern.search(lowered))
        if re.search(r"employee id|badge number|reference number", lowered):
            score += 20
        if re.search(r"official (notice|communication|document)", lowered):
            score += 15
        score = min(100, score)

        result = SignalResult(
            self.name, score, metadata={"impersonation_score": score, "authority_terms": terms}
        )
        if score > self.threshold:
            result.factors.append(RiskFactor(
                "Authority Impersonation",
                _flag_severity(score),
                score / 100,
                "Text appears to impersonate legitimate organizations or authorities",
            ))
            result.metadata["flags"] = ["impersonation"]
            result.recommendations.append("Contact the organization directly using official contact details")
        return result


class ThreatLanguageDetector:
    name = "threat"
    threshold = 35

    def detect(self, context: DetectionContext) -> SignalResult:
        lowered = context.text.lower()
        score = 20 * len(matched_keywords(lowered, THREAT_KEYWORDS))
        score += 25 * sum(1 for pattern in CONSEQUENCE_PATTERNS if pattern.search(lowered))
        score = min(100, score)

        result = SignalResult(self.name, score, metadata={"threat_score": score})
        if score > self.threshold:
            result.factors.append(RiskFactor(
                "Threatening Language",
                _flag_severity(score),
                score / 100,
                "Text contains threatening language about account suspension or legal consequences",
            ))
            result.metadata["flags"] = ["threat"]
            result.recommendations.append("Do not act on threats of account suspension without checking your account directly")
        return result


class FinancialRiskDetector:
    name = "financial"
    threshold = 30

    def detect(self, context: DetectionContext) -> SignalResult:
        lowered = context.text.lower()
        score = 15 * len(matched_keywords(lowered, FINANCIAL_KEYWORDS))
        score += 30 * sum(1 for pattern in FINANCIAL_REQUEST_PATTERNS if pattern.search(lowered))
        if re.search(r"guaranteed.*(profit|return|money)", lowered):
            score += 25
        score = min(100, score)

        result = SignalResult(self.name, score, metadata={"financial_score": score})
        if score > self.threshold:
            result.factors.append(RiskFactor(
                "Financial Information Request",
                _flag_severity(score),
                score / 100,
                "Text requests sensitive financial information or offers suspicious financial opportunities",
            ))
            result.metadata["flags"] = ["financial"]
            result.recommendations.append("Never share financial information through links or unsolicited messages")
        return result


class GrammarDetector:
    """Misspellings common in scams plus sentence capitalisation errors."""

    name = "grammar"
    threshold = 50

    def detect(self, context: DetectionContext) -> SignalResult:
        text = context.text
        lowered = text.lower()
        score = 15.0 * sum(1 for word in COMMON_MISSPELLINGS if _keyword_re(word).search(lowered))

        sentences = [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]
        if sentences:
            errors = sum(1 for s in sentences if s[0].isalpha() and s[0] != s[0].upper())
            score += errors / len(sentences) * 30
        score = int(round(min(100.0, score)))

        result = SignalResult(self.name, score, metadata={"grammar_score": score})
        if score > self.threshold:
            result.factors.append(RiskFactor(
                "Poor Grammar/Spelling",
                Severity.LOW,
                score / 100,
                "Text contains multiple grammatical errors and spelling mistakes typical of scam communications",
            ))
        return result


class ScamPhraseDetector:
    name = "scam_phrases"

    def detect(self, context: DetectionContext) -> SignalResult:
        lowered = context.text.lower()
        patterns = [f'Scam phrase detected: "{phrase}"' for phrase in SCAM_PHRASES if phrase in lowered]
        if re.search(r"click (here|below|this link)", lowered):
            patterns.append("Contains suspicious click instructions")
        if re.search(r"download (attachment|file)", lowered):
            patterns.append("Requests file download")
        return SignalResult(self.name, 0, metadata={"language_patterns": patterns})


class EntityDetector:
    name = "entities"

    def detect(self, context: DetectionContext) -> SignalResult:
        text = context.text
        entities = [
            {"entity": url, "type": "URL", "context": "Embedded link requires verification"}
            for url in URL_RE.findall(text)
        ]
        entities += [
            {"entity": email, "type": "Email", "context": "Contact information provided"}
            for email in EMAIL_RE.findall(text)
        ]
        entities += [
            {"entity": phone, "type": "Phone", "context": "Phone number provided for contact"}
            for phone in PHONE_RE.findall(text)
        ]
        return SignalResult(self.name, 0, metadata={"suspicious_entities": entities})


class ContentLanguageAnalyzer(BaseAnalyzer):
    """Scores text for urgency, impersonation, threats and financial bait."""

    kind = AnalyzerKind.NLP

    def __init__(self, detectors: Optional[Sequence[Detector]] = None):
        super().__init__(detectors)

    def default_detectors(self) -> list[Detector]:
        return [
            UrgencyDetector(),
            ImpersonationDetector(),
            ThreatLanguageDetector(),
            FinancialRiskDetector(),
            GrammarDetector(),
            ScamPhraseDetector(),
            EntityDetector(),
        ]

    async def prepare(self, target: Target) -> DetectionContext:
        if not target.has_content:
            raise AnalyzerUnavailable(self.kind.value, "no content")
        return DetectionContext(target=target, text=target.content.strip())

    def combine_scores(self, scores: dict[str, int], metadata: dict) -> int:
        """Strongest primary signal wins."""
        primary = [score for name, score in scores.items() if name in PRIMARY_SIGNALS]
        if not primary:
            return super().combine_scores(scores, metadata)
        return max(primary)
