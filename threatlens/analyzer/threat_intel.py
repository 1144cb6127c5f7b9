"""Threat intelligence loader: known-bad domains, pattern rules and registration records."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from ..utils.domains import canonicalize_domain, domain_matches

logger = logging.getLogger(__name__)

DEFAULT_BLOCKED_DOMAINS = (
    "ucoz.com",
    "sheingivesback.com",
    "rewardsgiantusa.com",
    "nbcnews.com.co",
    "abcnews.com.co",
    "cbsnews.com.co",
)

DEFAULT_WATCHED_DOMAINS = (
    "4shared.com",
    "17ebook.co",
    "sapo.pt",
    "amazonaws.com",
)

# Category keyword -> tier; a higher tier wins when several rules fire.
CATEGORY_TIERS = (
    ("malware", 3),
    ("phishing", 3),
    ("clone", 2),
    ("impersonation", 2),
    ("social engineering", 1),
    ("fraud", 1),
    ("scam", 1),
)


def category_tier(category: str) -> int:
    lowered = (category or "").lower()
    return max((tier for keyword, tier in CATEGORY_TIERS if keyword in lowered), default=0)


@dataclass(frozen=True)
class PatternRule:
    """Known-scenario override: matching targets get their score multiplied."""

    name: str
    category: str
    risk_multiplier: float
    match_domains: tuple[str, ...] = ()
    match_content: tuple[str, ...] = ()
    match_app: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name:
            raise ValueError("Pattern rule requires a name")
        if self.risk_multiplier < 1.0:
            raise ValueError(f"Pattern rule {self.name}: risk_multiplier must be >= 1.0")
        for attr in ("match_domains", "match_content", "match_app"):
            values = tuple(str(v).strip().lower() for v in getattr(self, attr) if str(v).strip())
            object.__setattr__(self, attr, values)

    @property
    def tier(self) -> int:
        return category_tier(self.category)

    def match(self, domain: str, content: str, app_text: str) -> list[str]:
        """Return match descriptions; empty when the rule does not fire.

        ``content`` and ``app_text`` must already be lower-cased.
        """
        matches = []
        if domain and any(d in domain for d in self.match_domains):
            matches.append(f"{self.category}: Domain match ({domain})")
        if content and any(p in content for p in self.match_content):
            matches.append(f"{self.category}: Content match")
        if app_text and any(p in app_text for p in self.match_app):
            matches.append(f"{self.category}: App pattern match")
        return matches


DEFAULT_PATTERN_RULES = (
    PatternRule(
        "malware_distribution", "Malware Distribution", 2.0,
        match_domains=("ucoz.com", "4shared.com", "17ebook.co"),
        match_content=("file download", "malware", "infected", "dangerous sites"),
    ),
    PatternRule(
        "fraudulent_ecommerce", "E-commerce Fraud", 1.8,
        match_domains=("sheingivesback.com",),
        match_content=("product review", "credit card", "fake offers", "80% off", "90% off"),
    ),
    PatternRule(
        "news_clone", "News Site Clone", 1.7,
        match_domains=("nbcnews.com.co", "abcnews.com.co", "cbsnews.com.co"),
        match_content=("breaking news", "live updates", "abc", "nbc", "cbs"),
    ),
    PatternRule(
        "phishing_attempt", "Phishing Attempt", 1.9,
        match_content=(
            "your account has been compromised",
            "click here to secure",
            "account locked",
            "verify account",
            "suspended account",
        ),
    ),
    PatternRule(
        "social_engineering", "Social Engineering", 1.5,
        match_content=(
            "urgent claim your gift card",
            "congratulations winner",
            "limited time offer",
            "expires today",
            "act now",
            "verify your account",
            "wire transfer",
        ),
    ),
    PatternRule(
        "app_clone", "App Clone/Impersonation", 2.0,
        match_app=(
            "whatsapp plus", "gb whatsapp", "whatsapp gold",
            "netflix premium", "netflix free",
            "fake installer apk", "crypto wallet fake",
        ),
    ),
    PatternRule(
        "fleeceware", "Fleeceware/Subscription Scam", 1.6,
        match_app=(
            "step counter premium",
            "fortune teller pro",
            "palm reader premium",
            "qr scanner pro",
            "battery optimizer pro",
        ),
    ),
)


@dataclass(frozen=True)
class KnownIndicatorSet:
    """Blocked and watched domains; immutable once built."""

    blocked: frozenset = frozenset()
    watched: frozenset = frozenset()

    @classmethod
    def build(cls, blocked=(), watched=()) -> "KnownIndicatorSet":
        return cls(
            blocked=frozenset(canonicalize_domain(d) or d.lower() for d in blocked if d),
            watched=frozenset(canonicalize_domain(d) or d.lower() for d in watched if d),
        )

    def match_blocked(self, domain: str) -> Optional[str]:
        return domain_matches(domain, sorted(self.blocked))

    def match_watched(self, domain: str) -> Optional[str]:
        return domain_matches(domain, sorted(self.watched))

    def is_blocked(self, domain: str) -> bool:
        return self.match_blocked(domain) is not None

    def is_watched(self, domain: str) -> bool:
        return self.match_watched(domain) is not None


@dataclass
class ThreatIntel:
    """Loaded threat intelligence data."""

    version: str = "1.0"
    last_updated: Optional[str] = None
    indicators: KnownIndicatorSet = field(
        default_factory=lambda: KnownIndicatorSet.build(DEFAULT_BLOCKED_DOMAINS, DEFAULT_WATCHED_DOMAINS)
    )
    pattern_rules: tuple[PatternRule, ...] = DEFAULT_PATTERN_RULES
    registration_records: dict[str, dict] = field(default_factory=dict)


def _dedupe_domains(raw, label: str) -> list[str]:
    seen: set[str] = set()
    items: list[str] = []
    for item in raw or []:
        value = item.get("domain") if isinstance(item, dict) else item
        domain = canonicalize_domain(str(value or ""))
        if not domain:
            logger.warning("Skipping empty %s entry", label)
            continue
        if domain in seen:
            continue
        seen.add(domain)
        items.append(domain)
    return items


def _parse_pattern_rules(raw) -> tuple[PatternRule, ...]:
    rules: list[PatternRule] = []
    seen: set[str] = set()
    for item in raw or []:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed pattern rule: %r", item)
            continue
        name = str(item.get("name") or "").strip()
        if name in seen:
            continue
        try:
            rule = PatternRule(
                name=name,
                category=str(item.get("category") or name),
                risk_multiplier=float(item.get("risk_multiplier", 1.0)),
                match_domains=tuple(item.get("domains") or ()),
                match_content=tuple(item.get("content") or ()),
                match_app=tuple(item.get("app") or ()),
            )
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping invalid pattern rule %r: %s", name or item, exc)
            continue
        seen.add(name)
        rules.append(rule)
    return tuple(rules)


class ThreatIntelLoader:
    """Loads and manages threat intelligence data."""

    def __init__(self, config_dir: Path):
        self.config_dir = Path(config_dir)
        self.intel_file = self.config_dir / "threat_intel.yaml"
        self._intel: Optional[ThreatIntel] = None

    def load(self) -> ThreatIntel:
        """Load threat intelligence from file, falling back to built-in defaults."""
        if not self.intel_file.exists():
            logger.warning(f"Threat intel file not found: {self.intel_file}; using defaults")
            self._intel = ThreatIntel()
            return self._intel

        try:
            with open(self.intel_file) as f:
                data: Any = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("threat intel file must contain a mapping")
        except Exception as e:
            logger.error(f"Error loading threat intel: {e}")
            self._intel = ThreatIntel()
            return self._intel

        intel = ThreatIntel(
            version=str(data.get("version", "1.0")),
            last_updated=data.get("last_updated"),
        )

        blocked = (
            _dedupe_domains(data["blocked_domains"], "blocked_domains")
            if "blocked_domains" in data else DEFAULT_BLOCKED_DOMAINS
        )
        watched = (
            _dedupe_domains(data["watched_domains"], "watched_domains")
            if "watched_domains" in data else DEFAULT_WATCHED_DOMAINS
        )
        intel.indicators = KnownIndicatorSet.build(blocked, watched)

        if "pattern_rules" in data:
            intel.pattern_rules = _parse_pattern_rules(data["pattern_rules"])

        records = data.get("registration_records") or {}
        if isinstance(records, dict):
            intel.registration_records = {
                canonicalize_domain(domain): value
                for domain, value in records.items()
                if isinstance(value, dict) and canonicalize_domain(domain)
            }
        else:
            logger.warning("registration_records must be a mapping; ignoring")

        self._intel = intel
        logger.info(
            f"Loaded threat intel v{intel.version} ({len(intel.indicators.blocked)} blocked, "
            f"{len(intel.indicators.watched)} watched, {len(intel.pattern_rules)} rules, "
            f"{len(intel.registration_records)} registration records)"
        )
        return intel

    def get(self) -> ThreatIntel:
        """Get loaded threat intel, loading if necessary."""
        if self._intel is None:
            return self.load()
        return self._intel

    def reload(self) -> ThreatIntel:
        """Force reload threat intel from file."""
        self._intel = None
        return self.load()
