"""Configuration management for ThreatLens."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Set

import yaml
from dotenv import load_dotenv

from .constants import DEFAULT_ANALYZER_WEIGHTS, AnalyzerKind, RiskLevel
from .utils.domains import canonicalize_domain

logger = logging.getLogger(__name__)


# Brands most often impersonated; typosquats are measured against these.
DEFAULT_BRAND_PATTERNS: list[str] = [
    "paypal",
    "amazon",
    "microsoft",
    "google",
    "apple",
    "netflix",
    "facebook",
    "instagram",
    "whatsapp",
    "chase",
    "wellsfargo",
    "bankofamerica",
    "coinbase",
    "binance",
    "dhl",
    "usps",
]

# Each brand's own registered domains; scans of these short-circuit to zero.
DEFAULT_BRAND_DOMAINS: set[str] = {
    "paypal.com",
    "amazon.com",
    "microsoft.com",
    "google.com",
    "apple.com",
    "netflix.com",
    "facebook.com",
    "instagram.com",
    "whatsapp.com",
    "chase.com",
    "wellsfargo.com",
    "bankofamerica.com",
    "coinbase.com",
    "binance.com",
    "dhl.com",
    "usps.com",
}

DEFAULT_SUSPICIOUS_TLDS: set[str] = {
    "tk",
    "ml",
    "ga",
    "cf",
    "click",
    "download",
    "loan",
    "racing",
    "cricket",
    "science",
    "work",
    "party",
    "date",
    "win",
    "xyz",
    "top",
    "online",
    "site",
    "website",
    "link",
    "club",
    "fun",
    "icu",
    "buzz",
    "quest",
}

# Default heuristics for scoring. These can be overridden via
# config/heuristics.yaml without touching code.
DEFAULT_DOMAIN_KEYWORDS: list[tuple[str, int]] = [
    ("login", 5),
    ("signin", 5),
    ("secure", 5),
    ("account", 10),
    ("verify", 10),
    ("update", 5),
    ("confirm", 5),
    ("support", 5),
    ("wallet", 10),
    ("bonus", 5),
    ("free", 5),
]

DEFAULT_SUBSTITUTIONS: dict[str, str] = {
    "4": "a",
    "3": "e",
    "1": "l",
    "0": "o",
    "5": "s",
    "@": "a",
    "$": "s",
    "rn": "m",
    "vv": "w",
}

REGISTRATION_SOURCES = ("static", "rdap")


@dataclass
class Config:
    """Application configuration loaded from environment."""

    # Operational limits
    analyzer_timeout: float = 10.0
    max_concurrent_scans: int = 5
    store_results: bool = True
    alert_min_level: str = "high"

    # Registration intelligence
    registration_source: str = "static"
    rdap_base_url: str = "https://rdap.org/domain/"

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))
    config_dir: Path = field(default_factory=lambda: Path("./config"))

    # Heuristics (override via config/heuristics.yaml)
    brand_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_BRAND_PATTERNS))
    brand_domains: Set[str] = field(default_factory=lambda: set(DEFAULT_BRAND_DOMAINS))
    suspicious_tlds: Set[str] = field(default_factory=lambda: set(DEFAULT_SUSPICIOUS_TLDS))
    domain_keyword_weights: list[tuple[str, int]] = field(
        default_factory=lambda: list(DEFAULT_DOMAIN_KEYWORDS)
    )
    substitutions: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SUBSTITUTIONS))
    analyzer_weights: dict[AnalyzerKind, float] = field(
        default_factory=lambda: dict(DEFAULT_ANALYZER_WEIGHTS)
    )

    def __post_init__(self):
        """Ensure paths exist."""
        self.data_dir = Path(self.data_dir)
        self.config_dir = Path(self.config_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.brand_domains = {canonicalize_domain(d) or d for d in self.brand_domains}

    @property
    def database_path(self) -> Path:
        return self.data_dir / "threatlens.db"

    @property
    def threat_intel_path(self) -> Path:
        return self.config_dir / "threat_intel.yaml"

    @property
    def alert_level(self) -> RiskLevel:
        return RiskLevel.from_string(self.alert_min_level)


def _load_heuristics(config_dir: Path) -> dict:
    """Load heuristic overrides from config/heuristics.yaml (optional)."""
    path = Path(config_dir or ".") / "heuristics.yaml"
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except Exception as exc:
        logger.warning("Failed to parse heuristics.yaml: %s", exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("heuristics.yaml must contain a mapping; ignoring")
        return {}

    def _coerce_keyword_weights(raw, default):
        items: list[tuple[str, int]] = []
        for entry in raw or []:
            if not isinstance(entry, dict):
                continue
            keyword = str(entry.get("keyword") or "").strip()
            try:
                points = int(entry.get("points"))
            except Exception:
                continue
            if keyword:
                items.append((keyword, points))
        return items or default

    def _coerce_analyzer_weights(raw):
        weights: dict[AnalyzerKind, float] = {}
        for key, value in (raw or {}).items():
            try:
                kind = AnalyzerKind(str(key).lower())
                weight = float(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring analyzer weight %r=%r", key, value)
                continue
            if kind in DEFAULT_ANALYZER_WEIGHTS and weight >= 0:
                weights[kind] = weight
        return weights

    def _string_list(raw):
        if not isinstance(raw, (list, set, tuple)):
            return None
        items = [str(item).strip().lower() for item in raw if str(item).strip()]
        return items or None

    domain_cfg = data.get("domain", {}) or {}
    aggregation_cfg = data.get("aggregation", {}) or {}

    substitutions = domain_cfg.get("substitutions")
    return {
        "brand_patterns": _string_list(domain_cfg.get("brand_patterns")),
        "brand_domains": _string_list(domain_cfg.get("brand_domains")),
        "suspicious_tlds": _string_list(domain_cfg.get("suspicious_tlds")),
        "domain_keyword_weights": _coerce_keyword_weights(
            domain_cfg.get("keywords"), list(DEFAULT_DOMAIN_KEYWORDS)
        ),
        "substitutions": {str(k): str(v) for k, v in substitutions.items()}
        if isinstance(substitutions, dict) else None,
        "analyzer_weights": _coerce_analyzer_weights(aggregation_cfg.get("weights")),
    }


def load_config() -> Config:
    """Load configuration from environment variables."""
    load_dotenv()

    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    heuristics = _load_heuristics(config_dir)

    weights = dict(DEFAULT_ANALYZER_WEIGHTS)
    weights.update(heuristics.get("analyzer_weights") or {})

    return Config(
        analyzer_timeout=float(os.getenv("ANALYZER_TIMEOUT", "10")),
        max_concurrent_scans=int(os.getenv("MAX_CONCURRENT_SCANS", "5")),
        store_results=os.getenv("STORE_RESULTS", "true").lower() == "true",
        alert_min_level=os.getenv("ALERT_MIN_LEVEL", "high").strip().lower() or "high",
        registration_source=os.getenv("REGISTRATION_SOURCE", "static").strip().lower() or "static",
        rdap_base_url=os.getenv("RDAP_BASE_URL", "https://rdap.org/domain/"),
        data_dir=Path(os.getenv("DATA_DIR", "./data")),
        config_dir=config_dir,
        brand_patterns=heuristics.get("brand_patterns") or list(DEFAULT_BRAND_PATTERNS),
        brand_domains=set(heuristics.get("brand_domains") or DEFAULT_BRAND_DOMAINS),
        suspicious_tlds=set(heuristics.get("suspicious_tlds") or DEFAULT_SUSPICIOUS_TLDS),
        domain_keyword_weights=heuristics.get("domain_keyword_weights", list(DEFAULT_DOMAIN_KEYWORDS)),
        substitutions=heuristics.get("substitutions") or dict(DEFAULT_SUBSTITUTIONS),
        analyzer_weights=weights,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of error messages."""
    errors: list[str] = []
    if config.analyzer_timeout <= 0:
        errors.append("ANALYZER_TIMEOUT must be positive")
    if config.max_concurrent_scans < 1:
        errors.append("MAX_CONCURRENT_SCANS must be at least 1")
    if config.registration_source not in REGISTRATION_SOURCES:
        errors.append(
            f"REGISTRATION_SOURCE must be one of {', '.join(REGISTRATION_SOURCES)}"
        )
    if config.alert_min_level not in ("high", "critical"):
        errors.append("ALERT_MIN_LEVEL must be high or critical")
    if config.registration_source == "rdap" and not config.rdap_base_url.startswith(("http://", "https://")):
        errors.append("RDAP_BASE_URL must be an http(s) URL")
    if not any(config.analyzer_weights.get(kind, 0) > 0 for kind in DEFAULT_ANALYZER_WEIGHTS):
        errors.append("At least one analyzer weight must be positive")
    if not config.threat_intel_path.exists():
        logger.info("No %s found; using built-in threat intel defaults", config.threat_intel_path)
    return errors
