"""Domain registration intelligence (WHOIS/RDAP age, registrant and DNS patterns)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Sequence

import httpx

from ..config import DEFAULT_SUSPICIOUS_TLDS
from ..constants import AnalyzerKind, Severity
from ..errors import AnalyzerUnavailable, InvalidInput
from ..utils.domains import canonicalize_domain, parse_target_url, registered_domain
from .base import BaseAnalyzer
from .models import RiskFactor, Target
from .rules import DetectionContext, Detector, SignalResult

logger = logging.getLogger(__name__)

DEFAULT_RDAP_BASE_URL = "https://rdap.org/domain/"

HIGH_RISK_COUNTRIES = frozenset({"CN", "RU", "KP"})
SUSPICIOUS_NAME_KEYWORDS = ("temp", "fake", "test", "spam", "scam", "phish", "hack", "fraud")
FREE_MAIL_PROVIDERS = ("gmail.com", "yahoo.com", "hotmail.com", "outlook.com")
PRIVACY_MARKERS = ("privacy", "redacted", "withheld", "proxy")

NEW_DOMAIN_DAYS = 30
RECENT_DOMAIN_DAYS = 90
EXPIRY_WARNING_DAYS = 30
POOR_IP_REPUTATION = 30
MAX_SUBDOMAINS = 10


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.debug("Unparseable registration date: %r", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class RegistrationRecord:
    """WHOIS/RDAP facts for a registered domain, plus an optional DNS snapshot."""

    domain: str
    registrar: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    registrant_country: Optional[str] = None
    privacy_protection: bool = False
    mx_records: tuple[str, ...] = ()
    ip_reputation: Optional[int] = None
    subdomain_count: Optional[int] = None
    dnssec_enabled: Optional[bool] = None

    @classmethod
    def from_dict(cls, domain: str, data: Mapping[str, Any]) -> "RegistrationRecord":
        dns = data.get("dns") or {}
        country = data.get("registrant_country") or data.get("country")
        return cls(
            domain=canonicalize_domain(domain),
            registrar=data.get("registrar"),
            created_at=_parse_datetime(data.get("created_at") or data.get("creation_date")),
            expires_at=_parse_datetime(data.get("expires_at") or data.get("expiration_date")),
            registrant_country=str(country).upper() if country else None,
            privacy_protection=bool(data.get("privacy_protection", False)),
            mx_records=tuple(str(mx).lower() for mx in (dns.get("mx_records") or [])),
            ip_reputation=dns.get("ip_reputation"),
            subdomain_count=dns.get("subdomain_count"),
            dnssec_enabled=dns.get("dnssec_enabled"),
        )

    @property
    def has_dns(self) -> bool:
        return bool(self.mx_records) or self.ip_reputation is not None or self.subdomain_count is not None

    def age_days(self, now: datetime) -> Optional[int]:
        if self.created_at is None:
            return None
        return max(0, (now - self.created_at).days)

    def days_until_expiry(self, now: datetime) -> Optional[int]:
        if self.expires_at is None:
            return None
        return (self.expires_at - now).days

    def registration_fields(self, now: datetime) -> dict:
        return {
            "registrar": self.registrar,
            "creation_date": self.created_at.isoformat() if self.created_at else None,
            "expiration_date": self.expires_at.isoformat() if self.expires_at else None,
            "registrant_country": self.registrant_country,
            "privacy_protection": self.privacy_protection,
            "domain_age_days": self.age_days(now),
        }

    def dns_fields(self) -> Optional[dict]:
        if not self.has_dns:
            return None
        return {
            "mx_records": list(self.mx_records),
            "ip_reputation": self.ip_reputation,
            "subdomain_count": self.subdomain_count,
            "dnssec_enabled": self.dnssec_enabled,
        }


class RegistrationSource(Protocol):
    async def lookup(self, domain: str) -> Optional[RegistrationRecord]:  # pragma: no cover - interface
        ...


class StaticRegistrationSource:
    """Deterministic source backed by configured records keyed by registered domain."""

    def __init__(self, records: Optional[Mapping[str, Any]] = None):
        self._records: dict[str, RegistrationRecord] = {}
        for domain, value in (records or {}).items():
            record = value if isinstance(value, RegistrationRecord) else RegistrationRecord.from_dict(domain, value)
            self._records[canonicalize_domain(domain)] = record

    async def lookup(self, domain: str) -> Optional[RegistrationRecord]:
        key = canonicalize_domain(domain)
        return self._records.get(key) or self._records.get(registered_domain(key))

    def __len__(self) -> int:
        return len(self._records)


def _extract_first_vcard_value(vcard_array: object, field: str) -> Optional[str]:
    """Extract first vCard value for a given field (e.g., 'fn')."""
    if not isinstance(vcard_array, list) or len(vcard_array) < 2:
        return None
    entries = vcard_array[1]
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if not isinstance(entry, list) or len(entry) < 4:
            continue
        if str(entry[0]).lower() != field.lower():
            continue
        if field.lower() == "adr":
            params = entry[1] if isinstance(entry[1], dict) else {}
            cc = params.get("cc")
            if isinstance(cc, str) and cc.strip():
                return cc.strip().upper()
            continue
        value = entry[3]
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_rdap_record(domain: str, data: object) -> Optional[RegistrationRecord]:
    """Build a RegistrationRecord from RDAP JSON (best-effort)."""
    if not isinstance(data, dict):
        return None

    created_at = expires_at = None
    for event in data.get("events") or []:
        if not isinstance(event, dict):
            continue
        action = str(event.get("eventAction", "")).lower()
        if action == "registration":
            created_at = _parse_datetime(event.get("eventDate"))
        elif action == "expiration":
            expires_at = _parse_datetime(event.get("eventDate"))

    registrar = country = None
    privacy = False
    for entity in data.get("entities") or []:
        if not isinstance(entity, dict):
            continue
        roles = entity.get("roles", []) or []
        vcard = entity.get("vcardArray")
        if "registrar" in roles:
            registrar = _extract_first_vcard_value(vcard, "fn") or registrar
        if "registrant" in roles:
            country = _extract_first_vcard_value(vcard, "adr") or country
            name = (_extract_first_vcard_value(vcard, "fn") or "").lower()
            if any(marker in name for marker in PRIVACY_MARKERS):
                privacy = True

    for remark in data.get("remarks") or []:
        title = str((remark or {}).get("title", "")).lower() if isinstance(remark, dict) else ""
        if any(marker in title for marker in PRIVACY_MARKERS):
            privacy = True

    return RegistrationRecord(
        domain=canonicalize_domain(domain),
        registrar=registrar,
        created_at=created_at,
        expires_at=expires_at,
        registrant_country=country,
        privacy_protection=privacy,
    )


class RdapRegistrationSource:
    """Looks up registration data over RDAP (HTTP JSON)."""

    def __init__(
        self,
        base_url: str = DEFAULT_RDAP_BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout
        self._transport = transport

    async def lookup(self, domain: str) -> Optional[RegistrationRecord]:
        normalized = registered_domain(domain)
        if not normalized:
            return None
        url = f"{self.base_url}{normalized}"
        async with httpx.AsyncClient(
            timeout=self.timeout, follow_redirects=True, transport=self._transport
        ) as client:
            resp = await client.get(url, headers={"User-Agent": "ThreatLens/1.0"})
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise AnalyzerUnavailable(AnalyzerKind.REGISTRATION.value, f"RDAP lookup failed ({resp.status_code})")
        try:
            data = resp.json()
        except ValueError as exc:
            raise AnalyzerUnavailable(AnalyzerKind.REGISTRATION.value, "RDAP returned non-JSON response") from exc
        return parse_rdap_record(normalized, data)


class DomainAgeDetector:
    name = "domain_age"

    def detect(self, context: DetectionContext) -> SignalResult:
        record: RegistrationRecord = context.extras["record"]
        age = record.age_days(context.extras["now"])
        result = SignalResult(self.name, metadata={"domain_age_days": age})
        if age is None:
            return result
        if age < NEW_DOMAIN_DAYS:
            result.score = 40
            result.factors.append(RiskFactor(
                "Very recently registered domain",
                Severity.HIGH,
                0.9,
                f"Domain was registered {age} days ago (< {NEW_DOMAIN_DAYS} days)",
            ))
            result.recommendations.append("Be cautious with newly registered domains")
        elif age < RECENT_DOMAIN_DAYS:
            result.score = 20
            result.factors.append(RiskFactor(
                "Recently registered domain",
                Severity.MEDIUM,
                0.8,
                f"Domain was registered {age} days ago (< {RECENT_DOMAIN_DAYS} days)",
            ))
            result.recommendations.append("Be cautious with newly registered domains")
        return result


class RegistrantDetector:
    """Privacy protection, registrant country and imminent expiry."""

    name = "registrant"

    def detect(self, context: DetectionContext) -> SignalResult:
        record: RegistrationRecord = context.extras["record"]
        result = SignalResult(
            self.name,
            metadata={
                "registrar": record.registrar,
                "registrant_country": record.registrant_country,
                "privacy_protection": record.privacy_protection,
            },
        )
        if record.privacy_protection:
            result.score += 15
            result.factors.append(RiskFactor(
                "Registration privacy protection",
                Severity.LOW,
                0.5,
                "Registrant identity is hidden behind a privacy service",
            ))
        if record.registrant_country in HIGH_RISK_COUNTRIES:
            result.score += 15
            result.factors.append(RiskFactor(
                "High-risk registrant country",
                Severity.MEDIUM,
                0.6,
                f"Domain registered in {record.registrant_country}",
            ))
        days_left = record.days_until_expiry(context.extras["now"])
        result.metadata["days_until_expiry"] = days_left
        if days_left is not None and days_left < EXPIRY_WARNING_DAYS:
            result.score += 15
            result.factors.append(RiskFactor(
                "Domain expires soon",
                Severity.LOW,
                0.6,
                f"Registration expires in {days_left} days (possible throwaway domain)",
            ))
        return result


class DomainNameDetector:
    name = "domain_name"

    def __init__(self, suspicious_tlds: Iterable[str] = DEFAULT_SUSPICIOUS_TLDS):
        self.suspicious_tlds = tuple(t.lower().lstrip(".") for t in suspicious_tlds)

    def detect(self, context: DetectionContext) -> SignalResult:
        domain = context.host
        result = SignalResult(self.name)
        if any(domain.endswith("." + tld) for tld in self.suspicious_tlds):
            result.score += 15
            result.factors.append(RiskFactor(
                "Suspicious top-level domain",
                Severity.MEDIUM,
                0.7,
                "Domain is registered under a TLD frequently used for abuse",
            ))
        keywords = [k for k in SUSPICIOUS_NAME_KEYWORDS if k in domain]
        if keywords:
            result.score += 15
            result.factors.append(RiskFactor(
                "Domain contains suspicious keywords",
                Severity.MEDIUM,
                0.7,
                f"Domain name includes: {', '.join(keywords)}",
            ))
        return result


class DnsPatternDetector:
    name = "dns"

    def detect(self, context: DetectionContext) -> SignalResult:
        record: RegistrationRecord = context.extras["record"]
        result = SignalResult(self.name)
        if not record.has_dns:
            return result

        patterns = []
        base = record.domain
        if record.mx_records and any(not mx.endswith(base) for mx in record.mx_records):
            result.score += 10
            patterns.append("MX records point to unrelated domains")
        if any(provider in mx for mx in record.mx_records for provider in FREE_MAIL_PROVIDERS):
            result.score += 15
            patterns.append("Uses free email service for business domain")
            result.factors.append(RiskFactor(
                "Free e-mail provider for domain mail",
                Severity.LOW,
                0.6,
                "Domain mail is handled by a consumer e-mail service",
            ))
        if record.ip_reputation is not None and record.ip_reputation < POOR_IP_REPUTATION:
            result.score += 20
            patterns.append("Hosting IP has poor reputation")
            result.factors.append(RiskFactor(
                "Poor hosting IP reputation",
                Severity.MEDIUM,
                0.7,
                f"Hosting IP reputation is {record.ip_reputation}/100",
            ))
        if record.subdomain_count is not None and record.subdomain_count > MAX_SUBDOMAINS:
            result.score += 10
            patterns.append(f"High subdomain count: {record.subdomain_count}")

        result.metadata["dns_patterns"] = patterns
        return result


class RegistrationIntelligenceAnalyzer(BaseAnalyzer):
    """Scores a domain's registration history through a pluggable source."""

    kind = AnalyzerKind.REGISTRATION

    def __init__(
        self,
        source: Optional[RegistrationSource] = None,
        detectors: Optional[Sequence[Detector]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.source = source if source is not None else StaticRegistrationSource()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        super().__init__(detectors)

    def default_detectors(self) -> list[Detector]:
        return [DomainAgeDetector(), RegistrantDetector(), DomainNameDetector(), DnsPatternDetector()]

    async def prepare(self, target: Target) -> DetectionContext:
        parsed = parse_target_url(target.url)
        domain = registered_domain(parsed.hostname or "")
        if not domain:
            raise InvalidInput(f"URL has no registrable domain: {target.url}")

        record = await self.source.lookup(domain)
        if record is None:
            raise AnalyzerUnavailable(self.kind.value, f"no registration record for {domain}")

        now = self.clock()
        return DetectionContext(
            target=target,
            host=domain,
            extras={"record": record, "now": now},
        )

    def run(self, context: DetectionContext):
        result = super().run(context)
        record: RegistrationRecord = context.extras["record"]
        signals = dict(result.signals)
        signals["domain"] = record.domain
        signals["registration"] = record.registration_fields(context.extras["now"])
        dns = record.dns_fields()
        if dns is not None:
            dns["suspicious_patterns"] = list(signals.get("dns_patterns", []))
            signals["dns"] = dns
        return replace(result, signals=signals)
