"""Tests for registration intelligence and RDAP lookups."""

from datetime import datetime, timezone

import httpx
import pytest

from threatlens.analyzer.models import Target
from threatlens.analyzer.registration import (
    RdapRegistrationSource,
    RegistrationIntelligenceAnalyzer,
    RegistrationRecord,
    StaticRegistrationSource,
    parse_rdap_record,
)
from threatlens.errors import AnalyzerUnavailable

RECORDS = {
    "scam-shop.xyz": {
        "registrar": "Cheap Names Ltd",
        "created_at": "2025-12-20T00:00:00Z",
        "expires_at": "2026-01-10",
        "registrant_country": "ru",
        "privacy_protection": True,
        "dns": {
            "mx_records": ["mx.gmail.com"],
            "ip_reputation": 10,
            "subdomain_count": 12,
            "dnssec_enabled": False,
        },
    },
    "paypal.com": {
        "registrar": "MarkMonitor Inc.",
        "created_at": "1999-07-15",
        "expires_at": "2031-07-15",
        "registrant_country": "US",
        "dns": {"mx_records": ["mx1.paypal.com"], "ip_reputation": 95, "subdomain_count": 4},
    },
}

RDAP_RESPONSE = {
    "events": [
        {"eventAction": "registration", "eventDate": "2025-12-25T00:00:00Z"},
        {"eventAction": "expiration", "eventDate": "2026-12-25T00:00:00Z"},
    ],
    "entities": [
        {
            "roles": ["registrar"],
            "vcardArray": ["vcard", [["version", {}, "text", "4.0"], ["fn", {}, "text", "NameCheap, Inc."]]],
        },
        {
            "roles": ["registrant"],
            "vcardArray": [
                "vcard",
                [
                    ["fn", {}, "text", "Redacted for Privacy"],
                    ["adr", {"cc": "is"}, "text", ["", "", "", "", "", "", ""]],
                ],
            ],
        },
    ],
}


@pytest.fixture
def analyzer(fixed_now):
    return RegistrationIntelligenceAnalyzer(
        source=StaticRegistrationSource(RECORDS),
        clock=lambda: fixed_now,
    )


def labels(result):
    return [factor.label for factor in result.factors]


def test_record_from_dict_parses_dates_and_dns(fixed_now):
    record = RegistrationRecord.from_dict("WWW.Scam-Shop.xyz", RECORDS["scam-shop.xyz"])
    assert record.domain == "scam-shop.xyz"
    assert record.registrant_country == "RU"
    assert record.age_days(fixed_now) == 12
    assert record.days_until_expiry(fixed_now) == 9
    assert record.has_dns
    assert record.dns_fields()["mx_records"] == ["mx.gmail.com"]


@pytest.mark.asyncio
async def test_static_source_resolves_subdomains():
    source = StaticRegistrationSource(RECORDS)
    assert len(source) == 2
    record = await source.lookup("login.scam-shop.xyz")
    assert record.domain == "scam-shop.xyz"
    assert await source.lookup("unknown.example") is None


@pytest.mark.asyncio
async def test_new_risky_domain(analyzer):
    result = await analyzer.analyze(Target.from_url("https://login.scam-shop.xyz/"))
    found = labels(result)
    assert "Very recently registered domain" in found
    assert "Registration privacy protection" in found
    assert "High-risk registrant country" in found
    assert "Domain expires soon" in found
    assert "Domain contains suspicious keywords" in found
    assert "Poor hosting IP reputation" in found
    assert result.score == 100
    assert result.signals["domain"] == "scam-shop.xyz"
    assert result.signals["domain_age_days"] == 12
    assert result.signals["registration"]["domain_age_days"] == 12
    assert result.signals["registration"]["privacy_protection"] is True
    assert "Uses free email service for business domain" in result.signals["dns"]["suspicious_patterns"]


@pytest.mark.asyncio
async def test_established_domain_is_clean(analyzer):
    result = await analyzer.analyze(Target.from_url("https://www.paypal.com/"))
    assert result.score == 0
    assert result.factors == ()
    assert result.signals["domain_age_days"] > 9000
    assert result.signals["dns"]["suspicious_patterns"] == []


@pytest.mark.asyncio
async def test_unknown_domain_is_unavailable(analyzer):
    result = await analyzer.analyze(Target.from_url("https://nothing-known.example/"))
    assert not result.available
    assert "no registration record" in result.reason


def test_parse_rdap_record():
    record = parse_rdap_record("newsite.com", RDAP_RESPONSE)
    assert record.registrar == "NameCheap, Inc."
    assert record.registrant_country == "IS"
    assert record.privacy_protection is True
    assert record.created_at == datetime(2025, 12, 25, tzinfo=timezone.utc)
    assert not record.has_dns
    assert parse_rdap_record("newsite.com", ["not", "a", "dict"]) is None


@pytest.mark.asyncio
async def test_rdap_source_lookup():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.path)
        if request.url.path.endswith("/newsite.com"):
            return httpx.Response(200, json=RDAP_RESPONSE)
        if request.url.path.endswith("/broken.com"):
            return httpx.Response(503)
        return httpx.Response(404)

    source = RdapRegistrationSource("https://rdap.test/domain", transport=httpx.MockTransport(handler))
    record = await source.lookup("www.newsite.com")
    assert requested[0] == "/domain/newsite.com"
    assert record.registrar == "NameCheap, Inc."

    assert await source.lookup("missing.com") is None

    with pytest.raises(AnalyzerUnavailable):
        await source.lookup("broken.com")


@pytest.mark.asyncio
async def test_rdap_failure_makes_analyzer_unavailable(fixed_now):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    analyzer = RegistrationIntelligenceAnalyzer(
        source=RdapRegistrationSource("https://rdap.test/domain/", transport=transport),
        clock=lambda: fixed_now,
    )
    result = await analyzer.analyze(Target.from_url("https://example.com"))
    assert not result.available
    assert result.reason == "RDAP lookup failed (500)"
