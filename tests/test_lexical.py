"""Tests for lexical URL/domain analysis."""

import pytest

from threatlens.analyzer.lexical import (
    LexicalAnalyzer,
    decode_punycode,
    normalize_homoglyphs,
)
from threatlens.analyzer.models import Target
from threatlens.constants import AnalyzerKind, Severity
from threatlens.errors import InvalidInput


@pytest.fixture
def analyzer():
    return LexicalAnalyzer()


def labels(result):
    return [factor.label for factor in result.factors]


def test_normalize_homoglyphs_maps_cyrillic():
    assert normalize_homoglyphs("p\u0430yp\u0430l") == "paypal"


def test_decode_punycode_passthrough_and_invalid():
    assert decode_punycode("example.com") == "example.com"
    assert decode_punycode("xn--bcher-kva.de") == "b\u00fccher.de"


@pytest.mark.asyncio
async def test_allowlisted_brand_domain_scores_zero(analyzer):
    for url in ("https://paypal.com/signin", "https://www.paypal.com/", "https://accounts.google.com/"):
        result = await analyzer.analyze(Target.from_url(url))
        assert result.available
        assert result.score == 0
        assert result.signals["allowlisted"] is True


@pytest.mark.asyncio
async def test_typosquat_with_substitution(analyzer):
    result = await analyzer.analyze(Target.from_url("http://paypa1-secure.tk/login"))
    found = labels(result)
    assert "Character substitution" in found
    assert "Suspicious TLD: .tk" in found
    assert "Insecure HTTP protocol" in found
    assert "Suspicious keywords in domain" in found
    assert result.score >= 60
    assert "Avoid entering sensitive information on HTTP sites" in result.recommendations


@pytest.mark.asyncio
async def test_brand_embedded_in_domain(analyzer):
    result = await analyzer.analyze(Target.from_url("https://paypal-account-verify.com/"))
    assert "Brand name in domain: 'paypal'" in labels(result)
    assert "paypal" in result.signals["brand_matches"]
    assert "Verify domain spelling carefully" in result.recommendations
    # brand 30 + account 10 + verify 10
    assert result.score >= 50


@pytest.mark.asyncio
async def test_homograph_attack_is_critical(analyzer):
    result = await analyzer.analyze(Target.from_url("https://p\u0430ypal.com/"))
    factor = next(f for f in result.factors if f.label == "Homograph attack detected")
    assert factor.severity is Severity.CRITICAL
    assert result.signals["homograph_of"] == "paypal"
    assert result.score >= 40


@pytest.mark.asyncio
async def test_ip_host_with_port(analyzer):
    result = await analyzer.analyze(Target.from_url("http://192.168.10.5:8080/login"))
    found = labels(result)
    assert "IP address instead of domain" in found
    assert "Non-standard port" in found
    assert result.score >= 55


@pytest.mark.asyncio
async def test_structural_flags(analyzer):
    url = "https://a.b.c.d.example.com/" + "x" * 80 + "/%2e%2e"
    result = await analyzer.analyze(Target.from_url(url))
    found = labels(result)
    assert "Excessive subdomains" in found
    assert "Unusually long URL" in found
    assert "Suspicious characters in URL" in found
    assert result.signals["subdomain_count"] == 4


@pytest.mark.asyncio
async def test_benign_domain_scores_low(analyzer):
    result = await analyzer.analyze(Target.from_url("https://example.org/about"))
    assert result.kind is AnalyzerKind.LEXICAL
    assert result.score == 0
    assert result.factors == ()
    assert result.confidence == pytest.approx(0.7)


@pytest.mark.asyncio
async def test_malformed_target_raises_invalid_input(analyzer):
    with pytest.raises(InvalidInput):
        await analyzer.analyze(Target(url="ftp://example.com"))


@pytest.mark.asyncio
async def test_failing_detector_is_isolated():
    class BrokenDetector:
        name = "broken"

        def detect(self, context):
            raise RuntimeError("boom")

    analyzer = LexicalAnalyzer(detectors=[BrokenDetector()])
    result = await analyzer.analyze(Target.from_url("https://example.org"))
    assert result.available
    assert result.score == 0


@pytest.mark.asyncio
async def test_custom_heuristics():
    analyzer = LexicalAnalyzer(
        brand_patterns=["acmebank"],
        allowlist=["acmebank.com"],
        suspicious_tlds=["zz"],
        keyword_weights=[("portal", 40)],
    )
    allowed = await analyzer.analyze(Target.from_url("https://acmebank.com"))
    assert allowed.score == 0

    result = await analyzer.analyze(Target.from_url("https://acmebank-portal.net"))
    assert "Brand name in domain: 'acmebank'" in labels(result)
    assert result.signals["host_keywords"] == ["portal"]
    assert result.score == 70
