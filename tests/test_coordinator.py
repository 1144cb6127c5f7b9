"""Tests for the scan coordinator."""

import asyncio

import pytest

from threatlens.analyzer.models import AnalyzerResult, Unavailable
from threatlens.config import Config
from threatlens.constants import AnalyzerKind, RiskLevel
from threatlens.errors import InvalidInput, PersistenceFailure
from threatlens.pipeline import ScanCoordinator, ScanOptions

L = AnalyzerKind.LEXICAL
N = AnalyzerKind.NLP
V = AnalyzerKind.VISUAL
R = AnalyzerKind.REGISTRATION


class DummyAnalyzer:
    def __init__(self, kind, score=0, signals=None, delay=0.0, gate=None, error=None):
        self.kind = kind
        self.score = score
        self.signals = signals or {}
        self.delay = delay
        self.gate = gate
        self.error = error
        self.calls = 0
        self.active = 0
        self.max_active = 0

    async def analyze(self, target):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return AnalyzerResult(self.kind, self.score, signals=self.signals)
        finally:
            self.active -= 1


class DummyEngine:
    def __init__(self, error):
        self.error = error

    def combine(self, target, results):
        raise self.error


class DummyStore:
    def __init__(self, error=None):
        self.error = error
        self.alerts: list = []
        self.registrations: list = []
        self.dns: list = []

    async def insert_alert(self, record):
        if self.error:
            raise self.error
        self.alerts.append(record)

    async def upsert_registration_record(self, domain, fields):
        if self.error:
            raise self.error
        self.registrations.append((domain, fields))

    async def insert_dns_snapshot(self, domain, fields):
        if self.error:
            raise self.error
        self.dns.append((domain, fields))


REGISTRATION_SIGNALS = {
    "domain": "example.com",
    "domain_age_days": 5,
    "registration": {"registrar": "Cheap Names Ltd", "domain_age_days": 5},
    "dns": {"mx_records": ["mx.gmail.com"], "suspicious_patterns": ["Uses free email service for business domain"]},
}


def make_coordinator(*analyzers, **kwargs):
    return ScanCoordinator(analyzers={a.kind: a for a in analyzers}, **kwargs)


@pytest.mark.asyncio
async def test_concurrent_scans_of_same_url_share_one_run():
    gate = asyncio.Event()
    analyzer = DummyAnalyzer(N, 80, gate=gate)
    coordinator = make_coordinator(analyzer)

    first = asyncio.ensure_future(coordinator.scan("https://example.com/x"))
    second = asyncio.ensure_future(coordinator.scan("https://example.com/x"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    assert coordinator.stats()["active_scans"] == 1

    gate.set()
    v1, v2 = await asyncio.gather(first, second)
    assert v1 is v2
    assert analyzer.calls == 1
    assert coordinator.stats()["active_scans"] == 0

    await coordinator.scan("https://example.com/x")
    assert analyzer.calls == 2


@pytest.mark.asyncio
async def test_failed_scan_is_released_and_rejects_waiters():
    gate = asyncio.Event()
    analyzer = DummyAnalyzer(N, 10, gate=gate)
    coordinator = ScanCoordinator(analyzers={N: analyzer}, engine=DummyEngine(RuntimeError("boom")))

    first = asyncio.ensure_future(coordinator.scan("https://example.com"))
    second = asyncio.ensure_future(coordinator.scan("https://example.com"))
    await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(first, second, return_exceptions=True)
    assert all(isinstance(r, RuntimeError) for r in results)
    assert coordinator.stats()["active_scans"] == 0

    with pytest.raises(RuntimeError):
        await coordinator.scan("https://example.com")
    assert analyzer.calls == 2


@pytest.mark.asyncio
async def test_invalid_url_raises():
    coordinator = make_coordinator(DummyAnalyzer(N, 10))
    with pytest.raises(InvalidInput):
        await coordinator.scan("not a url")
    with pytest.raises(InvalidInput):
        await coordinator.scan({"url": "ftp://example.com"})
    assert coordinator.stats()["active_scans"] == 0


@pytest.mark.asyncio
async def test_analyzer_invalid_input_propagates():
    coordinator = make_coordinator(DummyAnalyzer(L, error=InvalidInput("bad host")), DummyAnalyzer(N, 50))
    with pytest.raises(InvalidInput):
        await coordinator.scan("https://example.com")


@pytest.mark.asyncio
async def test_timeout_and_errors_become_unavailable():
    coordinator = make_coordinator(
        DummyAnalyzer(N, 80),
        DummyAnalyzer(V, 100, delay=1.0),
        DummyAnalyzer(L, 100, error=RuntimeError("crashed")),
    )
    verdict = await coordinator.scan("https://example.com", ScanOptions(timeout=0.05))
    assert verdict.analyzers == (N,)
    assert verdict.risk_score == 80
    summary = coordinator.metrics.get_summary()
    assert summary["unavailable"] == {"visual": 1, "lexical": 1}


@pytest.mark.asyncio
async def test_scan_options_skip_analyzers():
    lexical = DummyAnalyzer(L, 20)
    nlp = DummyAnalyzer(N, 90)
    coordinator = make_coordinator(lexical, nlp)
    verdict = await coordinator.scan("https://example.com", ScanOptions(include_nlp=False))
    assert nlp.calls == 0
    assert verdict.analyzers == (L,)
    assert verdict.risk_score == 20


@pytest.mark.asyncio
async def test_alert_observers_are_isolated():
    coordinator = make_coordinator(DummyAnalyzer(N, 90))
    received = []

    async def async_observer(verdict):
        received.append(("async", verdict.url))

    def failing_observer(verdict):
        raise RuntimeError("observer down")

    coordinator.on_alert(failing_observer)
    coordinator.on_alert(lambda verdict: received.append(("sync", verdict.url)))
    unsubscribe = coordinator.on_alert(async_observer)
    assert coordinator.stats()["alert_callbacks"] == 3

    verdict = await coordinator.scan("https://example.com")
    assert verdict.risk_level is RiskLevel.CRITICAL
    assert received == [("sync", "https://example.com"), ("async", "https://example.com")]

    unsubscribe()
    received.clear()
    await coordinator.scan("https://example.com")
    assert received == [("sync", "https://example.com")]

    coordinator.clear_alert_callbacks()
    assert coordinator.stats()["alert_callbacks"] == 0


@pytest.mark.asyncio
async def test_low_risk_and_disabled_alerts_are_not_dispatched():
    received = []
    low = make_coordinator(DummyAnalyzer(N, 20))
    low.on_alert(received.append)
    await low.scan("https://example.com")

    high = make_coordinator(DummyAnalyzer(N, 90))
    high.on_alert(received.append)
    await high.scan("https://example.com", ScanOptions(enable_alerts=False))
    assert received == []


@pytest.mark.asyncio
async def test_alert_level_is_configurable():
    received = []
    coordinator = make_coordinator(DummyAnalyzer(N, 75), alert_level=RiskLevel.CRITICAL)
    coordinator.on_alert(received.append)
    await coordinator.scan("https://example.com")
    assert received == []


@pytest.mark.asyncio
async def test_clearing_alert_callbacks_stops_delivery():
    received = []
    coordinator = make_coordinator(DummyAnalyzer(N, 90))
    coordinator.on_alert(received.append)
    coordinator.on_alert(lambda verdict: received.append(verdict.url))
    assert coordinator.stats()["alert_callbacks"] == 2

    coordinator.clear_alert_callbacks()
    await coordinator.scan("https://example.com")
    assert received == []
    assert coordinator.stats()["alert_callbacks"] == 0


@pytest.mark.asyncio
async def test_results_are_persisted():
    store = DummyStore()
    coordinator = make_coordinator(
        DummyAnalyzer(N, 90),
        DummyAnalyzer(R, 90, signals=REGISTRATION_SIGNALS),
        store=store,
    )
    verdict = await coordinator.scan("https://example.com")
    assert store.alerts == [verdict.to_dict()]
    assert store.registrations == [("example.com", {"registrar": "Cheap Names Ltd", "domain_age_days": 5})]
    assert store.dns[0][0] == "example.com"
    assert store.dns[0][1]["suspicious_patterns"] == ["Uses free email service for business domain"]


@pytest.mark.asyncio
async def test_low_risk_verdict_stores_registration_only():
    store = DummyStore()
    coordinator = make_coordinator(DummyAnalyzer(R, 10, signals=REGISTRATION_SIGNALS), store=store)
    await coordinator.scan("https://example.com")
    assert store.alerts == []
    assert len(store.registrations) == 1


@pytest.mark.asyncio
async def test_store_results_disabled():
    store = DummyStore()
    coordinator = make_coordinator(
        DummyAnalyzer(N, 90), DummyAnalyzer(R, 90, signals=REGISTRATION_SIGNALS), store=store
    )
    await coordinator.scan("https://example.com", ScanOptions(store_results=False))
    assert store.alerts == [] and store.registrations == [] and store.dns == []


@pytest.mark.asyncio
async def test_persistence_failure_does_not_fail_scan():
    for error in (PersistenceFailure("disk full"), OSError("locked")):
        coordinator = make_coordinator(
            DummyAnalyzer(N, 90),
            DummyAnalyzer(R, 90, signals=REGISTRATION_SIGNALS),
            store=DummyStore(error=error),
        )
        verdict = await coordinator.scan("https://example.com")
        assert verdict.risk_level is RiskLevel.CRITICAL


@pytest.mark.asyncio
async def test_scan_many_preserves_order_and_drops_invalid():
    analyzer = DummyAnalyzer(N, 30, delay=0.01)
    coordinator = make_coordinator(analyzer, max_concurrent_scans=1)
    verdicts = await coordinator.scan_many(
        ["https://a.test/", "not a url", {"url": "https://b.test/", "content": "hi"}, "https://c.test/"]
    )
    assert [v.url for v in verdicts] == ["https://a.test/", "https://b.test/", "https://c.test/"]
    assert analyzer.max_active == 1


@pytest.mark.asyncio
async def test_stats_track_completed_scans():
    coordinator = make_coordinator(DummyAnalyzer(N, 90))
    await coordinator.scan("https://one.test")
    await coordinator.scan("https://two.test")
    stats = coordinator.stats()
    assert stats["scans_completed"] == 2
    assert stats["verdicts_by_level"] == {"critical": 2}


@pytest.mark.asyncio
async def test_default_pipeline_end_to_end():
    coordinator = ScanCoordinator()

    blocked = await coordinator.scan("https://news.abcnews.com.co/")
    assert blocked.risk_score == 100
    assert blocked.threat_category == "Known Malicious Domain"

    safe = await coordinator.scan("https://paypal.com/")
    assert safe.risk_score == 0
    assert safe.risk_level is RiskLevel.LOW
    assert safe.threat_category == "Safe Content"
    assert safe.analyzers == (L,)


@pytest.mark.asyncio
async def test_default_pipeline_flags_scam_page():
    coordinator = ScanCoordinator()
    verdict = await coordinator.scan({
        "url": "http://paypa1-secure.tk/login",
        "content": (
            "URGENT!!! We are PayPal security department. Account locked: your access will be "
            "suspended within 24 hours. Enter your bank account details now to keep access!"
        ),
    })
    assert verdict.risk_level >= RiskLevel.HIGH
    assert verdict.threat_category == "Phishing Attempt"
    assert "Phishing Attempt: Content match" in verdict.pattern_matches
    assert set(verdict.analyzers) == {L, N}


@pytest.mark.asyncio
async def test_from_config_wires_static_registration(tmp_path):
    (tmp_path / "threat_intel.yaml").write_text(
        "registration_records:\n"
        "  fresh-site.test:\n"
        "    created_at: 2099-01-01\n"
    )
    config = Config(data_dir=tmp_path / "data", config_dir=tmp_path)
    coordinator = ScanCoordinator.from_config(config)
    assert set(coordinator.analyzers) == set(AnalyzerKind)

    verdict = await coordinator.scan("https://fresh-site.test/")
    assert R in verdict.analyzers

    (tmp_path / "threat_intel.yaml").write_text("registration_records: {}\n")
    coordinator.reload_threat_intel()
    verdict = await coordinator.scan("https://fresh-site.test/")
    assert R not in verdict.analyzers


@pytest.mark.asyncio
async def test_unavailable_results_are_reported():
    class AlwaysUnavailable:
        kind = V

        async def analyze(self, target):
            return Unavailable(V, "no content")

    coordinator = make_coordinator(AlwaysUnavailable(), DummyAnalyzer(N, 10))
    verdict = await coordinator.scan("https://example.com")
    assert verdict.analyzers == (N,)
    assert coordinator.metrics.get_summary()["unavailable"] == {"visual": 1}


@pytest.mark.parametrize(
    "content, expected_factors",
    [
        (
            "URGENT: please verify your account within 24 hours. "
            "Send the fee by wire transfer to avoid suspension.",
            {"High Urgency Language", "Financial Information Request"},
        ),
        (
            "urgent... verify your account ... wire transfer",
            {"High Urgency Language", "Financial Information Request"},
        ),
    ],
)
@pytest.mark.asyncio
async def test_urgent_wire_transfer_request_on_unlisted_domain(content, expected_factors):
    coordinator = ScanCoordinator()
    verdict = await coordinator.scan({"url": "https://example-shop.com/notice", "content": content})

    assert verdict.risk_level in (RiskLevel.MEDIUM, RiskLevel.HIGH)
    assert expected_factors <= {factor.label for factor in verdict.risk_factors}
    assert verdict.threat_category == "Social Engineering"
    # plain text carries no markup for the visual analyzer
    assert V not in verdict.analyzers
    assert N in verdict.analyzers
