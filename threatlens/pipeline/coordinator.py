"""Scan coordinator: dedup, concurrent analyzers, alerts and persistence."""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

from ..analyzer.aggregation import AggregationEngine
from ..analyzer.base import BaseAnalyzer
from ..analyzer.content_language import ContentLanguageAnalyzer
from ..analyzer.lexical import LexicalAnalyzer
from ..analyzer.mobile_app import MobileAppAnalyzer
from ..analyzer.models import AnalyzerOutcome, Target, ThreatVerdict, Unavailable
from ..analyzer.registration import (
    RdapRegistrationSource,
    RegistrationIntelligenceAnalyzer,
    StaticRegistrationSource,
)
from ..analyzer.threat_intel import ThreatIntelLoader
from ..analyzer.visual import VisualSimilarityAnalyzer
from ..constants import AnalyzerKind, RiskLevel
from ..errors import InvalidInput, PersistenceFailure
from ..storage.database import ScanStore
from .alerts import AlertCallback, AlertHub
from .metrics import ScanMetrics

logger = logging.getLogger(__name__)

TargetInput = Union[Target, str, Mapping[str, Any]]


@dataclass(frozen=True)
class ScanOptions:
    include_lexical: bool = True
    include_nlp: bool = True
    include_visual: bool = True
    include_mobile: bool = True
    include_registration: bool = True
    enable_alerts: bool = True
    store_results: bool = True
    timeout: Optional[float] = None

    def includes(self, kind: AnalyzerKind) -> bool:
        return {
            AnalyzerKind.LEXICAL: self.include_lexical,
            AnalyzerKind.NLP: self.include_nlp,
            AnalyzerKind.VISUAL: self.include_visual,
            AnalyzerKind.MOBILE: self.include_mobile,
            AnalyzerKind.REGISTRATION: self.include_registration,
        }[kind]


def coerce_target(value: TargetInput) -> Target:
    """Accept a Target, a URL string or a {url, content, app_metadata} mapping."""
    if isinstance(value, Target):
        return value
    if isinstance(value, str):
        return Target.from_url(value)
    if isinstance(value, Mapping):
        return Target.from_url(
            value.get("url", ""),
            content=value.get("content"),
            app_metadata=value.get("app_metadata"),
        )
    raise InvalidInput(f"Unsupported scan target: {value!r}")


class ScanCoordinator:
    """Public entry point for scanning URLs, page content and app listings."""

    def __init__(
        self,
        analyzers: Optional[Mapping[AnalyzerKind, BaseAnalyzer]] = None,
        engine: Optional[AggregationEngine] = None,
        store: Optional[ScanStore] = None,
        timeout: float = 10.0,
        max_concurrent_scans: int = 5,
        alert_level: RiskLevel = RiskLevel.HIGH,
        metrics: Optional[ScanMetrics] = None,
    ):
        if analyzers is None:
            analyzers = {
                AnalyzerKind.LEXICAL: LexicalAnalyzer(),
                AnalyzerKind.NLP: ContentLanguageAnalyzer(),
                AnalyzerKind.VISUAL: VisualSimilarityAnalyzer(),
                AnalyzerKind.MOBILE: MobileAppAnalyzer(),
                AnalyzerKind.REGISTRATION: RegistrationIntelligenceAnalyzer(),
            }
        self.analyzers = dict(analyzers)
        self.engine = engine or AggregationEngine()
        self.store = store
        self.timeout = timeout
        self.max_concurrent_scans = max(1, max_concurrent_scans)
        self.alert_level = alert_level
        self.metrics = metrics or ScanMetrics()
        self.alerts = AlertHub()

        self._lock = threading.Lock()
        self._in_flight: dict[str, asyncio.Future] = {}

    @classmethod
    def from_config(cls, config, store: Optional[ScanStore] = None) -> "ScanCoordinator":
        """Wire analyzers, threat intel and the registration source from Config."""
        loader = ThreatIntelLoader(config.config_dir)
        intel = loader.get()
        if config.registration_source == "rdap":
            source = RdapRegistrationSource(config.rdap_base_url, timeout=config.analyzer_timeout)
        else:
            source = StaticRegistrationSource(intel.registration_records)

        analyzers = {
            AnalyzerKind.LEXICAL: LexicalAnalyzer(
                brand_patterns=config.brand_patterns,
                allowlist=config.brand_domains,
                suspicious_tlds=config.suspicious_tlds,
                keyword_weights=config.domain_keyword_weights,
                substitutions=config.substitutions,
            ),
            AnalyzerKind.NLP: ContentLanguageAnalyzer(),
            AnalyzerKind.VISUAL: VisualSimilarityAnalyzer(),
            AnalyzerKind.MOBILE: MobileAppAnalyzer(),
            AnalyzerKind.REGISTRATION: RegistrationIntelligenceAnalyzer(source=source),
        }
        return cls(
            analyzers=analyzers,
            engine=AggregationEngine(intel=intel, weights=config.analyzer_weights, loader=loader),
            store=store,
            timeout=config.analyzer_timeout,
            max_concurrent_scans=config.max_concurrent_scans,
            alert_level=config.alert_level,
        )

    def reload_threat_intel(self) -> str:
        """Hot-reload block lists, pattern rules and static registration records."""
        version = self.engine.reload_threat_intel()
        registration = self.analyzers.get(AnalyzerKind.REGISTRATION)
        if isinstance(registration, RegistrationIntelligenceAnalyzer) and isinstance(
            registration.source, StaticRegistrationSource
        ):
            registration.source = StaticRegistrationSource(self.engine.intel.registration_records)
        return version

    def on_alert(self, callback: AlertCallback):
        """Subscribe to high-risk verdicts; returns an unsubscribe function."""
        return self.alerts.subscribe(callback)

    def clear_alert_callbacks(self) -> None:
        self.alerts.clear()

    async def scan(self, target: TargetInput, options: Optional[ScanOptions] = None) -> ThreatVerdict:
        """Scan one target. Concurrent scans of the same URL share one result."""
        target = coerce_target(target)
        options = options or ScanOptions()
        key = target.key
        loop = asyncio.get_running_loop()

        with self._lock:
            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = loop.create_future()
                self._in_flight[key] = future

        if not owner:
            logger.debug("Joining in-flight scan for %s", key)
            return await asyncio.shield(future)

        try:
            try:
                results = await self._run_analyzers(target, options)
                verdict = self.engine.combine(target, results)
            except BaseException as exc:
                self.metrics.record_failure()
                if not future.done():
                    future.set_exception(exc)
                    # Mark retrieved so unawaited failures don't warn at shutdown.
                    future.exception()
                raise

            future.set_result(verdict)
            self.metrics.record_verdict(str(verdict.risk_level), verdict.threat_category, verdict.pattern_matches)
            logger.info(
                "Verdict for %s: %s %s (%s, confidence %s)",
                target.url, verdict.risk_score, verdict.risk_level, verdict.threat_category, verdict.confidence,
            )
            await self._dispatch(verdict, results, options)
            return verdict
        finally:
            with self._lock:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]

    async def scan_many(
        self, targets: Iterable[TargetInput], options: Optional[ScanOptions] = None
    ) -> list[ThreatVerdict]:
        """Scan several targets concurrently; invalid inputs are logged and dropped."""
        prepared: list[Target] = []
        for item in targets:
            try:
                prepared.append(coerce_target(item))
            except InvalidInput as exc:
                logger.warning("Skipping invalid scan target %r: %s", item, exc)

        semaphore = asyncio.Semaphore(self.max_concurrent_scans)

        async def _bounded(target: Target) -> Optional[ThreatVerdict]:
            async with semaphore:
                try:
                    return await self.scan(target, options)
                except InvalidInput as exc:
                    logger.warning("Skipping invalid scan target %s: %s", target.url, exc)
                    return None

        verdicts = await asyncio.gather(*[_bounded(t) for t in prepared])
        return [v for v in verdicts if v is not None]

    def stats(self) -> dict:
        with self._lock:
            active = len(self._in_flight)
        return {
            "active_scans": active,
            "alert_callbacks": len(self.alerts),
            "scans_completed": self.metrics.total_scans,
            "verdicts_by_level": self.metrics.verdicts_by_level(),
        }

    async def _run_analyzers(
        self, target: Target, options: ScanOptions
    ) -> dict[AnalyzerKind, AnalyzerOutcome]:
        timeout = options.timeout if options.timeout is not None else self.timeout
        kinds = [kind for kind in self.analyzers if options.includes(kind)]
        outcomes = await asyncio.gather(
            *[self._run_analyzer(kind, target, timeout) for kind in kinds],
            return_exceptions=True,
        )

        results: dict[AnalyzerKind, AnalyzerOutcome] = {}
        for kind, outcome in zip(kinds, outcomes):
            if isinstance(outcome, InvalidInput):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("%s analyzer raised for %s: %s", kind.value, target.url, outcome)
                outcome = Unavailable(kind, f"analyzer error: {outcome}")
            if not outcome.available:
                self.metrics.record_unavailable(kind.value)
            results[kind] = outcome
        return results

    async def _run_analyzer(self, kind: AnalyzerKind, target: Target, timeout: float) -> AnalyzerOutcome:
        try:
            return await asyncio.wait_for(self.analyzers[kind].analyze(target), timeout)
        except asyncio.TimeoutError:
            logger.warning("%s analyzer timed out after %ss for %s", kind.value, timeout, target.url)
            return Unavailable(kind, f"timed out after {timeout}s")

    async def _dispatch(
        self,
        verdict: ThreatVerdict,
        results: Mapping[AnalyzerKind, AnalyzerOutcome],
        options: ScanOptions,
    ) -> None:
        alertable = verdict.risk_level >= self.alert_level
        if options.enable_alerts and alertable:
            await self.alerts.broadcast(verdict)

        if not options.store_results or self.store is None:
            return

        if alertable:
            await self._persist("insert_alert", verdict.to_dict())

        registration = results.get(AnalyzerKind.REGISTRATION)
        if registration is None or not registration.available:
            return
        domain = registration.signals.get("domain")
        fields = registration.signals.get("registration")
        if domain and fields:
            await self._persist("upsert_registration_record", domain, dict(fields))
            dns = registration.signals.get("dns")
            if dns:
                await self._persist("insert_dns_snapshot", domain, dict(dns))

    async def _persist(self, operation: str, *args) -> bool:
        try:
            await getattr(self.store, operation)(*args)
            return True
        except Exception as exc:
            failure = exc if isinstance(exc, PersistenceFailure) else PersistenceFailure(f"{operation} failed: {exc}")
            logger.error("Failed to store scan result: %s", failure)
            return False
