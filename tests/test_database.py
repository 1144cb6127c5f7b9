"""Tests for SQLite persistence."""

from __future__ import annotations

import pytest

from threatlens.errors import PersistenceFailure
from threatlens.storage import Database


def alert_payload(url="https://evil.test", level="critical", score=92):
    return {
        "url": url,
        "riskScore": score,
        "riskLevel": level,
        "threatCategory": "Phishing Attempt",
        "primaryReason": "reason",
        "riskFactors": [
            {"label": "Homograph attack detected", "severity": "critical", "confidence": 0.95, "explanation": ""},
            {"label": "Insecure HTTP protocol", "severity": "medium", "confidence": 1.0, "explanation": ""},
        ],
        "recommendedActions": [],
        "timestamp": "2026-01-01T00:00:00+00:00",
        "patternMatches": [],
        "analyzers": ["lexical"],
    }


@pytest.mark.asyncio
async def test_registration_record_upsert(tmp_path):
    db = Database(tmp_path / "scans.db")
    await db.connect()
    try:
        await db.upsert_registration_record("Example.com", {"registrar": "First", "domain_age_days": 3})
        await db.upsert_registration_record(
            "example.com", {"registrar": "Second", "privacy_protection": True, "domain_age_days": 4}
        )
        row = await db.get_registration_record("example.com")
        assert row["registrar"] == "Second"
        assert row["privacy_protection"] == 1
        assert row["domain_age_days"] == 4
        assert (await db.get_stats())["registration_records"] == 1
        assert await db.get_registration_record("missing.com") is None
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_dns_snapshots_append(tmp_path):
    db = Database(tmp_path / "scans.db")
    await db.connect()
    try:
        await db.insert_dns_snapshot("example.com", {"mx_records": ["mx.gmail.com"], "ip_reputation": 10})
        await db.insert_dns_snapshot(
            "example.com", {"mx_records": [], "suspicious_patterns": ["Hosting IP has poor reputation"]}
        )
        snapshots = await db.get_dns_snapshots("example.com")
        assert len(snapshots) == 2
        assert snapshots[0]["mx_records"] == ["mx.gmail.com"]
        assert snapshots[0]["dnssec_enabled"] is None
        assert snapshots[1]["suspicious_patterns"] == ["Hosting IP has poor reputation"]
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_alerts_and_stats(tmp_path):
    db = Database(tmp_path / "scans.db")
    await db.connect()
    try:
        await db.insert_alert(alert_payload("https://one.test", "high", 72))
        await db.insert_alert(alert_payload("https://two.test"))
        alerts = await db.get_recent_alerts(limit=5)
        assert [a["url"] for a in alerts] == ["https://two.test", "https://one.test"]
        assert alerts[0]["threats"] == ["Homograph attack detected", "Insecure HTTP protocol"]
        assert alerts[0]["risk_score"] == 92

        stats = await db.get_stats()
        assert stats["alerts"] == 2
        assert stats["alerts_by_level"] == {"high": 1, "critical": 1}
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_writes_require_connection(tmp_path):
    db = Database(tmp_path / "scans.db")
    with pytest.raises(PersistenceFailure):
        await db.insert_alert(alert_payload())
