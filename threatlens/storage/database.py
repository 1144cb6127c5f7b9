"""SQLite persistence for scan alerts and registration intelligence."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Protocol

import aiosqlite

from ..errors import PersistenceFailure

logger = logging.getLogger(__name__)


class ScanStore(Protocol):
    """Write operations the scan pipeline needs from a store."""

    async def upsert_registration_record(self, domain: str, fields: dict) -> None:  # pragma: no cover - interface
        ...

    async def insert_dns_snapshot(self, domain: str, fields: dict) -> None:  # pragma: no cover - interface
        ...

    async def insert_alert(self, record: dict) -> None:  # pragma: no cover - interface
        ...


class Database:
    """Async SQLite database for alerts, registration records and DNS snapshots."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self):
        """Establish database connection and create tables."""
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row
        try:
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA busy_timeout=5000")
            await self._connection.commit()
        except aiosqlite.Error as exc:
            logger.debug("SQLite pragmas rejected: %s", exc)
        await self._create_tables()

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise PersistenceFailure("Database is not connected")
        return self._connection

    async def _create_tables(self):
        """Create database tables if they don't exist."""
        async with self._lock:
            await self._connection.executescript(
                """
                    CREATE TABLE IF NOT EXISTS registration_records (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        domain TEXT UNIQUE NOT NULL,
                        registrar TEXT,
                        creation_date TEXT,
                        expiration_date TEXT,
                        registrant_country TEXT,
                        privacy_protection INTEGER DEFAULT 0,
                        domain_age_days INTEGER,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS dns_snapshots (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        domain TEXT NOT NULL,
                        mx_records TEXT,
                        ip_reputation INTEGER,
                        subdomain_count INTEGER,
                        dnssec_enabled INTEGER,
                        suspicious_patterns TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE TABLE IF NOT EXISTS alerts (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        url TEXT NOT NULL,
                        risk_level TEXT NOT NULL,
                        risk_score INTEGER NOT NULL,
                        threat_category TEXT,
                        primary_reason TEXT,
                        threats TEXT,
                        payload TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );

                    CREATE INDEX IF NOT EXISTS idx_dns_snapshots_domain ON dns_snapshots(domain);
                    CREATE INDEX IF NOT EXISTS idx_alerts_level ON alerts(risk_level);
                """
            )
            await self._connection.commit()

    async def upsert_registration_record(self, domain: str, fields: dict) -> None:
        """Insert or refresh the registration record for a domain."""
        connection = self._require_connection()
        async with self._lock:
            await connection.execute(
                """
                INSERT INTO registration_records (
                    domain, registrar, creation_date, expiration_date,
                    registrant_country, privacy_protection, domain_age_days
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(domain) DO UPDATE SET
                    registrar = excluded.registrar,
                    creation_date = excluded.creation_date,
                    expiration_date = excluded.expiration_date,
                    registrant_country = excluded.registrant_country,
                    privacy_protection = excluded.privacy_protection,
                    domain_age_days = excluded.domain_age_days,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    domain.lower(),
                    fields.get("registrar"),
                    fields.get("creation_date"),
                    fields.get("expiration_date"),
                    fields.get("registrant_country"),
                    1 if fields.get("privacy_protection") else 0,
                    fields.get("domain_age_days"),
                ),
            )
            await connection.commit()

    async def insert_dns_snapshot(self, domain: str, fields: dict) -> None:
        """Append a DNS snapshot for a domain."""
        connection = self._require_connection()
        dnssec = fields.get("dnssec_enabled")
        async with self._lock:
            await connection.execute(
                """
                INSERT INTO dns_snapshots (
                    domain, mx_records, ip_reputation, subdomain_count,
                    dnssec_enabled, suspicious_patterns
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    domain.lower(),
                    json.dumps(list(fields.get("mx_records") or [])),
                    fields.get("ip_reputation"),
                    fields.get("subdomain_count"),
                    None if dnssec is None else int(bool(dnssec)),
                    json.dumps(list(fields.get("suspicious_patterns") or [])),
                ),
            )
            await connection.commit()

    async def insert_alert(self, record: dict) -> None:
        """Store a high-risk verdict (a ThreatVerdict.to_dict() payload)."""
        connection = self._require_connection()
        threats = [factor.get("label") for factor in record.get("riskFactors", [])]
        async with self._lock:
            await connection.execute(
                """
                INSERT INTO alerts (
                    url, risk_level, risk_score, threat_category,
                    primary_reason, threats, payload
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record["url"],
                    record["riskLevel"],
                    int(record["riskScore"]),
                    record.get("threatCategory"),
                    record.get("primaryReason"),
                    json.dumps(threats),
                    json.dumps(record),
                ),
            )
            await connection.commit()

    async def get_registration_record(self, domain: str) -> Optional[dict]:
        connection = self._require_connection()
        async with self._lock:
            cursor = await connection.execute(
                "SELECT * FROM registration_records WHERE domain = ?",
                (domain.lower(),),
            )
            row = await cursor.fetchone()
            return dict(row) if row else None

    async def get_dns_snapshots(self, domain: str) -> list[dict]:
        connection = self._require_connection()
        async with self._lock:
            cursor = await connection.execute(
                "SELECT * FROM dns_snapshots WHERE domain = ? ORDER BY id ASC",
                (domain.lower(),),
            )
            rows = await cursor.fetchall()
        snapshots = []
        for row in rows:
            item = dict(row)
            item["mx_records"] = json.loads(item["mx_records"] or "[]")
            item["suspicious_patterns"] = json.loads(item["suspicious_patterns"] or "[]")
            snapshots.append(item)
        return snapshots

    async def get_recent_alerts(self, limit: int = 20) -> list[dict]:
        """Most recent alerts first."""
        connection = self._require_connection()
        async with self._lock:
            cursor = await connection.execute(
                "SELECT * FROM alerts ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            rows = await cursor.fetchall()
        alerts = []
        for row in rows:
            item = dict(row)
            item["threats"] = json.loads(item["threats"] or "[]")
            alerts.append(item)
        return alerts

    async def get_stats(self) -> dict:
        """Row counts per table and alerts by level."""
        connection = self._require_connection()
        stats: dict = {}
        async with self._lock:
            for table in ("registration_records", "dns_snapshots", "alerts"):
                cursor = await connection.execute(f"SELECT COUNT(*) FROM {table}")
                stats[table] = (await cursor.fetchone())[0]
            cursor = await connection.execute(
                "SELECT risk_level, COUNT(*) AS n FROM alerts GROUP BY risk_level"
            )
            stats["alerts_by_level"] = {row["risk_level"]: row["n"] for row in await cursor.fetchall()}
        return stats
