"""Storage modules for ThreatLens."""

from .database import Database, ScanStore

__all__ = ["Database", "ScanStore"]
