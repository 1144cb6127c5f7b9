"""Shared helpers for ThreatLens."""
