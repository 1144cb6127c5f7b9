"""ThreatLens: multi-signal scam and phishing risk scoring."""

__version__ = "0.1.0"
