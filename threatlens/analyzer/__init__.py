"""Analyzer modules for ThreatLens."""

from .aggregation import AggregationEngine
from .content_language import ContentLanguageAnalyzer
from .lexical import LexicalAnalyzer
from .mobile_app import MobileAppAnalyzer
from .models import AnalyzerResult, AppMetadata, RiskFactor, Target, ThreatVerdict, Unavailable
from .registration import (
    RdapRegistrationSource,
    RegistrationIntelligenceAnalyzer,
    RegistrationRecord,
    StaticRegistrationSource,
)
from .threat_intel import ThreatIntel, ThreatIntelLoader
from .visual import VisualSimilarityAnalyzer

__all__ = [
    "AggregationEngine",
    "AnalyzerResult",
    "AppMetadata",
    "ContentLanguageAnalyzer",
    "LexicalAnalyzer",
    "MobileAppAnalyzer",
    "RdapRegistrationSource",
    "RegistrationIntelligenceAnalyzer",
    "RegistrationRecord",
    "RiskFactor",
    "StaticRegistrationSource",
    "Target",
    "ThreatIntel",
    "ThreatIntelLoader",
    "ThreatVerdict",
    "Unavailable",
    "VisualSimilarityAnalyzer",
]
