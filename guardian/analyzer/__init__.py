"""Analyzer modules for Guardian."""

from .aggregator import aggregate
from .content_analyzer import ContentAnalyzer
from .domain_reputation import DomainReputationAnalyzer
from .page_extractor import extract_page_structure
from .threat_intel import ThreatIntelLoader, ThreatIntelStore
from .url_analyzer import UrlAnalyzer, analyze_url
from .visual_detector import VisualBrandDetector, to_signal

__all__ = [
    "aggregate",
    "ContentAnalyzer",
    "DomainReputationAnalyzer",
    "extract_page_structure",
    "ThreatIntelLoader",
    "ThreatIntelStore",
    "UrlAnalyzer",
    "analyze_url",
    "VisualBrandDetector",
    "to_signal",
]
