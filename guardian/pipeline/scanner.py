"""Scan orchestration: run analyzers, aggregate, dispatch."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from ..alerts.dispatcher import AlertDispatcher
from ..analyzer.aggregator import aggregate
from ..analyzer.content_analyzer import ContentAnalyzer
from ..analyzer.domain_age import DomainAgeAnalyzer
from ..analyzer.domain_reputation import DomainReputationAnalyzer
from ..analyzer.metrics import metrics
from ..analyzer.models import FormData, PageStructure, RiskAssessment, Signal, SignalResult
from ..analyzer.page_extractor import extract_page_structure
from ..analyzer.screenshot import ScreenshotCapturer
from ..analyzer.url_analyzer import UrlAnalyzer
from ..analyzer.visual_detector import VisualBrandDetector
from ..config import Config
from ..constants import RiskLevel, ScanType
from ..storage.state import ScanState
from ..utils.domains import extract_hostname

logger = logging.getLogger(__name__)


class ScanEngine:
    """Runs every applicable analyzer for a URL and turns the result into a verdict."""

    def __init__(
        self,
        state: ScanState,
        dispatcher: Optional[AlertDispatcher] = None,
        url_analyzer: Optional[UrlAnalyzer] = None,
        domain_analyzer: Optional[DomainReputationAnalyzer] = None,
        content_analyzer: Optional[ContentAnalyzer] = None,
        visual_detector: Optional[VisualBrandDetector] = None,
        screenshotter: Optional[ScreenshotCapturer] = None,
        domain_age_analyzer: Optional[DomainAgeAnalyzer] = None,
        analysis_timeout: float = 10.0,
    ):
        self.state = state
        self.dispatcher = dispatcher
        self.url_analyzer = url_analyzer or UrlAnalyzer()
        self.domain_analyzer = domain_analyzer or DomainReputationAnalyzer(state.threat_store)
        self.content_analyzer = content_analyzer or ContentAnalyzer()
        self.visual_detector = visual_detector
        self.screenshotter = screenshotter
        self.domain_age_analyzer = domain_age_analyzer
        self.analysis_timeout = analysis_timeout

    @classmethod
    def from_config(
        cls,
        config: Config,
        state: ScanState,
        dispatcher: Optional[AlertDispatcher] = None,
        visual_detector: Optional[VisualBrandDetector] = None,
        screenshotter: Optional[ScreenshotCapturer] = None,
    ) -> "ScanEngine":
        return cls(
            state=state,
            dispatcher=dispatcher,
            url_analyzer=UrlAnalyzer(config.suspicious_tlds),
            domain_analyzer=DomainReputationAnalyzer(state.threat_store, config.domain_patterns),
            content_analyzer=ContentAnalyzer(
                phishing_keywords=config.phishing_keywords,
                url_shorteners=config.url_shorteners,
                suspicious_script_hosts=config.suspicious_script_hosts,
                keyword_points=config.keyword_points,
                keyword_category_cap=config.keyword_category_cap,
            ),
            visual_detector=visual_detector,
            screenshotter=screenshotter,
            domain_age_analyzer=(
                DomainAgeAnalyzer(config.rdap_url, timeout=int(config.analysis_timeout))
                if config.domain_age_enabled
                else None
            ),
            analysis_timeout=config.analysis_timeout,
        )

    async def scan(
        self,
        url: str,
        content: Optional[str] = None,
        scan_type: Optional[ScanType] = None,
        tab_id=None,
        dispatch: bool = True,
    ) -> RiskAssessment:
        """Assess a URL (and its HTML when given)."""
        domain = extract_hostname(url)
        if scan_type is None:
            scan_type = ScanType.DETAILED if content else ScanType.QUICK

        if domain and self.state.is_whitelisted(domain):
            return self._whitelisted(url, domain, scan_type)

        jobs: list[Awaitable[list[Signal]]] = [
            self._run_sync("url", self.url_analyzer.analyze, url),
            self._run_sync("domain", self.domain_analyzer.analyze, domain),
        ]
        if domain and self.domain_age_analyzer is not None:
            jobs.append(self._run_async("domain_age", self.domain_age_analyzer.analyze, domain))
        if content:
            jobs.append(self._run_content(url, content))
            if self.visual_detector is not None:
                jobs.append(self._run_async("visual", self._run_visual, url, content))

        results = await asyncio.gather(*jobs)
        signals = [signal for group in results for signal in group]

        assessment = aggregate(url, domain, signals, scan_type)
        metrics.record_verdict(str(assessment.risk_level))
        logger.debug(
            "Scanned %s: %d (%s) %s",
            url,
            assessment.risk_score,
            assessment.risk_level,
            list(assessment.threats),
        )

        if dispatch:
            if self.dispatcher:
                await self.dispatcher.dispatch(assessment, tab_id)
            else:
                self.state.record(assessment)
        return assessment

    def _whitelisted(self, url: str, domain: str, scan_type: ScanType) -> RiskAssessment:
        logger.debug("Skipping whitelisted domain %s", domain)
        metrics.record_whitelisted()
        return RiskAssessment(
            url=url,
            domain=domain,
            risk_score=0,
            risk_level=RiskLevel.LOW,
            threats=(),
            timestamp=datetime.now(timezone.utc),
            scan_type=scan_type,
        )

    async def _run_sync(self, source: str, func: Callable, *args) -> list[Signal]:
        return await self._run_async(source, asyncio.to_thread, func, *args)

    async def _run_async(self, source: str, func: Callable, *args) -> list[Signal]:
        """Run one analyzer. Errors and timeouts contribute an empty signal."""
        try:
            result = await asyncio.wait_for(func(*args), timeout=self.analysis_timeout)
        except asyncio.TimeoutError:
            logger.warning("Analyzer %s timed out; signal unavailable", source)
            metrics.record_failure(source)
            return [SignalResult.empty(source)]
        except Exception as exc:
            logger.warning("Analyzer %s failed; signal unavailable: %s", source, exc)
            metrics.record_failure(source)
            return [SignalResult.empty(source)]
        if isinstance(result, list):
            return result
        return [result]

    async def _run_content(self, url: str, content: str) -> list[Signal]:
        def analyze() -> list[SignalResult]:
            page = extract_page_structure(url, content)
            return self.content_analyzer.analyze(page)

        return await self._run_sync("content", analyze)

    async def _run_visual(self, url: str, content: str):
        screenshot = None
        if self.screenshotter is not None:
            screenshot = await self.screenshotter.capture(url)
        return await self.visual_detector.analyze(url, content, screenshot)

    def assess_link_click(self, page_url: str, href: str) -> RiskAssessment:
        """Quick check of a link destination before navigation."""
        domain = extract_hostname(href)
        if domain and self.state.is_whitelisted(domain):
            return self._whitelisted(href, domain, ScanType.QUICK)
        signals: list[Signal] = [
            self.url_analyzer.analyze(href),
            self.domain_analyzer.analyze(domain),
        ]
        if domain and domain != extract_hostname(page_url):
            signals.append(SignalResult(10, ("External link destination",), "link"))
        return aggregate(href, domain, signals, ScanType.QUICK)

    def assess_form_submission(self, page: PageStructure, form: FormData) -> RiskAssessment:
        """Score a single form at submit time."""
        target = form.action or page.url
        domain = extract_hostname(target)
        if domain and self.state.is_whitelisted(domain):
            return self._whitelisted(target, domain, ScanType.QUICK)
        signal = self.content_analyzer.analyze_forms([form], page.url)
        return aggregate(target, domain, [signal], ScanType.QUICK)
