"""One-shot and batch scanning from the command line."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import aiohttp
from dotenv import load_dotenv

from .analyzer.threat_intel import ThreatIntelLoader, ThreatIntelStore
from .analyzer.visual_detector import VisualBrandDetector
from .config import Config, load_config
from .pipeline.scanner import ScanEngine
from .storage.state import ScanState

logger = logging.getLogger(__name__)


async def fetch_html(session: aiohttp.ClientSession, url: str, timeout: int = 10) -> Optional[str]:
    """Download a page body (best-effort)."""
    try:
        async with session.get(url, timeout=timeout, allow_redirects=True) as resp:
            if resp.status >= 400:
                logger.warning("Fetching %s returned HTTP %s", url, resp.status)
                return None
            return await resp.text(errors="replace")
    except asyncio.TimeoutError:
        logger.warning("Timed out fetching %s", url)
    except aiohttp.ClientError as exc:
        logger.warning("Failed to fetch %s: %s", url, exc)
    return None


async def build_engine(config: Config, visual: bool) -> ScanEngine:
    store = ThreatIntelStore()
    loader = ThreatIntelLoader(config.config_dir, store=store, feed_url=config.threat_feed_url)
    await loader.refresh()
    state = ScanState(
        threat_store=store,
        whitelist=config.whitelist,
        history_cap=config.history_cap,
        popup_history_cap=config.popup_history_cap,
    )
    detector = VisualBrandDetector.from_config(config) if visual else None
    return ScanEngine.from_config(config, state, visual_detector=detector)


def _format(result: dict) -> str:
    lines = [
        f"{result['url']}",
        f"  Risk: {result['riskLevel'].upper()} ({result['riskScore']}/100, {result['scanType']})",
    ]
    for threat in result["threats"]:
        lines.append(f"  - {threat}")
    return "\n".join(lines)


async def scan_urls(args: argparse.Namespace, urls: list[str]) -> int:
    config = load_config()
    engine = await build_engine(config, visual=not args.no_visual)

    html_override = None
    if getattr(args, "html", None):
        html_override = Path(args.html).read_text(errors="replace")

    output = open(args.output, "w") if getattr(args, "output", None) else sys.stdout
    worst = 0
    try:
        async with aiohttp.ClientSession() as session:
            for url in urls:
                content = html_override
                if content is None and args.fetch:
                    content = await fetch_html(session, url)
                assessment = await engine.scan(url, content, dispatch=False)
                data = assessment.to_dict()
                worst = max(worst, int(assessment.risk_level))
                if args.json:
                    output.write(json.dumps(data) + "\n")
                else:
                    output.write(_format(data) + "\n")
    finally:
        if output is not sys.stdout:
            output.close()
    return worst


def _read_urls(path: str) -> list[str]:
    urls = []
    with open(path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#"):
                urls.append(line)
    return urls


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Assess URLs for phishing/fraud risk.")
    parser.add_argument("--env-file", help="Load environment variables from a file before running.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    def _common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--fetch", action="store_true", help="Download page HTML for a detailed scan.")
        p.add_argument("--no-visual", action="store_true", help="Skip the visual brand detector.")
        p.add_argument("--json", action="store_true", help="Emit one JSON object per line.")
        p.add_argument("--output", help="Write results to a file instead of stdout.")

    scan = sub.add_parser("scan", help="Scan a single URL.")
    scan.add_argument("url")
    scan.add_argument("--html", help="Use HTML from a local file instead of fetching.")
    _common(scan)

    batch = sub.add_parser("batch", help="Scan every URL listed in a file.")
    batch.add_argument("file")
    _common(batch)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point. Exit code is the highest risk level seen (0=low .. 3=critical)."""
    args = build_parser().parse_args(argv)
    if args.env_file:
        load_dotenv(args.env_file, override=True)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    urls = [args.url] if args.command == "scan" else _read_urls(args.file)
    return asyncio.run(scan_urls(args, urls))


if __name__ == "__main__":
    sys.exit(main())
