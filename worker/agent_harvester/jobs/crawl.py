"""CLI job that crawls agent directory listings and saves normalized records."""

from __future__ import annotations

import argparse
import json
import logging
import random
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from agent_harvester.core.config import ConfigError, FatalInputError, RunInput, Settings, get_settings
from agent_harvester.core.dedupe import RunState, dedupe_records
from agent_harvester.core.fetcher import BrowserFetcher, FetchError, Fetcher, HttpFetcher, is_soft_block
from agent_harvester.core.pagination import build_data_api_url, next_page_url
from agent_harvester.core.sinks import Sink, build_sink
from agent_harvester.extractors.base import ExtractionResult, Extractor, PageContent
from agent_harvester.extractors.html_cards import HtmlCardExtractor
from agent_harvester.extractors.json_ld import JsonLdExtractor
from agent_harvester.extractors.next_data import NextDataExtractor
from agent_harvester.models import AgentRecord

logger = logging.getLogger(__name__)

PACING_DELAY_RANGE = (2.0, 4.0)
SOFT_BLOCK_WAIT = 10.0


def default_extractors() -> List[Extractor]:
    """Extraction tiers in priority order; the first non-empty one wins."""
    return [NextDataExtractor(), JsonLdExtractor(), HtmlCardExtractor()]


@dataclass
class CrawlSummary:
    saved: int = 0
    pages_fetched: int = 0
    pages_failed: int = 0
    tier_hits: Counter = field(default_factory=Counter)


class CrawlController:
    """Fetch, extract, save and paginate each target sequentially."""

    def __init__(
        self,
        run_input: RunInput,
        *,
        fetcher: Fetcher,
        sink: Sink,
        escalated_fetcher: Optional[Fetcher] = None,
        extractors: Optional[Sequence[Extractor]] = None,
    ) -> None:
        self.run_input = run_input
        self.fetcher = fetcher
        self.escalated_fetcher = escalated_fetcher
        self.sink = sink
        self.extractors = list(extractors) if extractors is not None else default_extractors()
        self.payload_extractor = NextDataExtractor()
        self.state = RunState(results_wanted=run_input.results_wanted)
        self.summary = CrawlSummary()

    def run(self) -> CrawlSummary:
        logger.info(
            "Starting crawl: targets=%d results_wanted=%d max_pages=%d",
            len(self.run_input.start_urls),
            self.run_input.results_wanted,
            self.run_input.max_pages,
        )
        for target in self.run_input.start_urls:
            if self.state.budget_exhausted:
                break
            logger.info("Starting target %s", target)
            self.crawl_target(target)

        self.summary.saved = self.state.saved
        logger.info(
            "Completed crawl: saved=%d pages_fetched=%d pages_failed=%d tiers=%s",
            self.summary.saved,
            self.summary.pages_fetched,
            self.summary.pages_failed,
            dict(self.summary.tier_hits),
        )
        return self.summary

    def crawl_target(self, start_url: str) -> None:
        page_url = start_url
        page = 1
        max_pages = self.run_input.max_pages

        while True:
            if not self.state.mark_enqueued(page_url):
                logger.info("Page %s was already requested; stopping target", page_url)
                break

            time.sleep(random.uniform(*PACING_DELAY_RANGE))
            logger.info("Page %d/%d: %s", page, max_pages, page_url)

            loaded = self._load_page(page_url, page)
            if loaded is None:
                self.summary.pages_failed += 1
                logger.warning("Abandoning %s after failed fetch; stopping target", page_url)
                break
            records, content = loaded
            self.summary.pages_fetched += 1

            records = dedupe_records(records)
            self._save(records)

            if not records:
                logger.info("No agents found on page %d, stopping pagination", page)
                break
            if page >= max_pages or self.state.budget_exhausted:
                break

            page_url = next_page_url(page_url, content.soup if content is not None else None)
            page += 1

    def _load_page(self, page_url: str, page: int) -> Optional[Tuple[List[AgentRecord], Optional[PageContent]]]:
        if self.state.build_id and page > 1:
            records = self._load_from_data_api(page_url)
            if records:
                return records, None

        fetched = self._fetch_html(page_url)
        if fetched is None:
            return None
        html, escalated = fetched

        content = PageContent(page_url, html)
        if is_soft_block(html):
            logger.warning("Still blocked on %s; skipping extraction", page_url)
            return [], content
        result = self._extract(content)
        if not result and not escalated and self.escalated_fetcher is not None:
            logger.info("No agents in HTTP response; re-rendering %s", page_url)
            rendered = self._escalate(page_url, self.escalated_fetcher)
            if rendered is not None and is_soft_block(rendered[0]):
                logger.warning("Still blocked on %s; skipping extraction", page_url)
            elif rendered is not None:
                content = PageContent(page_url, rendered[0])
                result = self._extract(content)
        return result.records, content

    def _load_from_data_api(self, page_url: str) -> List[AgentRecord]:
        fetch_json = getattr(self.fetcher, "fetch_json", None)
        api_url = build_data_api_url(page_url, self.state.build_id)
        if fetch_json is None or api_url is None:
            return []
        document = fetch_json(api_url, referer=page_url)
        if document is None:
            return []
        result = self.payload_extractor.extract_document(document, PageContent(page_url, "").base_url)
        if result.records:
            self.summary.tier_hits[self.payload_extractor.name] += 1
            logger.info("Data endpoint: %d agents", len(result.records))
        return result.records

    def _fetch_html(self, page_url: str) -> Optional[Tuple[str, bool]]:
        """Fetch markup, escalating at most once on failure or a challenge page."""
        try:
            html = self.fetcher.fetch(page_url)
        except FetchError as exc:
            logger.warning("HTTP fetch failed for %s: %s", page_url, exc)
            if self.escalated_fetcher is None:
                return None
            return self._escalate(page_url, self.escalated_fetcher)

        if not is_soft_block(html):
            return html, False

        logger.warning("Challenge page detected on %s; retrying once", page_url)
        time.sleep(SOFT_BLOCK_WAIT)
        escalated = self._escalate(page_url, self.escalated_fetcher or self.fetcher)
        return escalated if escalated is not None else (html, True)

    def _escalate(self, page_url: str, fetcher: Fetcher) -> Optional[Tuple[str, bool]]:
        try:
            html = fetcher.fetch(page_url)
        except FetchError as exc:
            logger.warning("Escalated fetch failed for %s: %s", page_url, exc)
            return None
        return html, True

    def _extract(self, content: PageContent) -> ExtractionResult:
        for extractor in self.extractors:
            result = extractor.extract(content)
            if result.build_id:
                self.state.build_id = result.build_id
            if result.records:
                self.summary.tier_hits[extractor.name] += 1
                logger.info("%s tier: %d agents", extractor.name, len(result.records))
                return result
        return ExtractionResult()

    def _save(self, records: List[AgentRecord]) -> int:
        admitted = self.state.admit(records)
        if not admitted:
            return 0
        now = datetime.now(timezone.utc)
        self.sink.push([record.stamped(now) for record in admitted])
        logger.info("Saved %d/%d agents", self.state.saved, self.state.results_wanted)
        return len(admitted)


def run_crawl(
    payload: Union[RunInput, Mapping[str, Any], None] = None,
    *,
    settings: Optional[Settings] = None,
    sink: Optional[Sink] = None,
) -> CrawlSummary:
    """Build collaborators from settings and run one crawl."""
    settings = settings or get_settings()
    run_input = payload if isinstance(payload, RunInput) else RunInput.from_mapping(payload, settings)
    proxy_url = run_input.proxy_url or settings.proxy_url
    sink = sink or build_sink(settings)

    escalated: Optional[BrowserFetcher] = None
    if settings.use_browser_fallback:
        try:
            escalated = BrowserFetcher(proxy_url=proxy_url)
        except RuntimeError as exc:
            logger.warning("Browser fallback unavailable: %s", exc)

    with HttpFetcher(proxy_url=proxy_url) as fetcher:
        try:
            controller = CrawlController(run_input, fetcher=fetcher, sink=sink, escalated_fetcher=escalated)
            return controller.run()
        finally:
            if escalated is not None:
                escalated.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl estate-agent directory listings")
    parser.add_argument("--start-url", dest="start_urls", action="append", help="Listing URL to crawl (repeatable)")
    parser.add_argument("--input", dest="input_path", help="JSON file with run input")
    parser.add_argument("--results-wanted", dest="results_wanted", type=int, help="Maximum agents to save")
    parser.add_argument("--max-pages", dest="max_pages", type=int, help="Maximum pages per start URL")
    return parser


def build_payload(args: argparse.Namespace) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if args.input_path:
        with open(args.input_path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, dict):
            raise ConfigError("Run input file must contain a JSON object")
    if args.start_urls:
        payload["startUrls"] = args.start_urls
    if args.results_wanted is not None:
        payload["resultsWanted"] = args.results_wanted
    if args.max_pages is not None:
        payload["maxPages"] = args.max_pages
    return payload


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        summary = run_crawl(build_payload(args))
    except FatalInputError as exc:
        logger.error("Fatal input error: %s", exc)
        raise SystemExit(2) from exc
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(2) from exc
    except Exception as exc:  # noqa: BLE001
        logger.error("Crawl failed: %s", exc, exc_info=True)
        raise SystemExit(1) from exc

    logger.info("Scraped %d agents", summary.saved)


if __name__ == "__main__":
    main()
