"""Page fetchers used by the crawl controller."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Optional, Protocol

import requests

try:
    from playwright.sync_api import Error as PlaywrightError
    from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
    from playwright.sync_api import sync_playwright
except ImportError:  # pragma: no cover - optional dependency
    sync_playwright = None
    PlaywrightError = Exception
    PlaywrightTimeoutError = Exception

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
JSON_REQUEST_TIMEOUT = 20
MAX_RETRIES = 3
BACKOFF_SECONDS = 2.0
RETRY_STATUSES = {403, 429, 500, 502, 503, 504}
SOFT_BLOCK_MARKERS = ("Just a moment", "Verify you are human")

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:134.0) Gecko/20100101 Firefox/134.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.2 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
)
DOCUMENT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-GB,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "sec-fetch-dest": "document",
    "sec-fetch-mode": "navigate",
    "sec-fetch-site": "none",
    "sec-fetch-user": "?1",
    "upgrade-insecure-requests": "1",
}
JSON_HEADERS = {
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-GB,en;q=0.9",
}


class FetchError(RuntimeError):
    """Raised when a page cannot be fetched after all attempts."""


class Fetcher(Protocol):
    def fetch(self, url: str) -> str:
        ...


def is_soft_block(html: Optional[str]) -> bool:
    """True when the markup is an anti-bot challenge instead of the page."""
    if not html:
        return False
    return any(marker in html for marker in SOFT_BLOCK_MARKERS)


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


class HttpFetcher:
    """Plain HTTP fetcher with user-agent rotation and bounded exponential backoff."""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        proxy_url: Optional[str] = None,
        timeout: int = REQUEST_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        backoff_seconds: float = BACKOFF_SECONDS,
    ) -> None:
        self.session = session or requests.Session()
        if proxy_url:
            self.session.proxies.update({"http": proxy_url, "https": proxy_url})
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = backoff_seconds

    def fetch(self, url: str) -> str:
        last_error: Optional[str] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.get(
                    url,
                    headers={**DOCUMENT_HEADERS, "User-Agent": random_user_agent()},
                    timeout=self.timeout,
                    allow_redirects=True,
                )
                if response.status_code == 200:
                    return response.text
                last_error = f"HTTP {response.status_code}"
                if response.status_code not in RETRY_STATUSES:
                    break
                logger.warning("HTTP %s on attempt %s/%s for %s", response.status_code, attempt, self.max_retries, url)
            except requests.RequestException as exc:
                last_error = str(exc)
                logger.warning("Fetch error on attempt %s/%s for %s: %s", attempt, self.max_retries, url, exc)

            if attempt < self.max_retries:
                time.sleep(self.backoff_seconds * 2 ** (attempt - 1))

        raise FetchError(f"Failed to fetch {url}: {last_error}")

    def fetch_json(self, url: str, *, referer: Optional[str] = None) -> Optional[Any]:
        """Single attempt against a JSON endpoint; failures are logged and return ``None``."""
        headers = {**JSON_HEADERS, "User-Agent": random_user_agent()}
        if referer:
            headers["Referer"] = referer
        try:
            response = self.session.get(url, headers=headers, timeout=JSON_REQUEST_TIMEOUT)
            if response.status_code != 200:
                logger.debug("JSON endpoint %s returned HTTP %s", url, response.status_code)
                return None
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.debug("JSON endpoint fetch failed for %s: %s", url, exc)
            return None

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class BrowserFetcher:
    """Thin wrapper around Playwright used as the escalated fetch path."""

    def __init__(self, *, proxy_url: Optional[str] = None, timeout_ms: int = 60000) -> None:
        if sync_playwright is None:
            raise RuntimeError("playwright is not installed")
        self._playwright = None
        self._browser = None
        self._proxy_url = proxy_url
        self._timeout_ms = timeout_ms

    def _ensure_browser(self) -> None:
        if self._playwright is None:
            self._playwright = sync_playwright().start()
            launch_args = {"headless": True}
            if self._proxy_url:
                launch_args["proxy"] = {"server": self._proxy_url}
            self._browser = self._playwright.chromium.launch(**launch_args)

    def fetch(self, url: str) -> str:
        self._ensure_browser()
        context = self._browser.new_context(user_agent=random_user_agent(), locale="en-GB")
        page = context.new_page()
        try:
            page.goto(url, wait_until="domcontentloaded", timeout=self._timeout_ms)
            page.wait_for_timeout(3000)

            if is_soft_block(page.content()):
                logger.info("Waiting for challenge to clear on %s", url)
                page.wait_for_timeout(10000)
                try:
                    page.wait_for_load_state("networkidle", timeout=30000)
                except PlaywrightTimeoutError:
                    logger.debug("Timed out waiting for network idle on %s", url)

            for _ in range(3):
                page.mouse.wheel(0, 500)
                page.wait_for_timeout(500)

            return page.content()
        except PlaywrightError as exc:
            raise FetchError(f"Browser fetch failed for {url}: {exc}") from exc
        finally:
            context.close()

    def close(self) -> None:
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None

    def __enter__(self) -> "BrowserFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
