"""Helpers that derive listing page URLs."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

# Interchangeable page parameter names; the last one is inserted when neither is present.
PAGE_PARAMS = ("page", "pn")
NEXT_LINK_SELECTORS = (
    "link[rel='next']",
    "a[rel='next']",
    "a[aria-label*='Next' i]",
    "a[data-testid*='pagination-next']",
)


def _current_page(value: str) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1


def increment_page_param(url: str) -> str:
    """Bump whichever page parameter ``url`` already carries, or add ``pn=2``."""
    parsed = urlparse(url)
    params = parse_qsl(parsed.query, keep_blank_values=True)
    present = {key for key, _ in params}
    name = next((candidate for candidate in PAGE_PARAMS if candidate in present), PAGE_PARAMS[-1])

    current = 1
    updated = []
    for key, value in params:
        if key == name:
            current = _current_page(value)
            continue
        updated.append((key, value))
    updated.append((name, str(current + 1)))
    return urlunparse(parsed._replace(query=urlencode(updated)))


def find_next_link(soup: BeautifulSoup, page_url: str) -> Optional[str]:
    for selector in NEXT_LINK_SELECTORS:
        node = soup.select_one(selector)
        if node is not None and node.get("href"):
            href = node["href"].strip()
            if href and not href.startswith("#") and not href.lower().startswith("javascript:"):
                return urljoin(page_url, href)
    return None


def next_page_url(page_url: str, soup: Optional[BeautifulSoup] = None) -> str:
    """Prefer the page's own "next" link, else increment the page parameter."""
    if soup is not None:
        explicit = find_next_link(soup, page_url)
        if explicit:
            logger.debug("Following explicit next link %s", explicit)
            return explicit
    return increment_page_param(page_url)


def build_data_api_url(page_url: str, build_id: Optional[str]) -> Optional[str]:
    """Data-only endpoint for a page once the site's build id is known."""
    if not build_id:
        return None
    parsed = urlparse(page_url)
    path = parsed.path.rstrip("/")
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme}://{parsed.netloc}/_next/data/{build_id}{path}.json{query}"
