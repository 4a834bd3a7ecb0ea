"""Markup tier: heuristic agent cards in rendered HTML."""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional, Sequence, Set
from urllib.parse import urlparse

from bs4 import BeautifulSoup, Tag

from agent_harvester.core.text import (
    clean_text,
    extract_postal_code,
    normalize_phone,
    parse_number,
    to_absolute_url,
)
from agent_harvester.extractors.base import ExtractionResult, PageContent
from agent_harvester.models import SOURCE_HTML, AgentRecord

logger = logging.getLogger(__name__)

CARD_SELECTORS = (
    "[data-testid*='agent-card']",
    "[data-testid*='branch-card']",
    "[data-agent-id]",
    "[data-branch-id]",
    "[itemtype*='RealEstateAgent']",
    "article[class*='agent']",
    "li[class*='agent']",
    "div[class*='agent-card']",
    "div[class*='AgentCard']",
    "div[class*='branch-card']",
)
PROFILE_LINK_SELECTOR = "a[href*='/find-agents/branch/'], a[href*='/estate-agents/branch/']"
PLACEHOLDER_HREF_PREFIXES = ("#", "javascript:")
NAME_SELECTORS = ("h1", "h2", "h3", "h4", "[class*='name']", "[itemprop='name']")
ADDRESS_SELECTORS = ("address", "[class*='address']", "[itemprop='address']")
CARD_ID_ATTRIBUTES = ("data-agent-id", "data-branch-id")

AGENT_ID_FROM_URL = re.compile(r"/(\d+)/?$")
FOR_SALE_REGEX = re.compile(r"(\d[\d,]*)\s+propert(?:y|ies)\s+for\s+sale", re.IGNORECASE)
TO_RENT_REGEX = re.compile(r"(\d[\d,]*)\s+propert(?:y|ies)\s+to\s+rent", re.IGNORECASE)
RATING_REGEX = re.compile(r"(\d(?:\.\d+)?)\s*(?:out of 5|/\s*5|stars?)", re.IGNORECASE)
REVIEW_COUNT_REGEX = re.compile(r"(\d[\d,]*)\s+reviews?", re.IGNORECASE)


def _matches_card_ancestor(tag: Tag) -> bool:
    if tag.name in {"article", "li"}:
        return True
    if tag.name != "div":
        return False
    classes = " ".join(tag.get("class") or []).lower()
    return "agent" in classes or "card" in classes


def closest(tag: Tag, predicate: Callable[[Tag], bool]) -> Optional[Tag]:
    for parent in tag.parents:
        if isinstance(parent, Tag) and parent.name != "[document]" and predicate(parent):
            return parent
    return None


def _outermost(cards: Sequence[Tag]) -> List[Tag]:
    """Drop cards nested inside another selected card."""
    selected = {id(card) for card in cards}
    return [card for card in cards if not any(id(parent) in selected for parent in card.parents)]


def find_cards(soup: BeautifulSoup) -> List[Tag]:
    for selector in CARD_SELECTORS:
        cards = soup.select(selector)
        if cards:
            logger.debug("Matched %d cards with %s", len(cards), selector)
            return _outermost(cards)

    cards: List[Tag] = []
    seen: Set[int] = set()
    for link in soup.select(PROFILE_LINK_SELECTOR):
        card = closest(link, _matches_card_ancestor) or link.parent or link
        if id(card) not in seen:
            seen.add(id(card))
            cards.append(card)
    return _outermost(cards)


def _first_text(card: Tag, selectors: Sequence[str]) -> Optional[str]:
    for selector in selectors:
        node = card.select_one(selector)
        if node is not None:
            text = clean_text(node.get_text(" ", strip=True))
            if text:
                return text
    return None


def _usable_href(link: Tag) -> bool:
    href = (link.get("href") or "").strip().lower()
    return bool(href) and not href.startswith(PLACEHOLDER_HREF_PREFIXES)


def _profile_link(card: Tag) -> Optional[Tag]:
    """Only a branch profile link (or an anchor card itself) identifies the agent."""
    if card.name == "a" and _usable_href(card):
        return card
    for link in card.select(PROFILE_LINK_SELECTOR):
        if _usable_href(link):
            return link
    return None


def _bare_host(host: str) -> str:
    return host.lower().removeprefix("www.")


def _is_external(netloc: str, host: str) -> bool:
    if not host:
        return True
    bare, own = _bare_host(netloc), _bare_host(host)
    return bare != own and not bare.endswith(f".{own}")


def _website(card: Tag, host: str) -> Optional[str]:
    for anchor in card.find_all("a", href=True):
        href = anchor["href"].strip()
        parsed = urlparse(href)
        if parsed.scheme in {"http", "https"} and parsed.netloc and _is_external(parsed.netloc, host):
            return href
    for anchor in card.find_all("a", href=True):
        if "website" in anchor.get_text(" ", strip=True).lower():
            return anchor["href"].strip()
    return None


def _logo(card: Tag) -> Optional[str]:
    images = card.find_all("img")
    for image in images:
        if "logo" in (image.get("alt") or "").lower():
            return image.get("src") or image.get("data-src")
    if images:
        return images[0].get("src") or images[0].get("data-src")
    return None


def _match_number(pattern: re.Pattern, text: str):
    match = pattern.search(text)
    return parse_number(match.group(1)) if match else None


class HtmlCardExtractor:
    name = SOURCE_HTML

    def extract(self, page: PageContent) -> ExtractionResult:
        records: List[AgentRecord] = []
        seen_urls: Set[str] = set()
        for card in find_cards(page.soup):
            record = self.parse_card(card, page)
            if record is None:
                continue
            if record.url:
                if record.url in seen_urls:
                    continue
                seen_urls.add(record.url)
            records.append(record)
        return ExtractionResult(records=records)

    def parse_card(self, card: Tag, page: PageContent) -> Optional[AgentRecord]:
        link = _profile_link(card)
        href = link.get("href") if link is not None else None
        name = _first_text(card, NAME_SELECTORS)
        if not name and link is not None:
            name = clean_text(link.get_text(" ", strip=True))
        if not name:
            return None

        agent_id = next((card.get(attr) for attr in CARD_ID_ATTRIBUTES if card.get(attr)), None)
        if not agent_id and href:
            id_match = AGENT_ID_FROM_URL.search(urlparse(href).path)
            agent_id = id_match.group(1) if id_match else None

        address = _first_text(card, ADDRESS_SELECTORS)
        tel_link = card.select_one("a[href^='tel:']")
        card_text = clean_text(card.get_text(" ", strip=True)) or ""
        for_sale = _match_number(FOR_SALE_REGEX, card_text)
        to_rent = _match_number(TO_RENT_REGEX, card_text)

        return AgentRecord(
            name=name,
            source=SOURCE_HTML,
            agent_id=str(agent_id) if agent_id else None,
            branch_name=name,
            url=to_absolute_url(href, page.base_url),
            address=address,
            postal_code=extract_postal_code(address),
            phone=normalize_phone(tel_link.get("href") if tel_link is not None else None),
            website=to_absolute_url(_website(card, page.host), page.base_url),
            logo=to_absolute_url(_logo(card), page.base_url),
            rating=_match_number(RATING_REGEX, card_text),
            review_count=_match_number(REVIEW_COUNT_REGEX, card_text),
            listings_for_sale=int(for_sale) if for_sale is not None else None,
            listings_to_rent=int(to_rent) if to_rent is not None else None,
        )
