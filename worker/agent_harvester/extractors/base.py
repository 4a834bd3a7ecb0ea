"""Shared types for the extraction tiers."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Deque, Dict, Iterator, List, Optional, Protocol, Sequence, Set
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from agent_harvester.models import AgentRecord

logger = logging.getLogger(__name__)

MAX_WALK_STEPS = 20000


class PageContent:
    """Markup fetched for one listing page; parsed lazily and at most once."""

    def __init__(self, url: str, html: str, *, base_url: Optional[str] = None) -> None:
        self.url = url
        self.html = html or ""
        parsed = urlparse(url)
        if base_url:
            self.base_url = base_url.rstrip("/")
        elif parsed.scheme and parsed.netloc:
            self.base_url = f"{parsed.scheme}://{parsed.netloc}"
        else:
            self.base_url = ""

    @cached_property
    def soup(self) -> BeautifulSoup:
        return BeautifulSoup(self.html, "html.parser")

    @property
    def host(self) -> str:
        return urlparse(self.base_url).netloc.lower()


@dataclass
class ExtractionResult:
    records: List[AgentRecord] = field(default_factory=list)
    build_id: Optional[str] = None
    total_count: Optional[int] = None

    def __bool__(self) -> bool:
        return bool(self.records)


class Extractor(Protocol):
    name: str

    def extract(self, page: PageContent) -> ExtractionResult:
        ...


def walk_nodes(
    root: Any,
    *,
    breadth_first: bool = True,
    max_steps: int = MAX_WALK_STEPS,
    follow_first: Sequence[str] = (),
) -> Iterator[Dict[str, Any]]:
    """Yield every mapping reachable from ``root`` exactly once.

    Visited state is keyed by object identity so shared or cyclic references
    terminate; ``max_steps`` caps the number of containers visited.
    Properties named in ``follow_first`` are visited before the others.
    """
    pending: Deque[Any] = deque([root])
    visited: Set[int] = set()
    steps = 0

    while pending:
        node = pending.popleft() if breadth_first else pending.pop()
        if not isinstance(node, (dict, list)) or id(node) in visited:
            continue
        if steps >= max_steps:
            logger.debug("Walk step budget of %s exhausted; stopping early", max_steps)
            return
        visited.add(id(node))
        steps += 1

        if isinstance(node, list):
            children = [item for item in node if isinstance(item, (dict, list))]
        else:
            yield node
            preferred = [node[key] for key in follow_first if isinstance(node.get(key), (dict, list))]
            others = [
                value
                for key, value in node.items()
                if key not in follow_first and isinstance(value, (dict, list))
            ]
            children = preferred + others

        if breadth_first:
            pending.extend(children)
        else:
            pending.extend(reversed(children))

