"""Structured-payload tier: agents embedded in the page's ``__NEXT_DATA__`` JSON."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

from agent_harvester.core.text import safe_json_parse
from agent_harvester.etl.normalize import normalize_agent
from agent_harvester.extractors.base import MAX_WALK_STEPS, ExtractionResult, PageContent, walk_nodes
from agent_harvester.models import SOURCE_API, AgentRecord

logger = logging.getLogger(__name__)

NAME_KEYS = ("name", "displayName", "branchName", "companyName", "display_name", "branch_name", "company_name")
URL_KEYS = ("url", "uriName", "profileUrl", "uri_name", "profile_url")
ADDRESS_KEYS = ("address", "displayAddress", "display_address")
ID_KEYS = ("id", "agentId", "branchId", "agent_id", "branch_id")


def _has_any(node: Mapping[str, Any], keys) -> bool:
    return any(node.get(key) not in (None, "") for key in keys)


def looks_like_agent(node: Mapping[str, Any]) -> bool:
    """A name-like field plus at least one URL-, address- or id-like field."""
    if not _has_any(node, NAME_KEYS):
        return False
    return _has_any(node, URL_KEYS) or _has_any(node, ADDRESS_KEYS) or _has_any(node, ID_KEYS)


def _agents_block(document: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    """Locate ``pageProps.data.agents`` in a page payload or a data-endpoint response."""
    props = document.get("props") if isinstance(document.get("props"), Mapping) else document
    page_props = props.get("pageProps") if isinstance(props, Mapping) else None
    data = page_props.get("data") if isinstance(page_props, Mapping) else None
    agents = data.get("agents") if isinstance(data, Mapping) else None
    if isinstance(agents, Mapping) and isinstance(agents.get("results"), list):
        return agents
    return None


class NextDataExtractor:
    name = SOURCE_API

    def __init__(self, max_steps: int = MAX_WALK_STEPS) -> None:
        self.max_steps = max_steps

    def extract(self, page: PageContent) -> ExtractionResult:
        script = page.soup.find("script", id="__NEXT_DATA__")
        if script is None:
            return ExtractionResult()
        document = safe_json_parse((script.string or script.get_text() or "").strip())
        if document is None:
            logger.debug("Ignoring unparsable __NEXT_DATA__ on %s", page.url)
            return ExtractionResult()
        return self.extract_document(document, page.base_url)

    def extract_document(self, document: Any, base_url: str) -> ExtractionResult:
        if not isinstance(document, (dict, list)):
            return ExtractionResult()

        build_id = document.get("buildId") if isinstance(document, dict) else None
        agents = _agents_block(document) if isinstance(document, dict) else None
        if agents is not None:
            results = agents["results"]
            records = self._normalize_all(results, base_url)
            total = agents.get("totalCount") or len(results)
            logger.debug("Fast path found %d/%d agents (buildId=%s)", len(records), total, build_id)
            return ExtractionResult(records=records, build_id=build_id, total_count=total)

        candidates = [node for node in walk_nodes(document, max_steps=self.max_steps) if looks_like_agent(node)]
        return ExtractionResult(records=self._normalize_all(candidates, base_url), build_id=build_id)

    @staticmethod
    def _normalize_all(candidates: List[Any], base_url: str) -> List[AgentRecord]:
        records: List[AgentRecord] = []
        for candidate in candidates:
            record = normalize_agent(candidate, SOURCE_API, base_url)
            if record is not None:
                records.append(record)
        return records
