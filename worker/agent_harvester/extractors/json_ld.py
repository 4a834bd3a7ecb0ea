"""Linked-data tier: schema.org business nodes from ``application/ld+json`` blocks."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping

from agent_harvester.core.text import safe_json_parse
from agent_harvester.etl.normalize import normalize_agent
from agent_harvester.extractors.base import MAX_WALK_STEPS, ExtractionResult, PageContent, walk_nodes
from agent_harvester.models import SOURCE_JSON_LD, AgentRecord

logger = logging.getLogger(__name__)

AGENT_TYPES = {"RealEstateAgent", "RealEstateAgency", "Organization", "LocalBusiness"}
LINK_PROPERTIES = ("@graph", "item", "mainEntity", "about", "itemListElement")


def node_types(node: Mapping[str, Any]) -> List[str]:
    declared = node.get("@type")
    if isinstance(declared, list):
        return [str(value) for value in declared]
    if declared:
        return [str(declared)]
    return []


def is_agent_node(node: Mapping[str, Any]) -> bool:
    return any(value in AGENT_TYPES for value in node_types(node))


class JsonLdExtractor:
    name = SOURCE_JSON_LD

    def __init__(self, max_steps: int = MAX_WALK_STEPS) -> None:
        self.max_steps = max_steps

    def extract(self, page: PageContent) -> ExtractionResult:
        records: List[AgentRecord] = []
        for script in page.soup.find_all("script", type="application/ld+json"):
            document = safe_json_parse((script.string or script.get_text() or "").strip())
            if document is None:
                logger.debug("Skipping unparsable JSON-LD block on %s", page.url)
                continue
            records.extend(self.extract_document(document, page.base_url))
        return ExtractionResult(records=records)

    def extract_document(self, document: Any, base_url: str) -> List[AgentRecord]:
        records: List[AgentRecord] = []
        nodes = walk_nodes(document, breadth_first=False, max_steps=self.max_steps, follow_first=LINK_PROPERTIES)
        for node in nodes:
            if not is_agent_node(node):
                continue
            record = normalize_agent(node, SOURCE_JSON_LD, base_url)
            if record is not None:
                records.append(record)
        return records
