import json

from agent_harvester.extractors.base import PageContent, walk_nodes
from agent_harvester.extractors.next_data import NextDataExtractor, looks_like_agent

PAGE_URL = "https://example.test/find-agents/estate-agents/london/"


def _page(document):
    html = (
        "<html><body><div id='__next'></div>"
        f"<script id='__NEXT_DATA__' type='application/json'>{json.dumps(document)}</script>"
        "</body></html>"
    )
    return PageContent(PAGE_URL, html)


def test_fast_path_reads_agents_results_and_build_id():
    document = {
        "buildId": "abc123",
        "props": {
            "pageProps": {
                "data": {
                    "agents": {
                        "totalCount": 40,
                        "results": [
                            {"id": 1, "name": "Acme", "uriName": "acme"},
                            {"id": 2, "displayName": "Beta", "uriName": "beta"},
                            {"id": 3},
                        ],
                    }
                }
            }
        },
    }

    result = NextDataExtractor().extract(_page(document))

    assert [record.name for record in result.records] == ["Acme", "Beta"]
    assert all(record.source == "api" for record in result.records)
    assert result.build_id == "abc123"
    assert result.total_count == 40
    assert result.records[0].url == "https://example.test/find-agents/branch/acme/1/"


def test_data_endpoint_document_uses_fast_path():
    document = {"pageProps": {"data": {"agents": {"results": [{"id": 9, "name": "Gamma"}]}}}}

    result = NextDataExtractor().extract_document(document, "https://example.test")

    assert [record.agent_id for record in result.records] == ["9"]


def test_generic_walk_finds_nested_agents_but_not_plain_named_objects():
    document = {
        "props": {
            "pageProps": {
                "city": {"name": "London"},
                "sections": [
                    {"widget": {"items": [{"branchName": "Delta Homes", "address": "1 Main St, Leeds LS1 1AA"}]}},
                    {"name": "Epsilon", "url": "/find-agents/branch/epsilon/5/"},
                ],
            }
        }
    }

    result = NextDataExtractor().extract(_page(document))

    assert sorted(record.name for record in result.records) == ["Delta Homes", "Epsilon"]
    assert result.build_id is None


def test_generic_walk_terminates_on_cycles_without_duplicates():
    agent = {"name": "Loop Lettings", "id": "L1"}
    root = {"a": agent, "b": {"same": agent}, "list": [agent, agent]}
    root["self"] = root
    agent["parent"] = root

    result = NextDataExtractor().extract_document(root, "https://example.test")

    assert [record.agent_id for record in result.records] == ["L1"]


def test_walk_respects_step_budget():
    deep = current = {}
    for _ in range(100):
        current["child"] = {}
        current = current["child"]

    assert len(list(walk_nodes(deep, max_steps=10))) == 10


def test_missing_or_broken_payload_yields_nothing():
    assert not NextDataExtractor().extract(PageContent(PAGE_URL, "<html></html>"))
    broken = "<script id='__NEXT_DATA__'>{not json</script>"
    assert NextDataExtractor().extract(PageContent(PAGE_URL, broken)).records == []


def test_looks_like_agent_requires_corroborating_field():
    assert looks_like_agent({"name": "Acme", "id": 1})
    assert looks_like_agent({"companyName": "Acme", "address": "1 High St"})
    assert not looks_like_agent({"name": "London"})
    assert not looks_like_agent({"url": "/x", "id": 1})
