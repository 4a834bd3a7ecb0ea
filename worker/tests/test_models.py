from datetime import datetime, timezone

import pytest

from agent_harvester.models import AgentRecord


def test_record_requires_name_and_known_source():
    with pytest.raises(ValueError):
        AgentRecord(name="", source="api")
    with pytest.raises(ValueError):
        AgentRecord(name="Acme", source="csv")


def test_stamped_sets_scraped_at_without_mutating():
    record = AgentRecord(name="Acme", source="api", agent_id="1")
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    stamped = record.stamped(when)

    assert record.scraped_at is None
    assert stamped.scraped_at == when
    assert stamped.identity_key == record.identity_key
    assert stamped.to_dict()["scrapedAt"] == "2024-05-01T12:00:00+00:00"


def test_to_dict_uses_wire_keys():
    payload = AgentRecord(name="Acme", source="json-ld", listings_for_sale=3).to_dict()

    assert payload["listingsForSale"] == 3
    assert payload["branchName"] == "Acme"
    assert payload["source"] == "json-ld"
    assert set(payload) >= {"agentId", "postalCode", "reviewCount", "listingsToRent", "scrapedAt"}
