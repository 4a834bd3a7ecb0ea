from agent_harvester.etl import normalize
from agent_harvester.models import AgentRecord

BASE = "https://example.test"


def _payload_agent(**overrides):
    agent = {
        "id": 123,
        "uriName": "acme-estates-london",
        "displayName": "  Acme   Estates ",
        "branchName": "Acme Estates - Soho",
        "companyName": "Acme Group",
        "displayAddress": "10 Greek Street, London W1D 4DH",
        "contactNumber": "020 7123 4567",
        "logo": "//cdn.example.test/acme.png",
        "listingsStatistics": {
            "residential": {
                "forSale": {"availableListings": "42", "avgAskingPrice": 750000},
                "toRent": {"availableListings": 7, "avgAskingPrice": "2,500"},
            }
        },
        "featured": True,
    }
    agent.update(overrides)
    return agent


def test_normalize_agent_maps_payload_fields():
    record = normalize.normalize_agent(_payload_agent(), "api", BASE)

    assert record.agent_id == "123"
    assert record.name == "Acme Estates"
    assert record.branch_name == "Acme Estates - Soho"
    assert record.company_name == "Acme Group"
    assert record.url == "https://example.test/find-agents/branch/acme-estates-london/123/"
    assert record.postal_code == "W1D 4DH"
    assert record.phone == "020 7123 4567"
    assert record.logo == "https://cdn.example.test/acme.png"
    assert record.listings_for_sale == 42
    assert record.listings_to_rent == 7
    assert record.avg_asking_price == 750000
    assert record.avg_rent_price == 2500
    assert record.featured is True
    assert record.source == "api"


def test_normalize_agent_handles_snake_case_and_nested_contact():
    raw = {
        "branch_name": "Harbour Homes",
        "agent_id": "HH-1",
        "display_address": "1 Quay, Bristol BS1 4DJ",
        "contact": {"phone": "tel:0117 496 0000", "website": "https://harbour.test"},
        "town": "Bristol",
        "review_count": "18 reviews",
    }

    record = normalize.normalize_agent(raw, "api", BASE)

    assert record.name == "Harbour Homes"
    assert record.branch_name == "Harbour Homes"
    assert record.agent_id == "HH-1"
    assert record.phone == "0117 496 0000"
    assert record.website == "https://harbour.test"
    assert record.locality == "Bristol"
    assert record.review_count == 18


def test_normalize_agent_reads_json_ld_shapes():
    node = {
        "@type": "RealEstateAgent",
        "name": "Riverside Lettings",
        "url": "/find-agents/branch/riverside/77/",
        "telephone": "+44 20 7946 0000",
        "address": {
            "@type": "PostalAddress",
            "streetAddress": "5 River Walk",
            "addressLocality": "London",
            "postalCode": "se1 9pp",
        },
        "aggregateRating": {"ratingValue": "4.7", "reviewCount": 120},
        "logo": {"@type": "ImageObject", "url": "https://cdn.test/riverside.png"},
    }

    record = normalize.normalize_agent(node, "json-ld", BASE)

    assert record.address == "5 River Walk, London, se1 9pp"
    assert record.postal_code == "SE1 9PP"
    assert record.locality == "London"
    assert record.rating == 4.7
    assert record.review_count == 120
    assert record.logo == "https://cdn.test/riverside.png"
    assert record.url == "https://example.test/find-agents/branch/riverside/77/"


def test_normalize_agent_requires_name():
    assert normalize.normalize_agent({"id": 1, "url": "/x"}, "api", BASE) is None
    assert normalize.normalize_agent({"name": "   ", "id": 1}, "api", BASE) is None
    assert normalize.normalize_agent(["not", "a", "mapping"], "api", BASE) is None
    assert normalize.normalize_agent(None, "api", BASE) is None


def test_identity_key_priority_and_stability():
    with_id = _payload_agent()
    assert normalize.identity_key(with_id, BASE) == "123"
    assert normalize.identity_key(with_id, BASE) == normalize.identity_key(dict(with_id), BASE)

    no_id = {"name": "Acme", "url": "/find-agents/branch/acme/"}
    assert normalize.identity_key(no_id, BASE) == "https://example.test/find-agents/branch/acme/"

    name_address = {"name": "Acme", "address": "1 High St"}
    assert normalize.identity_key(name_address, BASE) == "Acme|1 High St"

    assert normalize.identity_key({"url": "/nameless"}, BASE) is None


def test_to_row_adds_identity_key():
    record = AgentRecord(name="Acme", source="html", url="https://example.test/a")
    row = normalize.to_row(record)
    assert row["identityKey"] == "https://example.test/a"
    assert row["branchName"] == "Acme"
    assert row["scrapedAt"] is None
