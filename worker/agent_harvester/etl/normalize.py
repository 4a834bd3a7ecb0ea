"""Utilities for mapping raw agent-like objects into AgentRecord instances."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from agent_harvester.core.text import (
    clean_text,
    extract_postal_code,
    normalize_phone,
    parse_number,
    to_absolute_url,
)
from agent_harvester.models import AgentRecord

logger = logging.getLogger(__name__)

BRANCH_PATH_TEMPLATE = "/find-agents/branch/{uri_name}/{agent_id}/"

# Probed in order; the first non-empty value wins. Dotted names walk nested mappings.
AGENT_ID_FIELDS = ("id", "agentId", "agent_id", "branchId", "branch_id")
NAME_FIELDS = ("displayName", "display_name", "name", "branchName", "branch_name")
BRANCH_NAME_FIELDS = ("branchName", "branch_name")
COMPANY_FIELDS = ("companyName", "company_name", "company", "parentOrganization.name", "brand.name")
URL_FIELDS = ("url", "profileUrl", "profile_url", "branchUrl", "branch_url")
ADDRESS_FIELDS = ("displayAddress", "display_address", "address", "contact.address")
POSTAL_CODE_FIELDS = ("postalCode", "postal_code", "postcode", "address.postalCode")
LOCALITY_FIELDS = ("locality", "town", "city", "address.addressLocality", "address.locality")
PHONE_FIELDS = (
    "contactNumber",
    "contact_number",
    "telephone",
    "phone",
    "phoneNumber",
    "phone_number",
    "contact.phone",
    "contact.telephone",
)
WEBSITE_FIELDS = ("website", "websiteUrl", "website_url", "contact.website")
LOGO_FIELDS = ("logo", "logoUrl", "logo_url", "image")
RATING_FIELDS = ("rating", "ratingValue", "rating_value", "rating.value", "aggregateRating.ratingValue")
REVIEW_COUNT_FIELDS = (
    "reviewCount",
    "review_count",
    "reviewsCount",
    "aggregateRating.reviewCount",
    "aggregateRating.ratingCount",
)
FOR_SALE_FIELDS = (
    "listingsStatistics.residential.forSale.availableListings",
    "listingsForSale",
    "listings_for_sale",
)
TO_RENT_FIELDS = (
    "listingsStatistics.residential.toRent.availableListings",
    "listingsToRent",
    "listings_to_rent",
)
AVG_ASKING_FIELDS = ("listingsStatistics.residential.forSale.avgAskingPrice", "avgAskingPrice")
AVG_RENT_FIELDS = ("listingsStatistics.residential.toRent.avgAskingPrice", "avgRentPrice")
FEATURED_FIELDS = ("featured", "isFeatured", "is_featured")
ADDRESS_PARTS = ("streetAddress", "addressLocality", "addressRegion", "postalCode")


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    node: Any = raw
    for part in path.split("."):
        if not isinstance(node, Mapping):
            return None
        node = node.get(part)
    return node


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def probe(raw: Mapping[str, Any], fields: Iterable[str], *, scalar: bool = True) -> Any:
    """Return the first non-empty value found under ``fields``."""
    for name in fields:
        value = _lookup(raw, name)
        if _is_empty(value):
            continue
        if scalar and isinstance(value, (dict, list)):
            continue
        return value
    return None


def _address_text(raw: Mapping[str, Any]) -> Optional[str]:
    value = probe(raw, ADDRESS_FIELDS, scalar=False)
    if isinstance(value, Mapping):
        parts = [clean_text(value.get(part)) for part in ADDRESS_PARTS]
        return clean_text(", ".join(part for part in parts if part))
    if isinstance(value, list):
        return clean_text(", ".join(str(part) for part in value if part))
    return clean_text(value)


def _profile_url(raw: Mapping[str, Any], agent_id: Optional[str], base_url: str) -> Optional[str]:
    uri_name = probe(raw, ("uriName", "uri_name"))
    if uri_name and agent_id:
        return to_absolute_url(BRANCH_PATH_TEMPLATE.format(uri_name=uri_name, agent_id=agent_id), base_url)
    return to_absolute_url(probe(raw, URL_FIELDS, scalar=False), base_url)


def _as_int(value: Any) -> Optional[int]:
    number = parse_number(value)
    return int(number) if number is not None else None


def normalize_agent(raw: Any, source: str, base_url: str) -> Optional[AgentRecord]:
    """Map one raw candidate onto the canonical record, or ``None`` without a name."""
    if not isinstance(raw, Mapping):
        return None

    name = clean_text(probe(raw, NAME_FIELDS))
    if not name:
        return None

    raw_id = probe(raw, AGENT_ID_FIELDS)
    agent_id = clean_text(raw_id) if raw_id is not None else None
    address = _address_text(raw)
    postal_code = clean_text(probe(raw, POSTAL_CODE_FIELDS))

    return AgentRecord(
        name=name,
        source=source,
        agent_id=agent_id,
        branch_name=clean_text(probe(raw, BRANCH_NAME_FIELDS)) or name,
        company_name=clean_text(probe(raw, COMPANY_FIELDS)),
        url=_profile_url(raw, agent_id, base_url),
        address=address,
        postal_code=postal_code.upper() if postal_code else extract_postal_code(address),
        locality=clean_text(probe(raw, LOCALITY_FIELDS)),
        phone=normalize_phone(probe(raw, PHONE_FIELDS)),
        website=to_absolute_url(probe(raw, WEBSITE_FIELDS, scalar=False), base_url),
        logo=to_absolute_url(probe(raw, LOGO_FIELDS, scalar=False), base_url),
        rating=parse_number(probe(raw, RATING_FIELDS)),
        review_count=parse_number(probe(raw, REVIEW_COUNT_FIELDS)),
        listings_for_sale=_as_int(probe(raw, FOR_SALE_FIELDS)),
        listings_to_rent=_as_int(probe(raw, TO_RENT_FIELDS)),
        avg_asking_price=parse_number(probe(raw, AVG_ASKING_FIELDS)),
        avg_rent_price=parse_number(probe(raw, AVG_RENT_FIELDS)),
        featured=bool(probe(raw, FEATURED_FIELDS)),
    )


def identity_key(raw: Any, base_url: str = "") -> Optional[str]:
    """Identity of a raw candidate, or ``None`` when it cannot be normalized."""
    record = normalize_agent(raw, "api", base_url)
    return record.identity_key if record else None


def to_row(record: AgentRecord) -> Dict[str, Any]:
    row = record.to_dict()
    row["identityKey"] = record.identity_key
    return row
