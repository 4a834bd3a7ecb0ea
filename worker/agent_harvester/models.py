"""Core data models shared by the agent harvesting pipeline."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

SOURCE_API = "api"
SOURCE_JSON_LD = "json-ld"
SOURCE_HTML = "html"
SOURCES = (SOURCE_API, SOURCE_JSON_LD, SOURCE_HTML)

Number = Union[int, float]


@dataclass(frozen=True, slots=True)
class AgentRecord:
    """Normalized snapshot of one estate-agent branch."""

    name: str
    source: str
    agent_id: Optional[str] = None
    branch_name: Optional[str] = None
    company_name: Optional[str] = None
    url: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None
    locality: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    logo: Optional[str] = None
    rating: Optional[Number] = None
    review_count: Optional[Number] = None
    listings_for_sale: Optional[int] = None
    listings_to_rent: Optional[int] = None
    avg_asking_price: Optional[Number] = None
    avg_rent_price: Optional[Number] = None
    featured: bool = False
    scraped_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("AgentRecord requires a non-empty name")
        if self.source not in SOURCES:
            raise ValueError(f"Unknown record source: {self.source}")

    @property
    def identity_key(self) -> str:
        """agentId, else profile URL, else ``name|address``."""
        if self.agent_id:
            return self.agent_id
        if self.url:
            return self.url
        return f"{self.name}|{self.address or ''}"

    def stamped(self, when: Optional[datetime] = None) -> "AgentRecord":
        return replace(self, scraped_at=when or datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the camelCase keys of the output dataset."""
        return {
            "agentId": self.agent_id,
            "name": self.name,
            "branchName": self.branch_name or self.name,
            "companyName": self.company_name,
            "url": self.url,
            "address": self.address,
            "postalCode": self.postal_code,
            "locality": self.locality,
            "phone": self.phone,
            "website": self.website,
            "logo": self.logo,
            "rating": self.rating,
            "reviewCount": self.review_count,
            "listingsForSale": self.listings_for_sale,
            "listingsToRent": self.listings_to_rent,
            "avgAskingPrice": self.avg_asking_price,
            "avgRentPrice": self.avg_rent_price,
            "featured": self.featured,
            "source": self.source,
            "scrapedAt": self.scraped_at.isoformat() if self.scraped_at else None,
        }
