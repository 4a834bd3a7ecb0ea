"""Database helpers for the worker."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import psycopg2
from psycopg2 import extras, pool

from agent_harvester.core.config import get_settings

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.SimpleConnectionPool] = None


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.SimpleConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.SimpleConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    except psycopg2.Error:
        conn.rollback()
        raise
    finally:
        pg_pool.putconn(conn)


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "identity_key": row.get("identityKey"),
        "agent_id": row.get("agentId"),
        "name": row.get("name"),
        "branch_name": row.get("branchName"),
        "company_name": row.get("companyName"),
        "url": row.get("url"),
        "address": row.get("address"),
        "postal_code": row.get("postalCode"),
        "locality": row.get("locality"),
        "phone": row.get("phone"),
        "website": row.get("website"),
        "logo": row.get("logo"),
        "rating": row.get("rating"),
        "review_count": row.get("reviewCount"),
        "listings_for_sale": row.get("listingsForSale"),
        "listings_to_rent": row.get("listingsToRent"),
        "source": row.get("source"),
        "raw": extras.Json(row),
        "scraped_at": row.get("scrapedAt"),
    }


# First-seen wins: an existing identity is never overwritten.
_INSERT_AGENT = """
INSERT INTO agents (
    identity_key,
    agent_id,
    name,
    branch_name,
    company_name,
    url,
    address,
    postal_code,
    locality,
    phone,
    website,
    logo,
    rating,
    review_count,
    listings_for_sale,
    listings_to_rent,
    source,
    raw,
    scraped_at
) VALUES (
    %(identity_key)s,
    %(agent_id)s,
    %(name)s,
    %(branch_name)s,
    %(company_name)s,
    %(url)s,
    %(address)s,
    %(postal_code)s,
    %(locality)s,
    %(phone)s,
    %(website)s,
    %(logo)s,
    %(rating)s,
    %(review_count)s,
    %(listings_for_sale)s,
    %(listings_to_rent)s,
    %(source)s,
    %(raw)s,
    %(scraped_at)s
)
ON CONFLICT (identity_key) DO NOTHING;
"""


def insert_agents(rows) -> int:
    """Persist agent rows in one transaction; returns how many were submitted."""
    params = [_prepare_params(row) for row in rows]
    for item in params:
        if not item["identity_key"] or not item["name"]:
            raise ValueError("identity_key and name are required for insert")
    if not params:
        return 0

    with get_connection() as conn:
        with conn.cursor() as cur:
            for item in params:
                cur.execute(_INSERT_AGENT, item)
        conn.commit()
        logger.debug("Inserted %d agents", len(params))
    return len(params)
