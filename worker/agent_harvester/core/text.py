"""Pure helpers that clean noisy strings scraped from listing pages."""

from __future__ import annotations

import json
import math
import re
from typing import Any, Optional, Union

WHITESPACE_REGEX = re.compile(r"\s+")
NON_NUMERIC_REGEX = re.compile(r"[^\d.]")
REJECTED_SCHEMES = ("data:", "mailto:", "tel:")

# Tried in order: a full code with its internal space, the same without the
# space, then an outward code alone at the end of the text.
POSTCODE_PATTERNS = (
    re.compile(r"\b([A-Z]{1,2}\d{1,2}[A-Z]?\s+\d[A-Z]{2})\b", re.IGNORECASE),
    re.compile(r"\b([A-Z]{1,2}\d{1,2}[A-Z]?\d[A-Z]{2})\b", re.IGNORECASE),
    re.compile(r"\b([A-Z]{1,2}\d{1,2}[A-Z]?)\s*$", re.IGNORECASE),
)
UK_PHONE_REGEX = re.compile(r"(\+44\s*7\d{3}|\+44\s*\d{2}|\d{2,4})\s*\d{3,4}\s*\d{3,4}")

Number = Union[int, float]


def clean_text(value: Any) -> Optional[str]:
    """Collapse whitespace runs and trim; empty input becomes ``None``."""
    if value is None:
        return None
    cleaned = WHITESPACE_REGEX.sub(" ", str(value)).strip()
    return cleaned or None


def to_absolute_url(value: Any, base_origin: str) -> Optional[str]:
    """Resolve ``value`` against ``base_origin``.

    ``value`` may be a string or a URL-like mapping exposing ``href``, ``url``
    or ``value`` (JSON-LD ``ImageObject`` nodes, for example).
    """
    if not value:
        return None
    url = value
    if isinstance(url, dict):
        url = url.get("href") or url.get("url") or url.get("value")
    if not isinstance(url, str):
        return None

    trimmed = url.strip()
    if not trimmed or trimmed.lower().startswith(REJECTED_SCHEMES):
        return None
    if trimmed.startswith("//"):
        return f"https:{trimmed}"
    if trimmed.startswith("http"):
        return trimmed

    origin = (base_origin or "").rstrip("/")
    separator = "" if trimmed.startswith("/") else "/"
    return f"{origin}{separator}{trimmed}"


def parse_number(value: Any) -> Optional[Number]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if not value:
        return None

    numeric = NON_NUMERIC_REGEX.sub("", str(value))
    if not numeric or numeric == ".":
        return None
    try:
        if "." in numeric:
            return float(numeric)
        return int(numeric)
    except ValueError:
        return None


def extract_postal_code(value: Any) -> Optional[str]:
    if not value:
        return None
    text = str(value)
    for pattern in POSTCODE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).upper()
    return None


def normalize_phone(value: Any) -> Optional[str]:
    """Return the first UK-shaped number in ``value`` with single spaces."""
    if not value:
        return None
    raw = str(value).replace("tel:", "", 1).strip()
    match = UK_PHONE_REGEX.search(raw)
    if not match:
        return None
    return WHITESPACE_REGEX.sub(" ", match.group(0)).strip()


def safe_json_parse(value: Any) -> Optional[Any]:
    if not value or not isinstance(value, str):
        return None
    try:
        return json.loads(value)
    except ValueError:
        return None
