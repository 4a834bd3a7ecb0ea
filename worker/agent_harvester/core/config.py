"""Application configuration helpers."""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_START_URL = "https://www.zoopla.co.uk/find-agents/estate-agents/london/"
DEFAULT_BASE_URL = "https://www.zoopla.co.uk"
DEFAULT_RESULTS_WANTED = 50
DEFAULT_AGENTS_PER_PAGE = 25
SINK_CHOICES = {"jsonl", "postgres", "ingest"}


class ConfigError(RuntimeError):
    """Raised when configuration or run input cannot be used."""


class FatalInputError(ConfigError):
    """Raised when a crawl has no start URL at all."""


@dataclass(frozen=True)
class Settings:
    default_start_url: str = DEFAULT_START_URL
    base_url: str = DEFAULT_BASE_URL
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: Optional[int] = None
    agents_per_page: int = DEFAULT_AGENTS_PER_PAGE
    proxy_url: Optional[str] = None
    use_browser_fallback: bool = False
    sink: str = "jsonl"
    output_path: str = "data/agents.jsonl"
    database_url: str = ""
    ingest_api_url: str = ""
    worker_port: int = 9000


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    default_start_url = os.getenv("DEFAULT_START_URL", DEFAULT_START_URL).strip()
    base_url = os.getenv("BASE_URL", DEFAULT_BASE_URL).strip().rstrip("/") or DEFAULT_BASE_URL
    results_wanted = _optional_int("WORKER_RESULTS_WANTED") or DEFAULT_RESULTS_WANTED
    max_pages = _optional_int("WORKER_MAX_PAGES")
    agents_per_page = _optional_int("AGENTS_PER_PAGE") or DEFAULT_AGENTS_PER_PAGE
    proxy_url = os.getenv("PROXY_URL") or None
    use_browser_fallback = os.getenv("USE_BROWSER_FALLBACK", "false").lower() in {"1", "true", "yes"}
    sink = os.getenv("SINK", "jsonl").strip().lower()
    output_path = os.getenv("OUTPUT_PATH", "data/agents.jsonl")
    database_url = os.getenv("DATABASE_URL", "")
    ingest_api_url = os.getenv("INGEST_API_URL", "")
    worker_port = int(os.getenv("WORKER_PORT", "9000"))

    if sink not in SINK_CHOICES:
        logger.warning("Unknown SINK=%s; falling back to jsonl.", sink)
        sink = "jsonl"
    if sink == "postgres" and not database_url:
        logger.warning("DATABASE_URL is not set; database operations will fail.")
    if sink == "ingest" and not ingest_api_url:
        logger.warning("INGEST_API_URL is not configured; ingest calls will fail.")
    if not default_start_url:
        logger.info("DEFAULT_START_URL is empty; runs must provide their own start URLs.")

    return Settings(
        default_start_url=default_start_url,
        base_url=base_url,
        results_wanted=max(1, results_wanted),
        max_pages=max(1, max_pages) if max_pages is not None else None,
        agents_per_page=max(1, agents_per_page),
        proxy_url=proxy_url,
        use_browser_fallback=use_browser_fallback,
        sink=sink,
        output_path=output_path,
        database_url=database_url,
        ingest_api_url=ingest_api_url,
        worker_port=worker_port,
    )


def _coerce_int(value: Any, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be numeric")
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be numeric") from exc
    if not math.isfinite(number):
        logger.warning("Ignoring non-finite %s=%r; using the default.", name, value)
        return None
    return int(number)


def _first_present(mapping: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


def _clean_start_urls(values: Iterable[Any]) -> List[str]:
    urls: List[str] = []
    for value in values:
        if isinstance(value, dict):
            value = value.get("url")
        if isinstance(value, str) and value.strip():
            urls.append(value.strip())
    return urls


@dataclass(frozen=True)
class RunInput:
    """Budgets and targets for one crawl invocation; never mutated after start."""

    start_urls: Tuple[str, ...]
    results_wanted: int = DEFAULT_RESULTS_WANTED
    max_pages: int = 2
    proxy: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]], settings: Optional[Settings] = None) -> "RunInput":
        settings = settings or get_settings()
        payload = payload or {}

        raw_urls = payload.get("startUrls")
        if isinstance(raw_urls, (list, tuple)) and raw_urls:
            start_urls = _clean_start_urls(raw_urls)
        elif payload.get("startUrl"):
            start_urls = _clean_start_urls([payload["startUrl"]])
        elif settings.default_start_url:
            start_urls = [settings.default_start_url]
        else:
            start_urls = []

        if not start_urls:
            raise FatalInputError("Missing startUrl or startUrls")

        results_wanted = _coerce_int(_first_present(payload, "resultsWanted", "results_wanted"), "resultsWanted")
        if results_wanted is None:
            results_wanted = settings.results_wanted
        results_wanted = max(1, results_wanted)

        max_pages = _coerce_int(_first_present(payload, "maxPages", "max_pages"), "maxPages")
        if max_pages is None:
            max_pages = settings.max_pages
        if max_pages is None:
            max_pages = math.ceil(results_wanted / settings.agents_per_page)
        max_pages = max(1, max_pages)

        proxy = payload.get("proxyConfiguration") or {}
        if not isinstance(proxy, dict):
            proxy = {"value": proxy}

        return cls(
            start_urls=tuple(start_urls),
            results_wanted=results_wanted,
            max_pages=max_pages,
            proxy=dict(proxy),
        )

    @property
    def proxy_url(self) -> Optional[str]:
        for key in ("proxyUrl", "proxy_url", "url"):
            value = self.proxy.get(key)
            if isinstance(value, str) and value:
                return value
        urls = self.proxy.get("proxyUrls")
        if isinstance(urls, list) and urls:
            return str(urls[0])
        return None
