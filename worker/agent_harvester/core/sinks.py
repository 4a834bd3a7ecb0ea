"""Destinations for saved agent batches."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from agent_harvester.core import db
from agent_harvester.core.config import ConfigError, Settings, get_settings
from agent_harvester.etl.normalize import to_row
from agent_harvester.models import AgentRecord

logger = logging.getLogger(__name__)

FAILED_DIR = Path("data") / "failed"


class Sink(Protocol):
    def push(self, records: Sequence[AgentRecord]) -> None:
        ...


class JsonLinesSink:
    """Append one JSON object per record to a local file."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)

    def push(self, records: Sequence[AgentRecord]) -> None:
        if not records:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            for record in records:
                fh.write(json.dumps(record.to_dict(), ensure_ascii=False))
                fh.write("\n")
        logger.debug("Appended %d agents to %s", len(records), self.path)


class PostgresSink:
    def push(self, records: Sequence[AgentRecord]) -> None:
        if records:
            db.insert_agents([to_row(record) for record in records])


class IngestApiSink:
    """POST batches to an ingest endpoint.

    Failed batches are written under ``failed_dir`` for later replay and never
    raise, so the crawl carries on.
    """

    def __init__(
        self,
        url: str,
        *,
        session: Optional[requests.Session] = None,
        failed_dir: Path = FAILED_DIR,
        timeout: int = 10,
    ) -> None:
        if not url:
            raise ConfigError("INGEST_API_URL must be set to use the ingest sink.")
        self.url = url
        self.failed_dir = Path(failed_dir)
        self.timeout = timeout
        if session is None:
            session = requests.Session()
            retries = Retry(
                total=3,
                backoff_factor=1,
                status_forcelist=(500, 502, 503, 504),
                allowed_methods=("POST",),
            )
            session.mount("http://", HTTPAdapter(max_retries=retries))
            session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session = session

    def push(self, records: Sequence[AgentRecord]) -> None:
        if not records:
            return
        payload = {"items": [record.to_dict() for record in records]}
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Failed to call ingest API: %s", exc)
            self._save_failed(payload)
            return

        if not (200 <= response.status_code < 300):
            logger.error("Ingest API returned non-2xx status (%s): %s", response.status_code, response.text[:500])
            self._save_failed({"status": response.status_code, "text": response.text, "payload": payload})
            return
        logger.info("Posted %d agents to ingest API. status=%s", len(records), response.status_code)

    def _save_failed(self, body: Dict[str, Any]) -> Optional[Path]:
        try:
            self.failed_dir.mkdir(parents=True, exist_ok=True)
            fname = self.failed_dir / f"failed-{time.time_ns()}.json"
            with fname.open("w", encoding="utf-8") as fh:
                json.dump(body, fh, ensure_ascii=False, indent=2)
        except OSError as exc:
            logger.error("Failed to save failed payload to disk: %s", exc)
            return None
        logger.info("Saved failed payload to %s", fname)
        return fname


def build_sink(settings: Optional[Settings] = None) -> Sink:
    settings = settings or get_settings()
    if settings.sink == "postgres":
        db.init_pool()
        return PostgresSink()
    if settings.sink == "ingest":
        return IngestApiSink(settings.ingest_api_url)
    return JsonLinesSink(settings.output_path)


class MemorySink:
    """Collects batches in memory; handy for embedding the crawler."""

    def __init__(self) -> None:
        self.batches: List[List[AgentRecord]] = []

    @property
    def records(self) -> List[AgentRecord]:
        return [record for batch in self.batches for record in batch]

    def push(self, records: Sequence[AgentRecord]) -> None:
        self.batches.append(list(records))
