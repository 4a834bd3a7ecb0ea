"""HTTP entrypoint that queues agent crawls (Cloud Run friendly)."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict

from flask import Flask, jsonify, request

from agent_harvester.core.config import ConfigError, RunInput, get_settings
from agent_harvester.jobs.crawl import run_crawl

# ---------- Logging ----------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

# ---------- App & executor ----------
app = Flask(__name__)
# One worker: crawls never overlap.
_executor = ThreadPoolExecutor(max_workers=1)

# ---------- Routes ----------


@app.get("/")
def root() -> Any:
    return "ok", 200


@app.get("/healthz")
def healthcheck() -> Any:
    """Lightweight health endpoint; reads settings only."""
    settings = get_settings()
    return (
        jsonify(
            {
                "status": "ok",
                "worker_port_config": settings.worker_port,
                "sink": settings.sink,
                "revision": os.getenv("K_REVISION", "unknown"),
            }
        ),
        200,
    )


@app.post("/crawl")
def enqueue_crawl() -> Any:
    """
    Queue a crawl.
    JSON body: startUrl or startUrls, optional resultsWanted, maxPages, proxyConfiguration.
    """
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    try:
        run_input = RunInput.from_mapping(payload, get_settings())
    except ConfigError as exc:
        return jsonify({"error": str(exc)}), 400

    logger.info(
        "Queueing crawl: start_urls=%s results_wanted=%d max_pages=%d",
        list(run_input.start_urls),
        run_input.results_wanted,
        run_input.max_pages,
    )
    _executor.submit(_run_job_safe, run_input)

    return (
        jsonify(
            {
                "data": {
                    "status": "queued",
                    "startUrls": list(run_input.start_urls),
                    "resultsWanted": run_input.results_wanted,
                    "maxPages": run_input.max_pages,
                }
            }
        ),
        202,
    )


# ---------- Internals ----------


def _run_job_safe(run_input: RunInput) -> None:
    try:
        summary = run_crawl(run_input)
        logger.info("Crawl finished: saved=%d pages=%d", summary.saved, summary.pages_fetched)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Crawl job failed: %s", exc)


def main() -> None:
    port = int(os.getenv("PORT") or get_settings().worker_port)
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
