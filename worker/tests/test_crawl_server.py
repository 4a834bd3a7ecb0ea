import pytest

from agent_harvester.core.config import Settings
from agent_harvester.jobs import crawl_server


@pytest.fixture(autouse=True)
def submitted(monkeypatch):
    captured = {}

    class DummyExecutor:
        def submit(self, fn, run_input):
            captured["fn"] = fn
            captured["run_input"] = run_input

    monkeypatch.setattr(crawl_server, "_executor", DummyExecutor())
    monkeypatch.setattr(
        crawl_server,
        "get_settings",
        lambda: Settings(default_start_url="", worker_port=9100),
    )
    return captured


def test_health_endpoint():
    client = crawl_server.app.test_client()
    response = client.get("/healthz")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["worker_port_config"] == 9100


def test_crawl_requires_start_url(submitted):
    client = crawl_server.app.test_client()

    assert client.post("/crawl", json={}).status_code == 400
    assert client.post("/crawl", json={"startUrls": []}).status_code == 400
    assert "run_input" not in submitted


def test_crawl_validates_budgets(submitted):
    client = crawl_server.app.test_client()
    payload = {"startUrl": "https://example.test/agents/", "resultsWanted": "lots"}

    response = client.post("/crawl", json=payload)

    assert response.status_code == 400
    assert "resultsWanted" in response.get_json()["error"]


def test_crawl_non_finite_budget_uses_default(submitted):
    client = crawl_server.app.test_client()
    payload = {"startUrl": "https://example.test/agents/", "resultsWanted": "inf"}

    response = client.post("/crawl", json=payload)

    assert response.status_code == 202
    assert response.get_json()["data"]["resultsWanted"] == 50
    assert submitted["run_input"].results_wanted == 50


def test_crawl_queues_run_input(submitted):
    client = crawl_server.app.test_client()
    payload = {
        "startUrls": ["https://example.test/agents/london/", {"url": "https://example.test/agents/leeds/"}],
        "resultsWanted": 30,
        "proxyConfiguration": {"useApifyProxy": False},
    }

    response = client.post("/crawl", json=payload)

    assert response.status_code == 202
    data = response.get_json()["data"]
    assert data["status"] == "queued"
    assert data["maxPages"] == 2
    run_input = submitted["run_input"]
    assert run_input.start_urls == ("https://example.test/agents/london/", "https://example.test/agents/leeds/")
    assert run_input.results_wanted == 30
    assert run_input.proxy == {"useApifyProxy": False}


def test_run_job_safe_logs_failures(monkeypatch, caplog):
    def boom(run_input):
        raise RuntimeError("crawl exploded")

    monkeypatch.setattr(crawl_server, "run_crawl", boom)

    with caplog.at_level("ERROR"):
        crawl_server._run_job_safe(object())

    assert "Crawl job failed" in " ".join(caplog.messages)
