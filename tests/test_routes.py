import pytest

import config
from app import app, routes


@pytest.fixture
def client(engine):
    app.config.update(TESTING=True, ENGINE=engine)
    routes.RATE_LIMIT.clear()
    with app.test_client() as c:
        yield c
    app.config.pop("ENGINE", None)


def test_admin_crawl_queues_url(client, engine):
    resp = client.post("/admin/crawl", data={"url": "http://example.com/a"})
    assert resp.status_code == 200
    assert resp.get_json()["queued"] is True
    assert engine.context.queue.contains("http://example.com/a")

    again = client.post("/admin/crawl", json={"url": "http://EXAMPLE.com/a#x"})
    assert again.get_json()["queued"] is False


def test_admin_crawl_rejects_bad_input(client, engine):
    assert client.post("/admin/crawl", data={}).status_code == 400
    resp = client.post("/admin/crawl", data={"url": "nonsense"})
    assert resp.status_code == 400
    assert "invalid URL" in resp.get_json()["error"]
    assert len(engine.context.queue) == 0


def test_admin_domains_toggle_and_list(client, engine):
    client.post("/admin/crawl", data={"url": "http://www.example.com/a"})
    resp = client.post("/admin/domains", data={"domain": "example.com"})
    assert resp.get_json() == {
        "domain": "example.com",
        "enabled": False,
        "message": "Disabled crawling of domain example.com.",
    }

    client.post("/admin/domains", data={"domain": "other.org", "enable": "on"})
    listing = client.get("/admin/domains").get_json()["domains"]
    assert [(d["name"], d["enabled"]) for d in listing] == [("example.com", False), ("other.org", True)]
    assert client.post("/admin/domains", data={}).status_code == 400


def test_search_returns_formatted_results(client, engine):
    engine.indexer.ingest("http://example.com/a", "<title>Pets</title><p>cats & dogs</p>")
    body = client.get("/search?q=cats").get_json()
    assert body["total"] == 1
    hit = body["results"][0]
    assert hit["url"] == "http://example.com/a"
    assert hit["title"] == "Pets"
    assert hit["snippet_html"] == "<b>cats</b> &amp; dogs"
    assert hit["updated_at"] == engine.context.clock()
    assert len(hit["updated"]) == len("HH:MM:SS dd/mm/YYYY")


def test_search_with_no_terms_is_empty(client):
    body = client.get("/search?q=").get_json()
    assert body["total"] == 0
    assert body["results"] == []


def test_search_rate_limit(client, monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_MAX", 2)
    assert client.get("/search?q=a").status_code == 200
    assert client.get("/search?q=a").status_code == 200
    assert client.get("/search?q=a").status_code == 429


def test_stats(client, engine):
    client.post("/admin/crawl", data={"url": "http://example.com/a"})
    body = client.get("/stats").get_json()
    assert body["pending"] == 1
    assert body["documents"] == 0
    assert body["domains"] == 1
    assert body["running"] is False


def test_request_connections_are_released(engine):
    app.config.update(TESTING=True, ENGINE=engine)
    routes.RATE_LIMIT.clear()
    engine.indexer.ingest("http://example.com/a", "cats")
    client = app.test_client()
    try:
        for _ in range(5):
            assert client.get("/search?q=cats").get_json()["total"] == 1
        assert engine.context.db._conns == []
    finally:
        app.config.pop("ENGINE", None)
