import pytest
import requests

from crawler.context import CrawlContext
from crawler.fetcher import Fetcher
from engine import Engine
from indexer import Indexer


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeResponse:
    def __init__(self, body=b"", status=200, content_type="text/html; charset=utf-8", url=None):
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status
        self.headers = {"Content-Type": content_type} if content_type else {}
        self.url = url

    def iter_content(self, chunk_size=1):
        for i in range(0, len(self.body), chunk_size):
            yield self.body[i:i + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Maps URL -> FakeResponse, exception instance, or callable(url)."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"not found", status=404)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url)
        return route


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def context(tmp_path, clock):
    ctx = CrawlContext(str(tmp_path / "crawl.db"), clock=clock, cooldown=1.0, max_attempts=3, backoff_base=10)
    yield ctx
    ctx.close()


@pytest.fixture
def indexer(context):
    return Indexer(context)


@pytest.fixture
def engine(tmp_path, clock, session):
    eng = Engine(
        str(tmp_path / "engine.db"),
        fetcher=Fetcher(session=session),
        clock=clock,
        delay_ms=1000,
        cooldown=1.0,
        max_attempts=3,
        backoff_base=10,
    )
    yield eng
    eng.close()


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection refused")
