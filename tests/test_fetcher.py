import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from crawler import fetcher as f
from crawler.fetcher import FetchError, FetchResult, Fetcher

from conftest import FakeResponse, FakeSession

URL = "http://example.com/a"


def fetch(route, **kwargs):
    return Fetcher(session=FakeSession({URL: route}), **kwargs).fetch(URL)


def test_fetch_success_returns_content():
    res = fetch(FakeResponse("<p>cats</p>", url=URL))
    assert isinstance(res, FetchResult)
    assert res.content == b"<p>cats</p>"
    assert res.content_type.startswith("text/html")
    assert res.status == 200


def test_plain_text_and_xhtml_are_accepted():
    assert isinstance(fetch(FakeResponse("cats", content_type="text/plain")), FetchResult)
    assert isinstance(fetch(FakeResponse("<p/>", content_type="application/xhtml+xml")), FetchResult)


def test_http_error_classification():
    missing = fetch(FakeResponse("gone", status=404))
    assert isinstance(missing, FetchError)
    assert missing.kind == f.HTTP_ERROR
    assert missing.status == 404
    assert not missing.retryable
    assert str(missing) == "HTTP_404"

    assert fetch(FakeResponse("busy", status=503)).retryable
    assert fetch(FakeResponse("slow down", status=429)).retryable


def test_non_text_content_is_rejected():
    res = fetch(FakeResponse(b"\x89PNG", content_type="image/png"))
    assert res.kind == f.UNSUPPORTED_CONTENT_TYPE
    assert not res.retryable

    assert fetch(FakeResponse(b"{}", content_type="")).kind == f.UNSUPPORTED_CONTENT_TYPE


def test_timeout_and_network_errors_are_retryable():
    timeout = fetch(requests.Timeout("read timed out"))
    assert timeout.kind == f.TIMEOUT
    assert timeout.retryable

    network = fetch(requests.ConnectionError("refused"))
    assert network.kind == f.NETWORK_ERROR
    assert network.retryable


def test_oversized_body_is_rejected():
    res = fetch(FakeResponse("x" * 100), max_bytes=10)
    assert res.kind == f.TOO_LARGE
    assert not res.retryable


def test_fetch_deadline_turns_into_timeout():
    res = fetch(FakeResponse("x" * 10), deadline=-1)
    assert res.kind == f.TIMEOUT


def test_user_agent_is_sent():
    seen = {}

    class Recorder(FakeSession):
        def get(self, url, headers=None, timeout=None, stream=False):
            seen.update(headers=headers, timeout=timeout, stream=stream)
            return FakeResponse("ok")

    Fetcher(session=Recorder(), user_agent="SiftTest/1.0", timeout=(1, 2)).fetch(URL)
    assert seen == {"headers": {"User-Agent": "SiftTest/1.0"}, "timeout": (1, 2), "stream": True}


class StatusHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        status = int(self.path.strip("/") or 200)
        body = f"<p>status {status}</p>".encode()
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


@pytest.fixture
def local_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), StatusHandler)
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def real_fetcher():
    session = f.build_session()
    session.trust_env = False
    yield Fetcher(session=session, timeout=(2, 2), deadline=5)
    session.close()


def test_server_errors_through_real_adapter_keep_their_status(local_server, real_fetcher):
    for status in (500, 502, 503, 504):
        res = real_fetcher.fetch(f"{local_server}/{status}")
        assert isinstance(res, FetchError)
        assert res.kind == f.HTTP_ERROR
        assert res.status == status
        assert res.retryable

    missing = real_fetcher.fetch(f"{local_server}/404")
    assert (missing.kind, missing.status) == (f.HTTP_ERROR, 404)


def test_success_through_real_adapter(local_server, real_fetcher):
    res = real_fetcher.fetch(f"{local_server}/200")
    assert isinstance(res, FetchResult)
    assert res.content == b"<p>status 200</p>"
