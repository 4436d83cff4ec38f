import logging, time, requests
from dataclasses import dataclass
from typing import Optional
from requests.adapters import HTTPAdapter, Retry

import config

TIMEOUT = "timeout"
HTTP_ERROR = "http_error"
NETWORK_ERROR = "network_error"
UNSUPPORTED_CONTENT_TYPE = "unsupported_content_type"
TOO_LARGE = "too_large"

TEXT_TYPES = ("text/", "application/xhtml+xml")


@dataclass
class FetchResult:
    url: str
    content: bytes
    content_type: str
    status: int = 200
    final_url: Optional[str] = None


@dataclass
class FetchError:
    url: str
    kind: str
    status: Optional[int] = None
    message: str = ""

    @property
    def retryable(self):
        """Whether a later attempt could plausibly succeed. Every failure is retried regardless."""
        if self.kind in (TIMEOUT, NETWORK_ERROR):
            return True
        if self.kind == HTTP_ERROR:
            return self.status == 429 or (self.status or 0) >= 500
        return False

    def __str__(self):
        if self.kind == HTTP_ERROR:
            return f"HTTP_{self.status}"
        return f"{self.kind.upper()}: {self.message[:50]}" if self.message else self.kind.upper()


def build_session(pool_size=4):
    session = requests.Session()
    # Retries belong to the crawl queue, not to urllib3. Error statuses come
    # back as plain responses.
    retries = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(max_retries=retries, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


class Fetcher:
    """Downloads one URL. Never touches the queue or the index."""

    def __init__(self, session=None, user_agent=config.USER_AGENT, timeout=config.FETCH_TIMEOUT,
                 deadline=config.FETCH_DEADLINE, max_bytes=config.MAX_BYTES):
        self.session = session or build_session()
        self.user_agent = user_agent
        self.timeout = timeout
        self.deadline = deadline
        self.max_bytes = max_bytes

    def fetch(self, url):
        start_t = time.monotonic()
        try:
            r = self.session.get(url, headers={'User-Agent': self.user_agent}, timeout=self.timeout, stream=True)
        except requests.Timeout as e:
            return FetchError(url, TIMEOUT, message=str(e))
        except requests.RequestException as e:
            return FetchError(url, NETWORK_ERROR, message=str(e))

        with r:
            if r.status_code != 200:
                return FetchError(url, HTTP_ERROR, status=r.status_code)

            content_type = r.headers.get("Content-Type", "").lower()
            if not content_type.startswith(TEXT_TYPES):
                return FetchError(url, UNSUPPORTED_CONTENT_TYPE, status=r.status_code, message=content_type)

            chunks, size = [], 0
            try:
                for chunk in r.iter_content(chunk_size=65536):
                    size += len(chunk)
                    if size > self.max_bytes:
                        return FetchError(url, TOO_LARGE, status=r.status_code, message=f"{size} bytes")
                    if time.monotonic() - start_t > self.deadline:
                        return FetchError(url, TIMEOUT, message=f"deadline {self.deadline}s exceeded")
                    chunks.append(chunk)
            except requests.Timeout as e:
                return FetchError(url, TIMEOUT, message=str(e))
            except requests.RequestException as e:
                return FetchError(url, NETWORK_ERROR, message=str(e))

            logging.debug(f"[Fetch] OK {url} {size}B {time.monotonic() - start_t:.2f}s")
            return FetchResult(url, b"".join(chunks), content_type, r.status_code, getattr(r, "url", url))
