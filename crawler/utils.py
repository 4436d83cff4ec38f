import re, sqlite3, mmh3, tldextract
from urllib.parse import urlparse, parse_qsl, urlencode

from crawler.errors import InvalidURLError

# Bundled public suffix snapshot only, no network lookups.
extract = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())

TRACKING_PARAMS = {'fbclid', 'gclid', 'ref', 'source', 'yclid', '_ga'}

IGNORE_EXTS = {
    '.png','.jpg','.jpeg','.gif','.css','.js','.ico','.svg',
    '.pdf','.zip','.exe','.mp4','.mp3','.wav','.avi','.mov',
    '.xml','.json','.bmp','.tif','.tiff','.woff','.woff2',
    '.ttf','.eot','.dmg','.iso','.bin','.dat','.apk','.rar'
}

_NON_WORD = re.compile(r"[^\w\s]")


def get_high_perf_connection(db_path):
    conn = sqlite3.connect(db_path, timeout=60, check_same_thread=False, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA cache_size=-64000;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.row_factory = sqlite3.Row
    return conn


def canonicalise(url):
    """
    Normalise `url` into the queue's dedup key.

    Scheme and host are lower-cased, the fragment is stripped, default ports
    are dropped, an empty path becomes "/" and tracking query parameters are
    removed. Anything that is not an absolute http(s) URL with a host raises
    InvalidURLError.
    """
    if not isinstance(url, str):
        raise InvalidURLError(url, "not a string")
    raw = url
    url = url.strip()
    if not url:
        raise InvalidURLError(raw, "empty")
    if '#' in url: url = url.split('#')[0]

    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        raise InvalidURLError(raw, str(e)) from e

    scheme = parsed.scheme.lower()
    if scheme not in ("http", "https"):
        raise InvalidURLError(raw, "scheme must be http or https")

    netloc = parsed.hostname
    if not netloc or any(ch.isspace() for ch in netloc):
        raise InvalidURLError(raw, "missing or invalid host")
    netloc = netloc.lower()
    if ":" in netloc:
        netloc = f"[{netloc}]"
    if port:
        if (scheme == "http" and port != 80) or (scheme == "https" and port != 443):
            netloc += f":{port}"

    path = parsed.path.replace("//", "/")
    if not path: path = "/"

    clean_query = ""
    if parsed.query:
        kept = []
        for k, v in parse_qsl(parsed.query, keep_blank_values=True):
            k_low = k.lower()
            if k_low.startswith("utm_") or k_low in TRACKING_PARAMS:
                continue
            kept.append((k, v))
        if kept:
            clean_query = urlencode(kept)

    clean_url = f"{scheme}://{netloc}{path}"
    if clean_query: clean_url += f"?{clean_query}"
    return clean_url


def is_crawlable(url):
    path = urlparse(url).path.lower()
    return not any(path.endswith(ext) for ext in IGNORE_EXTS)


def registrable_domain(value):
    """Reduce a URL, host or domain name to its registrable domain."""
    value = str(value).strip().lower()
    if "://" in value:
        host = urlparse(value).hostname or ""
    else:
        host = value.split("/")[0].split(":")[0]
    host = host.strip(".")
    if not host:
        return ""
    e = extract(host)
    if e.domain and e.suffix:
        return f"{e.domain}.{e.suffix}"
    return host


def tokenize(text):
    """
    The one tokenizer shared by documents and queries.

    Lower-case, turn every character that is neither a word character nor
    whitespace into a space, then split on whitespace. "Don't stop" yields
    ["don", "t", "stop"].
    """
    if not text:
        return []
    return _NON_WORD.sub(" ", text.lower()).split()


def content_hash(data):
    if isinstance(data, str): data = data.encode('utf-8')
    return format(mmh3.hash128(data or b""), "032x")
