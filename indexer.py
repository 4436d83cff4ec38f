import logging, re
from collections import Counter
from dataclasses import dataclass, field
from urllib.parse import urljoin

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException
from selectolax.parser import HTMLParser

import config
from crawler.errors import InvalidURLError
from crawler.models import Document
from crawler.utils import canonicalise, content_hash, tokenize

DetectorFactory.seed = 0

STRIP_TAGS = 'script, style, nav, footer, header, noscript, iframe, svg'
URL_RE = re.compile(r"https?://[^\s<>\"')\]]+", re.I)


@dataclass
class ParsedPage:
    title: str = ""
    text: str = ""
    links: list = field(default_factory=list)


@dataclass
class IngestResult:
    document: Document
    links: list
    changed: bool


def decode(raw_bytes):
    try:
        return raw_bytes.decode('utf-8')
    except UnicodeDecodeError:
        return raw_bytes.decode('latin-1', errors='ignore')


def _add_link(links, seen, base_url, href):
    try:
        clean = canonicalise(urljoin(base_url, href))
    except (InvalidURLError, ValueError):
        return
    if clean not in seen:
        seen.add(clean)
        links.append(clean)


def parse_html(url, html_str, max_chars=config.MAX_TEXT_CHARS):
    tree = HTMLParser(html_str)

    links, seen = [], set()
    for node in tree.css('a[href]'):
        href = node.attributes.get('href')
        if href:
            _add_link(links, seen, url, href)

    for tag in tree.css(STRIP_TAGS):
        tag.decompose()

    title_node = tree.css_first('title')
    title = title_node.text(strip=True) if title_node else ""

    content = ""
    root = tree.body or tree.root
    if root is not None:
        content = root.text(separator=' ', strip=True)
        content = " ".join(content.split())[:max_chars]

    return ParsedPage(title, content, links)


def parse_text(url, text, max_chars=config.MAX_TEXT_CHARS):
    links, seen = [], set()
    for m in URL_RE.finditer(text):
        _add_link(links, seen, url, m.group(0).rstrip('.,;:!?'))
    text = text[:max_chars]
    return ParsedPage("", " ".join(text.split()), links)


def detect_language(text):
    if not text or len(text) <= 200:
        return None
    try:
        return detect(text[:1000])
    except LangDetectException:
        return None


class Indexer:
    """Turns fetched content into a Document and its postings."""

    def __init__(self, context):
        self.index = context.index
        self.clock = context.clock

    def ingest(self, url, content, content_type="text/html"):
        url = canonicalise(url)
        raw = content.encode('utf-8') if isinstance(content, str) else (content or b"")
        digest = content_hash(raw)
        now = self.clock()

        existing = self.index.get(url)
        if existing is not None and existing.content_hash == digest:
            self.index.touch(url, now)
            existing.fetched_at = now
            logging.debug(f"[Index] UNCHANGED {url}")
            return IngestResult(existing, list(existing.links), False)

        html_str = decode(raw)
        if "html" in (content_type or "").lower():
            page = parse_html(url, html_str)
        else:
            page = parse_text(url, html_str)

        title = page.title or (page.text[:80].split('\n')[0] if page.text else url)
        updated_at = now if existing is None else max(now, existing.updated_at)
        doc = Document(
            url=url,
            content_hash=digest,
            text=page.text,
            updated_at=updated_at,
            fetched_at=now,
            title=title,
            language=detect_language(page.text),
            links=page.links,
        )
        terms = Counter(tokenize(page.text))
        self.index.replace(doc, terms)

        logging.info(f"[Index] {url} -> {len(terms)} terms, {len(page.links)} links")
        return IngestResult(doc, list(page.links), True)
