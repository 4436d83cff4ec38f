import logging, re
from dataclasses import dataclass, field
from typing import Optional

import config
from crawler.errors import IndexConsistencyError
from crawler.utils import tokenize

SNIPPET_CHARS = 160


@dataclass
class RankedResult:
    url: str
    title: str
    snippet: str
    updated_at: float
    score: int
    language: Optional[str] = None


@dataclass
class SearchResults:
    results: list = field(default_factory=list)
    total_matches: int = 0


def normalize_tokens(raw, max_terms=config.MAX_QUERY_TERMS):
    tokens = tokenize(raw)
    tokens = list(dict.fromkeys(tokens))
    return tokens[:max_terms]


def make_snippet(text, terms, width=SNIPPET_CHARS):
    if not text:
        return ""
    first = None
    for t in terms:
        m = re.search(rf"(?<!\w){re.escape(t)}(?!\w)", text, re.I)
        if m and (first is None or m.start() < first):
            first = m.start()
    if first is None:
        first = 0
    start = max(0, first - width // 3)
    end = min(len(text), start + width)
    snippet = text[start:end].strip()
    if start > 0: snippet = "..." + snippet
    if end < len(text): snippet += "..."
    return snippet


class SearchEngine:
    """
    OR-matching term-frequency search.

    A document scores the sum of the frequencies of the query terms it
    contains. Ties go to the more recently updated document, then to the
    lexicographically smaller URL.
    """

    def __init__(self, context):
        self.index = context.index

    def search(self, query_text, limit=config.PER_PAGE, offset=0):
        raw = (query_text or "").strip()[:config.MAX_QUERY_LENGTH]
        terms = normalize_tokens(raw)
        if not terms:
            return SearchResults()

        marks = ",".join("?" * len(terms))
        with self.index.snapshot() as conn:
            rows = conn.execute(f"""
                SELECT p.url, SUM(p.tf) AS score, d.url AS doc_url, d.updated_at
                FROM postings p
                LEFT JOIN documents d ON d.url = p.url
                WHERE p.term IN ({marks})
                GROUP BY p.url
                ORDER BY score DESC, d.updated_at DESC, p.url ASC
            """, terms).fetchall()

            missing = [r["url"] for r in rows if r["doc_url"] is None]
            if missing:
                logging.critical(f"[Search] postings reference missing documents: {missing[:5]}")
                raise IndexConsistencyError(f"postings reference missing documents: {missing[:5]}")

            page = rows[offset:offset + limit] if limit is not None else rows[offset:]
            docs = {}
            if page:
                urls = [r["url"] for r in page]
                for d in conn.execute(
                    f"SELECT url, title, text, language FROM documents WHERE url IN ({','.join('?' * len(urls))})",
                    urls
                ):
                    docs[d["url"]] = d

        results = []
        for r in page:
            d = docs[r["url"]]
            results.append(RankedResult(
                url=r["url"],
                title=d["title"] or r["url"],
                snippet=make_snippet(d["text"] or "", terms),
                updated_at=r["updated_at"],
                score=r["score"],
                language=d["language"],
            ))

        logging.debug(f"[Search] {terms} -> {len(rows)} matches")
        return SearchResults(results, len(rows))
