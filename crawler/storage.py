import json, logging, os, threading
from contextlib import contextmanager

from crawler.errors import IndexConsistencyError
from crawler.models import Document
from crawler.utils import get_high_perf_connection


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS domains (
        name TEXT PRIMARY KEY,
        enabled INTEGER NOT NULL DEFAULT 1,
        last_crawled_at REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS frontier (
        url TEXT PRIMARY KEY,
        domain TEXT NOT NULL,
        enqueued_at REAL NOT NULL,
        attempts INTEGER NOT NULL DEFAULT 0,
        not_before REAL NOT NULL DEFAULT 0,
        reserved_at REAL,
        rearm INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_frontier_domain ON frontier(domain, enqueued_at)",
    """
    CREATE TABLE IF NOT EXISTS documents (
        url TEXT PRIMARY KEY,
        content_hash TEXT NOT NULL,
        title TEXT,
        text TEXT,
        language TEXT,
        links TEXT,
        updated_at REAL NOT NULL,
        fetched_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS postings (
        term TEXT NOT NULL,
        url TEXT NOT NULL,
        tf INTEGER NOT NULL,
        PRIMARY KEY (term, url)
    ) WITHOUT ROWID
    """,
    "CREATE INDEX IF NOT EXISTS idx_postings_url ON postings(url)",
]


class Database:
    """
    One SQLite file, one connection per thread.

    Connections belonging to threads that have exited are closed the next time
    a connection is opened. Short-lived threads such as web requests should
    call `release()` when they are done.
    """

    def __init__(self, path):
        self.path = path
        self._local = threading.local()
        self._conns = []  # (owner thread, connection)
        self._conns_lock = threading.Lock()
        parent = os.path.dirname(os.path.abspath(path))
        if not os.path.exists(parent):
            os.makedirs(parent, exist_ok=True)
        self.create_schema()

    @property
    def conn(self):
        conn = getattr(self._local, "conn", None)
        if conn is None:
            conn = get_high_perf_connection(self.path)
            self._local.conn = conn
            with self._conns_lock:
                dead = [c for t, c in self._conns if not t.is_alive()]
                self._conns = [(t, c) for t, c in self._conns if t.is_alive()]
                self._conns.append((threading.current_thread(), conn))
            for c in dead:
                self._close(c)
        return conn

    @staticmethod
    def _close(conn):
        try:
            conn.close()
        except Exception as e:
            logging.debug(f"[DB] Close failed: {e}")

    def release(self):
        """Close the calling thread's connection, if it has one."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            return
        self._local.conn = None
        with self._conns_lock:
            self._conns = [(t, c) for t, c in self._conns if c is not conn]
        self._close(conn)

    def create_schema(self):
        for stmt in SCHEMA:
            self.conn.execute(stmt)

    @contextmanager
    def transaction(self, immediate=True):
        conn = self.conn
        conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        else:
            conn.commit()

    def close(self):
        with self._conns_lock:
            conns, self._conns = self._conns, []
        for _, conn in conns:
            self._close(conn)
        self._local = threading.local()


def _row_to_document(row):
    return Document(
        url=row["url"],
        content_hash=row["content_hash"],
        text=row["text"] or "",
        updated_at=row["updated_at"],
        fetched_at=row["fetched_at"],
        title=row["title"] or "",
        language=row["language"],
        links=json.loads(row["links"]) if row["links"] else [],
    )


class InvertedIndex:
    """
    Document store plus term -> postings map.

    The Indexer is the only writer and writes go through `replace`, which swaps
    a URL's document and every one of its postings inside a single
    transaction. Readers use `snapshot()`; under WAL they keep seeing the last
    committed state until they finish, so a half-replaced posting set is never
    visible.
    """

    def __init__(self, db):
        self.db = db
        self._write_lock = threading.Lock()

    def get(self, url):
        row = self.db.conn.execute("SELECT * FROM documents WHERE url = ?", (url,)).fetchone()
        return _row_to_document(row) if row else None

    def touch(self, url, fetched_at):
        with self._write_lock, self.db.transaction() as conn:
            conn.execute("UPDATE documents SET fetched_at = ? WHERE url = ?", (fetched_at, url))

    def fetched_at(self, url):
        row = self.db.conn.execute("SELECT fetched_at FROM documents WHERE url = ?", (url,)).fetchone()
        return row["fetched_at"] if row else None

    def replace(self, doc, term_counts):
        with self._write_lock, self.db.transaction() as conn:
            known = conn.execute("SELECT 1 FROM documents WHERE url = ?", (doc.url,)).fetchone()
            if known is None:
                orphans = conn.execute(
                    "SELECT COUNT(*) FROM postings WHERE url = ?", (doc.url,)
                ).fetchone()[0]
                if orphans:
                    raise IndexConsistencyError(
                        f"{orphans} postings reference {doc.url} but no document exists"
                    )

            conn.execute("""
                INSERT INTO documents (url, content_hash, title, text, language, links, updated_at, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    content_hash = excluded.content_hash,
                    title = excluded.title,
                    text = excluded.text,
                    language = excluded.language,
                    links = excluded.links,
                    updated_at = excluded.updated_at,
                    fetched_at = excluded.fetched_at
            """, (
                doc.url, doc.content_hash, doc.title, doc.text, doc.language,
                json.dumps(doc.links), doc.updated_at, doc.fetched_at
            ))
            conn.execute("DELETE FROM postings WHERE url = ?", (doc.url,))
            conn.executemany(
                "INSERT INTO postings (term, url, tf) VALUES (?, ?, ?)",
                [(term, doc.url, tf) for term, tf in term_counts.items()]
            )

    @contextmanager
    def snapshot(self):
        with self.db.transaction(immediate=False) as conn:
            yield conn

    def terms_for(self, url):
        rows = self.db.conn.execute(
            "SELECT term, tf FROM postings WHERE url = ? ORDER BY term", (url,)
        ).fetchall()
        return {r["term"]: r["tf"] for r in rows}

    def postings(self, term):
        rows = self.db.conn.execute(
            "SELECT url, tf FROM postings WHERE term = ? ORDER BY url", (term,)
        ).fetchall()
        return [(r["url"], r["tf"]) for r in rows]

    def stats(self):
        conn = self.db.conn
        return {
            "documents": conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0],
            "terms": conn.execute("SELECT COUNT(DISTINCT term) FROM postings").fetchone()[0],
        }
