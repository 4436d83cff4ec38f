import logging, threading, time

import config
from crawler.errors import RetryExhaustedError
from crawler.models import QueueEntry
from crawler.utils import canonicalise, registrable_domain


def _entry(row):
    return QueueEntry(row["url"], row["domain"], row["enqueued_at"], row["attempts"], row["not_before"])


class CrawlQueue:
    """
    Pending URLs keyed by canonical URL.

    Dequeuing reserves a row (`reserved_at`) instead of deleting it; the row
    is removed by `complete`, put back by `requeue_with_backoff`, or released
    by `recover` after a crash. Reserved rows are in flight and do not count
    as pending. Enqueuing a URL that is in flight re-arms it, so a page that
    is rediscovered while being crawled is queued again once it finishes.
    """

    def __init__(self, db, clock=time.time,
                 cooldown=config.DOMAIN_COOLDOWN_MS / 1000.0,
                 max_attempts=config.MAX_ATTEMPTS,
                 backoff_base=config.BACKOFF_BASE):
        self.db = db
        self.clock = clock
        self.cooldown = cooldown
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._lock = threading.Lock()

    def enqueue(self, url):
        """Queue `url`. Returns False when it is already pending, raises InvalidURLError if malformed."""
        clean = canonicalise(url)
        domain = registrable_domain(clean)
        with self._lock, self.db.transaction() as conn:
            conn.execute("INSERT OR IGNORE INTO domains (name, enabled) VALUES (?, 1)", (domain,))
            cur = conn.execute(
                "INSERT OR IGNORE INTO frontier (url, domain, enqueued_at, attempts, not_before) VALUES (?, ?, ?, 0, 0)",
                (clean, domain, self.clock())
            )
            added = cur.rowcount == 1
            if not added:
                cur = conn.execute(
                    "UPDATE frontier SET rearm = 1 WHERE url = ? AND reserved_at IS NOT NULL AND rearm = 0",
                    (clean,)
                )
                added = cur.rowcount == 1
        if added:
            logging.debug(f"[Queue] + {clean}")
        return added

    def dequeue_eligible(self):
        now = self.clock()
        with self._lock, self.db.transaction() as conn:
            # Least recently crawled domain first, so a backlog on one domain
            # never starves the others.
            row = conn.execute("""
                SELECT f.url, f.domain, f.enqueued_at, f.attempts, f.not_before
                FROM frontier f
                LEFT JOIN domains d ON d.name = f.domain
                WHERE f.reserved_at IS NULL
                  AND COALESCE(d.enabled, 1) = 1
                  AND f.not_before <= :now
                  AND (d.last_crawled_at IS NULL OR d.last_crawled_at <= :now - :cooldown)
                ORDER BY COALESCE(d.last_crawled_at, 0) ASC, f.enqueued_at ASC, f.url ASC
                LIMIT 1
            """, {"now": now, "cooldown": self.cooldown}).fetchone()
            if row is None:
                return None
            conn.execute("UPDATE frontier SET reserved_at = ? WHERE url = ?", (now, row["url"]))
        return _entry(row)

    def _rearm(self, conn, url):
        cur = conn.execute("""
            UPDATE frontier SET reserved_at = NULL, rearm = 0, attempts = 0, not_before = 0, enqueued_at = ?
            WHERE url = ? AND rearm = 1
        """, (self.clock(), url))
        return cur.rowcount == 1

    def complete(self, entry):
        """Finish an in-flight entry. Returns True if it was re-armed rather than removed."""
        with self._lock, self.db.transaction() as conn:
            if self._rearm(conn, entry.url):
                return True
            conn.execute("DELETE FROM frontier WHERE url = ?", (entry.url,))
        return False

    def requeue_with_backoff(self, entry, reason=None):
        """
        Put a failed entry back with one more attempt on its count.

        Returns None when the entry was requeued and a RetryExhaustedError once
        the attempt count passes the ceiling, in which case the entry is gone.
        """
        attempts = entry.attempts + 1
        if attempts > self.max_attempts:
            err = RetryExhaustedError(entry.url, attempts, reason)
            self.complete(entry)
            logging.warning(f"[Queue] DROP {err}")
            return err

        now = self.clock()
        not_before = now + self.backoff_base * (2 ** (attempts - 1))
        with self._lock, self.db.transaction() as conn:
            # A fresh enqueue of the same URL while it was in flight wins.
            if not self._rearm(conn, entry.url):
                cur = conn.execute("""
                    UPDATE frontier SET attempts = ?, not_before = ?, enqueued_at = ?, reserved_at = NULL
                    WHERE url = ?
                """, (attempts, not_before, now, entry.url))
                if cur.rowcount == 0:
                    conn.execute(
                        "INSERT INTO frontier (url, domain, enqueued_at, attempts, not_before) VALUES (?, ?, ?, ?, ?)",
                        (entry.url, entry.domain, now, attempts, not_before)
                    )
        logging.debug(f"[Queue] RETRY {entry.url} attempt {attempts}/{self.max_attempts} ({reason})")
        return None

    def recover(self, older_than=None):
        """Release reservations left behind by a crashed run. Returns how many came back."""
        with self._lock, self.db.transaction() as conn:
            if older_than is None:
                cur = conn.execute(
                    "UPDATE frontier SET reserved_at = NULL, rearm = 0 WHERE reserved_at IS NOT NULL"
                )
            else:
                cur = conn.execute(
                    "UPDATE frontier SET reserved_at = NULL, rearm = 0 WHERE reserved_at < ?",
                    (self.clock() - older_than,)
                )
            released = cur.rowcount
        if released:
            logging.info(f"[Queue] Released {released} interrupted crawls")
        return released

    def contains(self, url):
        row = self.db.conn.execute(
            "SELECT 1 FROM frontier WHERE url = ? AND reserved_at IS NULL", (canonicalise(url),)
        ).fetchone()
        return row is not None

    def get(self, url):
        row = self.db.conn.execute(
            "SELECT * FROM frontier WHERE url = ? AND reserved_at IS NULL", (canonicalise(url),)
        ).fetchone()
        return _entry(row) if row else None

    def pending(self, domain=None):
        if domain is None:
            rows = self.db.conn.execute(
                "SELECT * FROM frontier WHERE reserved_at IS NULL ORDER BY enqueued_at, url"
            ).fetchall()
        else:
            rows = self.db.conn.execute(
                "SELECT * FROM frontier WHERE reserved_at IS NULL AND domain = ? ORDER BY enqueued_at, url",
                (registrable_domain(domain),)
            ).fetchall()
        return [_entry(r) for r in rows]

    def __len__(self):
        return self.db.conn.execute("SELECT COUNT(*) FROM frontier WHERE reserved_at IS NULL").fetchone()[0]

    def stats(self):
        row = self.db.conn.execute("""
            SELECT SUM(reserved_at IS NULL) AS pending,
                   SUM(reserved_at IS NULL AND not_before > ?) AS backoff,
                   SUM(reserved_at IS NOT NULL) AS in_flight
            FROM frontier
        """, (self.clock(),)).fetchone()
        return {"pending": row["pending"] or 0, "backoff": row["backoff"] or 0, "in_flight": row["in_flight"] or 0}
