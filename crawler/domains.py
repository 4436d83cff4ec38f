import logging, time

from crawler.models import Domain
from crawler.utils import registrable_domain


# --- DOMAIN GOVERNANCE ---
class DomainPolicyStore:
    """Per-domain crawl switch. Unknown domains are allowed; last write wins."""

    def __init__(self, db, clock=time.time):
        self.db = db
        self.clock = clock

    def set_enabled(self, domain, enabled):
        name = registrable_domain(domain)
        if not name:
            raise ValueError(f"not a domain: {domain!r}")
        with self.db.transaction() as conn:
            conn.execute("""
                INSERT INTO domains (name, enabled) VALUES (?, ?)
                ON CONFLICT(name) DO UPDATE SET enabled = excluded.enabled
            """, (name, int(bool(enabled))))
        logging.info(f"[Gov] {'Enabled' if enabled else 'Disabled'} crawling of {name}")
        return name

    def is_enabled(self, domain):
        row = self.db.conn.execute(
            "SELECT enabled FROM domains WHERE name = ?", (registrable_domain(domain),)
        ).fetchone()
        return True if row is None else bool(row["enabled"])

    def mark_crawled(self, domain, when=None):
        when = self.clock() if when is None else when
        with self.db.transaction() as conn:
            conn.execute("""
                INSERT INTO domains (name, enabled, last_crawled_at) VALUES (?, 1, ?)
                ON CONFLICT(name) DO UPDATE SET last_crawled_at = excluded.last_crawled_at
            """, (domain, when))

    def get(self, domain):
        row = self.db.conn.execute(
            "SELECT * FROM domains WHERE name = ?", (registrable_domain(domain),)
        ).fetchone()
        if row is None:
            return None
        return Domain(row["name"], bool(row["enabled"]), row["last_crawled_at"])

    def list_domains(self):
        rows = self.db.conn.execute("SELECT * FROM domains ORDER BY name").fetchall()
        return [Domain(r["name"], bool(r["enabled"]), r["last_crawled_at"]) for r in rows]
