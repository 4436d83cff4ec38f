import logging, time
from collections import deque

import config
from app.search import SearchEngine
from crawler.bot import Scheduler
from crawler.context import CrawlContext
from crawler.fetcher import Fetcher
from indexer import Indexer


class Engine:
    """The operations the web layer and the process entry points call."""

    def __init__(self, db_path=config.DB_PATH, fetcher=None, clock=time.time,
                 delay_ms=config.CRAWL_DELAY_MS, **queue_opts):
        self.context = CrawlContext(db_path, clock=clock, **queue_opts)
        self.indexer = Indexer(self.context)
        self.search_engine = SearchEngine(self.context)
        self.scheduler = Scheduler(self.context, fetcher or Fetcher(), self.indexer, delay_ms=delay_ms)
        self._failures = deque(maxlen=100)
        self.scheduler.add_listener(self._failures.append)

    def enqueue_url(self, raw_url):
        added = self.context.queue.enqueue(raw_url)
        if added:
            logging.info(f"[Queue] Queueing {raw_url}")
        return added

    def set_domain_enabled(self, domain, enabled):
        return self.context.domains.set_enabled(domain, enabled)

    def list_domains(self):
        return self.context.domains.list_domains()

    def search(self, query_text, limit=config.PER_PAGE, offset=0):
        return self.search_engine.search(query_text, limit=limit, offset=offset)

    def recover(self):
        """Put URLs that were in flight when the last run died back in the queue."""
        return self.context.queue.recover()

    def start_scheduler(self, delay_ms=None):
        self.scheduler.start(delay_ms)

    def stop(self, timeout=config.FETCH_DEADLINE + 5):
        self.scheduler.stop(timeout)

    def recent_failures(self):
        return list(self._failures)

    def stats(self):
        out = dict(self.context.queue.stats())
        out.update(self.context.index.stats())
        domains = self.context.domains.list_domains()
        out["domains"] = len(domains)
        out["disabled"] = sum(1 for d in domains if not d.enabled)
        out["running"] = self.scheduler.running
        return out

    def close(self):
        self.stop()
        self.context.close()
