import time

import config
from crawler.domains import DomainPolicyStore
from crawler.frontier import CrawlQueue
from crawler.storage import Database, InvertedIndex


class CrawlContext:
    """
    All shared crawl state in one place: the database, the domain table, the
    queue and the index. Scheduler, Indexer and SearchEngine are handed this
    object instead of reaching for module globals.
    """

    def __init__(self, db_path=config.DB_PATH, clock=time.time,
                 cooldown=config.DOMAIN_COOLDOWN_MS / 1000.0,
                 max_attempts=config.MAX_ATTEMPTS,
                 backoff_base=config.BACKOFF_BASE):
        self.clock = clock
        self.db = Database(db_path)
        self.domains = DomainPolicyStore(self.db, clock=clock)
        self.queue = CrawlQueue(self.db, clock=clock, cooldown=cooldown,
                                max_attempts=max_attempts, backoff_base=backoff_base)
        self.index = InvertedIndex(self.db)

    def close(self):
        self.db.close()
