import logging, os, sys, threading, time
from concurrent.futures import ThreadPoolExecutor

import config
from crawler.errors import IndexConsistencyError, InvalidURLError
from crawler.fetcher import NETWORK_ERROR, FetchError
from crawler.utils import is_crawlable

IDLE = "idle"
INDEXED = "indexed"
UNCHANGED = "unchanged"
REQUEUED = "requeued"
DROPPED = "dropped"
SKIPPED = "skipped"
FAILED = "failed"


# --- LOGGING ---
def configure_logging(log_path=config.LOG_PATH, stream=sys.stdout):
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_path:
        os.makedirs(os.path.dirname(os.path.abspath(log_path)), exist_ok=True)
        file_formatter = logging.Formatter("%(asctime)s [%(levelname)s] [%(threadName)s] %(message)s", datefmt='%H:%M:%S')
        file_handler = logging.FileHandler(log_path, encoding='utf-8', mode='w')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    stream_formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt='%H:%M:%S')
    stream_handler = logging.StreamHandler(stream)
    stream_handler.setLevel(logging.INFO)
    stream_handler.setFormatter(stream_formatter)
    root_logger.addHandler(stream_handler)

    logging.getLogger("urllib3").setLevel(logging.ERROR)


class Scheduler:
    """
    Drives the crawl: one dequeue-fetch-ingest cycle per tick, one tick per
    crawl delay. Ticks never overlap; an interval that comes due while the
    previous tick is still running is skipped.
    """

    def __init__(self, context, fetcher, indexer, delay_ms=config.CRAWL_DELAY_MS,
                 revisit_after=config.REVISIT_AFTER):
        self.context = context
        self.queue = context.queue
        self.domains = context.domains
        self.index = context.index
        self.clock = context.clock
        self.fetcher = fetcher
        self.indexer = indexer
        self.delay = delay_ms / 1000.0
        self.revisit_after = revisit_after
        self.listeners = []

        self._tick_lock = threading.Lock()
        self._stop = threading.Event()
        self._driver = None
        self._executor = None
        self._inflight = None

    def add_listener(self, callback):
        """`callback(error)` is called with every RetryExhaustedError / IndexConsistencyError."""
        self.listeners.append(callback)

    def _report(self, err):
        for cb in self.listeners:
            try:
                cb(err)
            except Exception as e:
                logging.error(f"[Sched] Failure listener raised: {e}", exc_info=True)

    # --- TICK ---
    def tick(self):
        if not self._tick_lock.acquire(blocking=False):
            logging.warning("[Sched] Previous tick still running, skipping")
            return SKIPPED
        start_t = time.monotonic()
        try:
            return self._cycle()
        except Exception as e:
            logging.error(f"[Sched] Tick Error: {e}", exc_info=True)
            return FAILED
        finally:
            dur = time.monotonic() - start_t
            if dur > self.delay:
                logging.warning(f"[Sched] Tick took {dur:.2f}s, longer than the {self.delay:.2f}s interval")
            self._tick_lock.release()

    def _cycle(self):
        started = self.clock()
        entry = self.queue.dequeue_eligible()
        if entry is None:
            return IDLE

        try:
            result = self.fetcher.fetch(entry.url)
        except Exception as e:
            logging.error(f"[Fetch] Fetcher raised for {entry.url}: {e}", exc_info=True)
            result = FetchError(entry.url, NETWORK_ERROR, message=str(e))
        finally:
            # The politeness window runs from the start of the attempt, failed or not.
            self.domains.mark_crawled(entry.domain, when=started)

        if isinstance(result, FetchError):
            if result.retryable:
                logging.info(f"[Fetch] FAIL {entry.url} ({result})")
            else:
                logging.warning(f"[Fetch] FAIL {entry.url} ({result}), unlikely to recover")
            return self._retry(entry, str(result))

        try:
            outcome = self.indexer.ingest(entry.url, result.content, result.content_type)
        except IndexConsistencyError as e:
            logging.critical(f"[Index] Halting ingestion of {entry.url}: {e}")
            self.queue.complete(entry)
            self._report(e)
            return FAILED
        except Exception as e:
            logging.error(f"[Index] Ingest failed for {entry.url}: {e}", exc_info=True)
            return self._retry(entry, f"ingest: {e}")

        self.queue.complete(entry)
        self._enqueue_links(outcome.links)
        return INDEXED if outcome.changed else UNCHANGED

    def _retry(self, entry, reason):
        err = self.queue.requeue_with_backoff(entry, reason)
        if err is not None:
            self._report(err)
            return DROPPED
        return REQUEUED

    def _enqueue_links(self, links):
        now = self.clock()
        added = 0
        for link in links:
            if not is_crawlable(link):
                continue
            fetched_at = self.index.fetched_at(link)
            if fetched_at is not None and now - fetched_at < self.revisit_after:
                continue
            try:
                if self.queue.enqueue(link):
                    added += 1
            except InvalidURLError as e:
                logging.debug(f"[Sched] Ignoring link {e}")
        if added:
            logging.debug(f"[Sched] Queued {added} new links")
        return added

    # --- DRIVER ---
    def start(self, delay_ms=None):
        if delay_ms is not None:
            self.delay = delay_ms / 1000.0
        if self._driver is not None and self._driver.is_alive():
            return
        self._stop.clear()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="Tick")
        self._driver = threading.Thread(target=self._run, name="Scheduler", daemon=True)
        self._driver.start()
        logging.info(f" [SYS] Scheduler started ({self.delay:.2f}s interval).")

    def _run(self):
        next_fire = time.monotonic()
        while not self._stop.is_set():
            self._fire()
            next_fire += self.delay
            now = time.monotonic()
            if next_fire < now:
                next_fire = now
            self._stop.wait(next_fire - now)

    def _fire(self):
        if self._inflight is not None and not self._inflight.done():
            logging.warning("[Sched] Previous tick still running, skipping")
            return
        self._inflight = self._executor.submit(self.tick)

    def stop(self, timeout=None):
        self._stop.set()
        if self._driver is not None:
            self._driver.join(timeout)
            self._driver = None
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            self._inflight = None
        logging.info(" [SYS] Scheduler stopped.")

    @property
    def running(self):
        return self._driver is not None and self._driver.is_alive()
