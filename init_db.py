import sys

import config
from crawler.context import CrawlContext
from crawler.errors import InvalidURLError

# --- USER DEFINED SEEDS ---
MANUAL_SEEDS = [
    "https://news.ycombinator.com", "https://slashdot.org", "https://dev.to",
    "https://developer.mozilla.org", "https://www.wikipedia.org", "https://archive.org",
]


def init_database(db_path=config.DB_PATH):
    print("--- Initialising Sift Database ---")
    ctx = CrawlContext(db_path)
    print(f" [OK] Schema ready at {db_path}")
    return ctx


def populate_seeds(ctx, seeds):
    print(f" [SEED] Injecting {len(seeds)} seeds...")
    added = 0
    for url in seeds:
        try:
            if ctx.queue.enqueue(url):
                added += 1
        except InvalidURLError as e:
            print(f" [WARN] {e}")
    print(f"--- {added} new URLs queued ---")
    return added


def read_seed_file(path):
    with open(path, "r", encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip() and not line.startswith("#")]


if __name__ == "__main__":
    ctx = init_database()
    seeds = read_seed_file(sys.argv[1]) if len(sys.argv) > 1 else MANUAL_SEEDS
    populate_seeds(ctx, seeds)
    ctx.close()
