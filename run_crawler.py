import logging, sys, time

import config
from crawler.bot import configure_logging
from crawler.errors import InvalidURLError
from engine import Engine


def monitor_loop(engine):
    start_time = time.time()
    while True:
        uptime = int(time.time() - start_time)
        m, s = divmod(uptime, 60)
        h, m = divmod(m, 60)

        st = engine.stats()
        sys.stdout.write(
            f"\r[RUNTIME {h:02}:{m:02}:{s:02}] "
            f"Queue: {st['pending']:<6} | "
            f"Backoff: {st['backoff']:<4} | "
            f"Docs: {st['documents']:<6} | "
            f"Terms: {st['terms']:<7} | "
            f"Domains: {st['domains']} ({st['disabled']} off)"
        )
        sys.stdout.flush()
        time.sleep(1)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()

    print(f"==========================================")
    print(f"   SIFT CRAWLER ENGINE                    ")
    print(f"==========================================")
    print(f" Database: {config.DB_PATH}")
    print(f" Delay:    {config.CRAWL_DELAY_MS} ms")
    print(f" Retries:  {config.MAX_ATTEMPTS}")
    print(f"==========================================\n")

    engine = Engine()

    print(" [INIT] Recovering database state...")
    engine.recover()

    for url in argv:
        try:
            engine.enqueue_url(url)
        except InvalidURLError as e:
            logging.error(f" [SEED] Skipping {e}")

    engine.start_scheduler(config.CRAWL_DELAY_MS)
    print("\n [SYSTEM] Engine is running. Press Ctrl+C to stop.\n")

    try:
        monitor_loop(engine)
    except KeyboardInterrupt:
        print("\n\n [STOP] Shutdown signal received!")
        print(" [STOP] Waiting for the current tick to finish...")
        engine.close()
        print(" [STOP] Shutdown complete.")


if __name__ == "__main__":
    main()
