import threading

from app.search import SearchEngine

URL = "http://example.com/a"
VERSIONS = ["red red", "blue blue blue"]


def run_threads(targets):
    threads = [threading.Thread(target=t) for t in targets]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)
    return threads


def test_search_never_sees_a_partial_posting_set(context, indexer):
    indexer.ingest(URL, VERSIONS[0])
    search = SearchEngine(context).search
    done = threading.Event()
    seen, errors = [], []

    def writer():
        try:
            for i in range(150):
                indexer.ingest(URL, VERSIONS[(i + 1) % 2])
        except Exception as e:
            errors.append(e)
        finally:
            done.set()

    def reader():
        try:
            while not done.is_set():
                found = search("red blue")
                seen.append((found.total_matches, [r.score for r in found.results]))
        except Exception as e:
            errors.append(e)
        finally:
            context.db.release()

    run_threads([writer] + [reader] * 4)

    assert errors == []
    assert seen
    assert all(total == 1 and scores in ([2], [3]) for total, scores in seen)


def test_concurrent_enqueue_of_one_url_keeps_one_entry(context):
    q = context.queue
    results = []

    def add():
        for _ in range(20):
            results.append(q.enqueue("http://EXAMPLE.com/a#frag"))

    run_threads([add] * 8)

    assert results.count(True) == 1
    assert len(q) == 1


def test_concurrent_dequeue_hands_out_an_entry_once(context):
    q = context.queue
    q.enqueue(URL)
    taken = []

    def take():
        taken.append(q.dequeue_eligible())

    run_threads([take] * 8)

    assert len([e for e in taken if e is not None]) == 1
    assert q.dequeue_eligible() is None


def test_enqueue_and_dequeue_race_never_double_dequeues(context):
    q = context.queue
    q.enqueue(URL)
    in_flight, lock = set(), threading.Lock()
    doubles, handled = [], []

    def add():
        for _ in range(50):
            q.enqueue(URL)

    def work():
        for _ in range(50):
            entry = q.dequeue_eligible()
            if entry is None:
                continue
            with lock:
                if entry.url in in_flight:
                    doubles.append(entry.url)
                in_flight.add(entry.url)
            handled.append(entry.url)
            with lock:
                in_flight.discard(entry.url)
            q.complete(entry)

    run_threads([add] * 3 + [work] * 3)

    assert doubles == []
    assert handled
    assert q.stats()["in_flight"] == 0
    assert len(q) <= 1
