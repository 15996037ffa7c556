"""Concurrent access to the in-memory driver."""
import threading

from api_metrics.drivers import InMemoryDriver

THREADS = 8
ITERATIONS = 500


def _run(target):
    threads = [threading.Thread(target=target) for _ in range(THREADS)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def test_concurrent_increments_are_not_lost():
    driver = InMemoryDriver()
    driver.register_histogram("work_seconds", "Work", buckets=[0.5, 1])

    def work():
        for i in range(ITERATIONS):
            driver.increment_counter("jobs_total", {"queue": "emails"})
            driver.increment_gauge("in_flight", 1)
            driver.observe_histogram("work_seconds", 0.25)

    _run(work)

    total = THREADS * ITERATIONS
    assert driver.get_counter_value("jobs_total", {"queue": "emails"}) == total
    assert driver.get_gauge_value("in_flight") == float(total)
    assert driver.get_histogram_count("work_seconds") == total
    assert driver.get_histogram_sum("work_seconds") == total * 0.25


def test_rendering_during_writes(parse_samples):
    driver = InMemoryDriver()
    driver.register_counter("jobs_total", "Jobs", ["worker"])
    bodies = []
    errors = []

    def write():
        for i in range(ITERATIONS):
            driver.increment_counter("jobs_total", {"worker": str(i % 10)})

    def read():
        for _ in range(50):
            try:
                bodies.append(driver.get_metrics())
            except Exception as e:  # pragma: no cover
                errors.append(e)

    threads = [threading.Thread(target=write) for _ in range(4)] + [threading.Thread(target=read)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert not errors
    for body in bodies:
        parse_samples(body)

    samples = parse_samples(driver.get_metrics())
    assert sum(value for (name, _), value in samples.items() if name == "jobs_total") == 4 * ITERATIONS
