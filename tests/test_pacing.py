import threading
import time

from listing_relay.core.scraping.pacing import Pacer


def test_zero_interval_disables_pacing():
    pacer = Pacer(0)
    assert not pacer.enabled
    start = time.monotonic()
    for _ in range(100):
        pacer.wait()
    assert time.monotonic() - start < 0.5


def test_calls_are_spaced_by_interval():
    pacer = Pacer(0.05, name="test")
    assert pacer.enabled
    start = time.monotonic()
    for _ in range(3):
        pacer.wait()
    # first call passes at once, the next two wait one interval each
    assert time.monotonic() - start >= 0.09


def test_concurrent_callers_are_spaced_out():
    pacer = Pacer(0.05, name="threads")
    stamps = []
    lock = threading.Lock()

    def call():
        pacer.wait()
        with lock:
            stamps.append(time.monotonic())

    threads = [threading.Thread(target=call) for _ in range(4)]
    start = time.monotonic()
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(stamps) == 4
    assert max(stamps) - start >= 0.14
