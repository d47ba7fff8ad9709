import threading
import time

import pytest
import requests
import responses

from listing_relay.core.errors import FetchFailed
from listing_relay.core.models import Artifact
from listing_relay.core.scraping.downloader import Downloader, format_bytes
from listing_relay.core.scraping.fetcher import Fetcher

URL = "https://files.example/maps/island.map"


def _downloader(sleeps=None, **kwargs):
    sleeps = sleeps if sleeps is not None else []
    return Downloader(Fetcher(retries=0), sleep=sleeps.append, **kwargs)


@responses.activate
def test_fetch_streams_to_destination(tmp_path):
    responses.add(responses.GET, URL, body=b"A" * 20000, status=200)
    dest = tmp_path / "1_island.map"

    result = _downloader().fetch(Artifact(fetch_url=URL), dest)

    assert result.ok
    assert result.size == 20000
    assert result.sha256 and len(result.sha256) == 64
    assert dest.read_bytes() == b"A" * 20000
    assert not (tmp_path / "1_island.map.part").exists()


@responses.activate
def test_existing_file_is_not_downloaded_again(tmp_path):
    dest = tmp_path / "1_island.map"
    dest.write_bytes(b"already here")

    result = _downloader().fetch(Artifact(fetch_url=URL), dest)

    assert result.skipped
    assert result.local_path == dest
    assert len(responses.calls) == 0


@responses.activate
def test_server_error_then_success_retries_once(tmp_path):
    responses.add(responses.GET, URL, status=500)
    responses.add(responses.GET, URL, body=b"map", status=200)
    sleeps = []

    result = _downloader(sleeps, retry_attempts=2, retry_delay=5.0).fetch(
        Artifact(fetch_url=URL), tmp_path / "a.map"
    )

    assert result.ok
    assert len(responses.calls) == 2
    assert sleeps == [5.0]


@responses.activate
def test_all_attempts_failing_raises_and_leaves_nothing(tmp_path):
    responses.add(responses.GET, URL, status=503)
    sleeps = []
    dest = tmp_path / "a.map"

    with pytest.raises(FetchFailed) as exc_info:
        _downloader(sleeps, retry_attempts=3, retry_delay=2.0).fetch(
            Artifact(fetch_url=URL), dest
        )

    assert exc_info.value.artifact_id == URL
    assert len(responses.calls) == 3
    assert sleeps == [2.0, 2.0]
    assert list(tmp_path.iterdir()) == []


@responses.activate
def test_connection_error_is_retried(tmp_path):
    responses.add(responses.GET, URL, body=requests.ConnectionError("reset"))
    responses.add(responses.GET, URL, body=b"ok", status=200)

    result = _downloader().fetch(Artifact(fetch_url=URL), tmp_path / "a.map")

    assert result.size == 2


@responses.activate
def test_empty_body_counts_as_failure(tmp_path):
    responses.add(responses.GET, URL, body=b"", status=200)
    with pytest.raises(FetchFailed):
        _downloader(retry_attempts=1).fetch(Artifact(fetch_url=URL), tmp_path / "a.map")
    assert not (tmp_path / "a.map").exists()


@responses.activate
def test_progress_callback_receives_running_total(tmp_path):
    body = b"B" * 10000
    responses.add(
        responses.GET, URL, body=body, headers={"Content-Length": str(len(body))}
    )
    seen = []
    _downloader(progress=lambda done, total: seen.append((done, total)), chunk_size=4096).fetch(
        Artifact(fetch_url=URL), tmp_path / "a.map"
    )
    assert seen[-1] == (10000, 10000)
    assert [d for d, _ in seen] == sorted(d for d, _ in seen)


class _SlowResponse:
    headers = {}

    def __init__(self, tracker):
        self.tracker = tracker

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size):
        self.tracker.enter()
        time.sleep(0.05)
        self.tracker.leave()
        yield b"x"


class _Tracker:
    def __init__(self):
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def enter(self):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)

    def leave(self):
        with self.lock:
            self.active -= 1


class _SlowFetcher:
    def __init__(self, tracker):
        self.tracker = tracker

    def stream_get(self, url):
        return _SlowResponse(self.tracker)

    def close(self):
        pass


def test_concurrency_bounds_simultaneous_fetches(tmp_path):
    tracker = _Tracker()
    downloader = Downloader(_SlowFetcher(tracker), concurrency=2)

    threads = [
        threading.Thread(
            target=downloader.fetch,
            args=(Artifact(fetch_url=f"https://f/{i}.map"), tmp_path / f"{i}.map"),
        )
        for i in range(6)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert tracker.peak <= 2
    assert len(list(tmp_path.glob("*.map"))) == 6


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        Downloader(Fetcher(retries=0), concurrency=0)
    with pytest.raises(ValueError):
        Downloader(Fetcher(retries=0), retry_attempts=0)


def test_format_bytes():
    assert format_bytes(0) == "0 B"
    assert format_bytes(1536) == "1.5 KB"
    assert format_bytes(5 * 1024 * 1024) == "5.0 MB"
