"""Test doubles for the pipeline collaborators."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from listing_relay.core.errors import FetchFailed
from listing_relay.core.interfaces import ItemSource, Notifier
from listing_relay.core.models import Artifact, Item
from listing_relay.core.scraping.downloader import FetchResult
from listing_relay.services.uploader import (
    AttemptResult,
    PublishSink,
    classify_response,
)


def make_item(item_id: str, title: str, *urls: str) -> Item:
    return Item(
        id=item_id,
        title=title,
        url=f"https://listings.example/index.php?mode=map&mid={item_id}",
        tags=[title.lower()],
        artifacts=[
            Artifact(fetch_url=u, name=u.rsplit("/", 1)[-1]) for u in urls
        ],
    )


class FakeSource(ItemSource):
    def __init__(self, items: List[Item], fail_enrich: Iterable[str] = ()):
        self.items = items
        self.fail_enrich = set(fail_enrich)
        self.discover_calls = 0
        self.closed = False

    def discover(self) -> List[Item]:
        self.discover_calls += 1
        return list(self.items)

    def enrich(self, item: Item) -> Item:
        if item.id in self.fail_enrich:
            raise RuntimeError("detail page unavailable")
        return item

    def close(self) -> None:
        self.closed = True


class BrokenSource(FakeSource):
    def discover(self) -> List[Item]:
        raise ConnectionError("listing page down")


class FakeDownloader:
    """Writes a few bytes instead of hitting the network."""

    concurrency = 2

    def __init__(self, fail_urls: Iterable[str] = (), on_fetch=None):
        self.fail_urls = set(fail_urls)
        self.on_fetch = on_fetch
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def fetch(self, artifact: Artifact, destination) -> FetchResult:
        with self._lock:
            self.calls.append(artifact.fetch_url)
        if self.on_fetch is not None:
            self.on_fetch(artifact)
        if artifact.fetch_url in self.fail_urls:
            raise FetchFailed(artifact.fetch_url, ConnectionError("reset"))
        dest = Path(destination)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(b"map-bytes")
        return FetchResult(ok=True, local_path=dest, size=9)

    def close(self) -> None:
        pass


class ScriptedSink(PublishSink):
    """Answers from a per-filename script of HTTP statuses; default is 200."""

    def __init__(self, scripts: Optional[Dict[str, List[int]]] = None):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.payloads: List[bytes] = []
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def put(self, filename: str, data: bytes) -> AttemptResult:
        with self._lock:
            self.calls.append(filename)
            self.payloads.append(data)
            status = 200
            for key, statuses in self.scripts.items():
                if key in filename and statuses:
                    status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
                    break
        body = f"https://cdn.example/{filename}" if 200 <= status < 300 else "err"
        return classify_response(status, body)


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.artifacts = []
        self.summaries = []

    def notify_artifact(self, event) -> None:
        if self.fail:
            raise RuntimeError("webhook down")
        self.artifacts.append(event)

    def notify_summary(self, event) -> None:
        self.summaries.append(event)
