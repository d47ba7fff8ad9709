"""
Ledger durável: guarda os itens descobertos e as URLs de artifacts já entregues.

O documento é um único JSON:

    {"items": [...], "deliveredFetchUrls": [...], "lastRunAt": "...",
     "totalFound": 0, "totalDelivered": 0}

Every mutation is written before the method returns, through a temp file and
`os.replace`, so a crash loses at most the operation in flight. A failed write
raises `LedgerIOError` but leaves the in-memory state as mutated; the caller
decides whether to carry on with reduced durability.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from listing_relay.core.errors import LedgerIOError
from listing_relay.core.models import Item

logger = logging.getLogger(__name__)


class LedgerDocument(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    items: List[Item] = Field(default_factory=list)
    delivered_fetch_urls: List[str] = Field(default_factory=list)
    last_run_at: Optional[str] = None
    total_found: int = 0
    total_delivered: int = 0


@dataclass(frozen=True)
class LedgerStats:
    total_found: int
    total_delivered: int
    remaining: int
    last_run_at: Optional[str]
    total_artifacts: int = 0
    delivered_artifacts: int = 0

    @property
    def success_rate(self) -> int:
        """Percentage of known files already delivered, rounded."""
        if not self.total_artifacts:
            return 0
        return round(self.delivered_artifacts / self.total_artifacts * 100)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Ledger:
    """Single-writer store; reads are safe from worker threads."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._items: Dict[str, Item] = {}
        self._delivered: Dict[str, None] = {}
        self._last_run_at: Optional[str] = None

    # ------------------------------------------------------------------ load
    def load(self) -> "Ledger":
        """Read the persisted document. Missing or corrupt storage starts empty."""
        with self._lock:
            self._items, self._delivered, self._last_run_at = {}, {}, None
            if not self.path.exists():
                logger.info("Ledger not found at %s, starting empty", self.path)
                return self
            try:
                doc = LedgerDocument.model_validate_json(self.path.read_bytes())
            except (OSError, ValueError, ValidationError) as exc:
                logger.error(
                    "Could not read ledger %s, starting empty: %s", self.path, exc
                )
                return self

            for item in doc.items:
                self._items.setdefault(item.id, item)
            self._delivered = dict.fromkeys(doc.delivered_fetch_urls)
            self._last_run_at = doc.last_run_at
            logger.info(
                "Ledger loaded: %d items found, %d files delivered",
                len(self._items),
                len(self._delivered),
            )
            return self

    # -------------------------------------------------------------- persist
    def _document(self) -> LedgerDocument:
        return LedgerDocument(
            items=list(self._items.values()),
            delivered_fetch_urls=list(self._delivered),
            last_run_at=self._last_run_at,
            total_found=len(self._items),
            total_delivered=len(self._delivered),
        )

    def _flush(self) -> None:
        payload = self._document().model_dump_json(by_alias=True, indent=2)
        tmp_name: Optional[str] = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            logger.error("Error saving ledger %s: %s", self.path, exc)
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise LedgerIOError(str(self.path), exc) from exc
        logger.debug("Ledger saved")

    # ------------------------------------------------------------ mutations
    def record_discovered(self, items: Iterable[Item]) -> int:
        """Merge by id without overwriting known items; return the count of new ones."""
        with self._lock:
            added = 0
            for item in items:
                if item.id in self._items:
                    continue
                self._items[item.id] = item
                added += 1
            self._last_run_at = _now_iso()
            if added:
                logger.info("Added %d new items to ledger", added)
            self._flush()
            return added

    def record_enrichment(self, item: Item) -> int:
        """Attach artifacts not yet known for `item`; return how many were added.

        Artifacts already stored (same `fetch_url`) are kept as they are.
        """
        with self._lock:
            known = self._items.get(item.id)
            if known is None:
                self._items[item.id] = item
                self._flush()
                return len(item.artifacts)

            seen = {a.fetch_url for a in known.artifacts}
            fresh = [a for a in item.artifacts if a.fetch_url not in seen]
            if not fresh and (known.tags or not item.tags):
                return 0
            self._items[item.id] = known.with_artifacts(
                list(known.artifacts) + fresh,
                tags=known.tags or item.tags,
                description=known.description or item.description,
            )
            self._flush()
            return len(fresh)

    def is_delivered(self, fetch_url: str) -> bool:
        return fetch_url in self._delivered

    def mark_delivered(self, fetch_url: str, published_url: Optional[str] = None) -> None:
        """Idempotent; an already delivered URL is a no-op and is not rewritten.

        `published_url`, when given, is stored on the matching artifact.
        """
        with self._lock:
            if fetch_url in self._delivered:
                return
            self._delivered[fetch_url] = None
            if published_url:
                self._attach_published_url(fetch_url, published_url)
            logger.debug("File marked as delivered: %s", fetch_url)
            self._flush()

    def _attach_published_url(self, fetch_url: str, published_url: str) -> None:
        for item_id, item in self._items.items():
            if not any(a.fetch_url == fetch_url for a in item.artifacts):
                continue
            artifacts = [
                a.model_copy(update={"published_url": published_url})
                if a.fetch_url == fetch_url
                else a
                for a in item.artifacts
            ]
            self._items[item_id] = item.with_artifacts(artifacts)

    def reset(self) -> None:
        """Forget deliveries; discovered items are kept."""
        with self._lock:
            self._delivered = {}
            self._flush()
            logger.info("Delivered files list reset")

    # ---------------------------------------------------------------- reads
    def items(self) -> Iterator[Item]:
        with self._lock:
            return iter(list(self._items.values()))

    def get(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    def delivered_urls(self) -> List[str]:
        with self._lock:
            return list(self._delivered)

    def pending_items(self) -> List[Item]:
        """Items with at least one artifact not yet delivered."""
        with self._lock:
            return [
                item
                for item in self._items.values()
                if any(a.fetch_url not in self._delivered for a in item.artifacts)
            ]

    def stats(self) -> LedgerStats:
        with self._lock:
            urls = {a.fetch_url for item in self._items.values() for a in item.artifacts}
            return LedgerStats(
                total_found=len(self._items),
                total_delivered=len(self._delivered),
                remaining=len(self.pending_items()),
                last_run_at=self._last_run_at,
                total_artifacts=len(urls),
                delivered_artifacts=sum(1 for u in urls if u in self._delivered),
            )

    def write_manifest(self, path: str | Path) -> Path:
        """Write a readable manifest of every known item and its files."""
        with self._lock:
            manifest = {
                "generatedAt": _now_iso(),
                "totalItems": len(self._items),
                "items": [
                    {
                        "id": item.id,
                        "title": item.title,
                        "url": item.url,
                        "tags": item.tags,
                        "files": [
                            {
                                "name": a.name,
                                "size": a.size,
                                "fetchUrl": a.fetch_url,
                                "delivered": a.fetch_url in self._delivered,
                            }
                            for a in item.artifacts
                        ],
                    }
                    for item in self._items.values()
                ],
            }
        out = Path(path)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(manifest, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info("Manifest created: %s", out)
        return out
