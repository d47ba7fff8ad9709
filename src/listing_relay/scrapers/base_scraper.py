"""Base HTML item source (plugin) used by the relay pipeline.

Plugins are small: they set CSS selectors in `SELECTORS` and, when needed,
override `to_item` / `enrich`. Pages are fetched as static HTML; nothing
here runs JavaScript.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from listing_relay.core.errors import DiscoveryError
from listing_relay.core.interfaces import ItemSource
from listing_relay.core.models import Artifact, Item
from listing_relay.core.scraping.fetcher import Fetcher
from listing_relay.core.scraping.parser import (
    ListingCard,
    extract_content_text,
    extract_links_from_html,
    generate_tags,
    parse_detail_files,
    parse_listing_cards,
)

logger = logging.getLogger(__name__)


class BaseScraper(ItemSource):
    """Generic listing/detail scraper.

    `params` accepts:
    - `file_patterns`: regexes used to pick artifact links on a detail page
      when it has no structured files block (default: links ending in `.map`);
    - `max_items`: stop after this many listing cards.
    """

    SELECTORS: Dict[str, str] = {
        "container": ".map-container",
        "link_node": ".map-content",
        "link_attr": "data-url",
        "title_node": ".map-title",
        "id_pattern": r"mid=(\d+)",
        "files_block": "#mapfiles",
        "file_entry": ".mapfile",
        "file_value": ".info .value",
    }
    DEFAULT_FILE_PATTERNS = (r"\.map($|\?)",)
    DESCRIPTION_LIMIT = 200

    def __init__(
        self,
        url: str,
        params: dict | None = None,
        fetcher: Optional[Fetcher] = None,
    ):
        self.url = url
        self.params = params or {}
        self.fetcher = fetcher or Fetcher()

    def fetch_html(self, url: str) -> str:
        resp = self.fetcher.get(url)
        resp.raise_for_status()
        return resp.text

    def discover(self) -> List[Item]:
        logger.info("Parsing listing page %s", self.url)
        try:
            html = self.fetch_html(self.url)
        except Exception as exc:
            raise DiscoveryError(self.url, exc) from exc

        s = self.SELECTORS
        cards = parse_listing_cards(
            html,
            self.url,
            container=s["container"],
            link_node=s["link_node"],
            link_attr=s["link_attr"],
            title_node=s["title_node"],
            id_pattern=s["id_pattern"],
        )
        max_items = self.params.get("max_items")
        if isinstance(max_items, int) and max_items > 0:
            cards = cards[:max_items]
        logger.info("Extracted %d items from %s", len(cards), self.url)
        return [self.to_item(card) for card in cards]

    def to_item(self, card: ListingCard) -> Item:
        return Item(id=card.id, title=card.title, url=card.url)

    def enrich(self, item: Item) -> Item:
        """Fetch the detail page and attach its files, tags and description."""
        html = self.fetch_html(item.url)
        s = self.SELECTORS
        entries = parse_detail_files(
            html,
            item.url,
            block=s["files_block"],
            entry=s["file_entry"],
            value=s["file_value"],
        )
        artifacts = [
            Artifact(
                fetch_url=e.fetch_url,
                name=e.name,
                size=e.size,
                upload_date=e.upload_date,
            )
            for e in entries
        ]
        if not artifacts:
            patterns = self.params.get("file_patterns") or list(self.DEFAULT_FILE_PATTERNS)
            artifacts = [
                Artifact(fetch_url=u, name=t or None)
                for u, t in extract_links_from_html(html, item.url, patterns)
            ]

        content = extract_content_text(html)
        logger.debug("Found %d files for item %s", len(artifacts), item.id)
        return item.with_artifacts(
            artifacts,
            tags=generate_tags(item.title, content),
            description=content[: self.DESCRIPTION_LIMIT] or item.description,
        )

    def close(self) -> None:
        self.fetcher.close()
