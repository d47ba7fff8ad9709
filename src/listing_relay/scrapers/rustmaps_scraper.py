"""Scraper plugin for rustmaps.ru.

The listing page renders one `.map-container` per map, with the detail link
in `.map-content[data-url]` (`index.php?mode=map&mid=<id>`). Detail pages list
the downloadable files under `#mapfiles`.
"""

from __future__ import annotations

from typing import Dict
from urllib.parse import urlparse

from listing_relay.core.models import Item
from listing_relay.core.scraping.parser import ListingCard

from .base_scraper import BaseScraper


class RustMapsScraper(BaseScraper):
    SELECTORS: Dict[str, str] = {
        **BaseScraper.SELECTORS,
        "title_node": ".map-title, h3",
    }
    DETAIL_PATH = "/index.php?mode=map&mid={id}"

    def to_item(self, card: ListingCard) -> Item:
        # data-url carries session/sort params; keep one canonical location per id
        p = urlparse(self.url)
        canonical = f"{p.scheme or 'https'}://{p.netloc}" + self.DETAIL_PATH.format(
            id=card.id
        )
        return Item(id=card.id, title=card.title, url=canonical)
