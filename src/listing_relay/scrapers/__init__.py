"""Registry and helper to select the item source plugin by domain.

Simplest form: map known domains to a Scraper class. Falls back to
`BaseScraper`, which uses the generic listing/detail selectors.
"""

from typing import Type

from listing_relay.core.scraping.normalizer import domain_of

from .base_scraper import BaseScraper
from .rustmaps_scraper import RustMapsScraper

_REGISTRY: dict[str, Type[BaseScraper]] = {
    "rustmaps.ru": RustMapsScraper,
}


def get_scraper_for_url(url: str) -> Type[BaseScraper]:
    domain = domain_of(url)
    if domain in _REGISTRY:
        return _REGISTRY[domain]
    for key in _REGISTRY:
        if domain.endswith("." + key):
            return _REGISTRY[key]
    return BaseScraper


__all__ = ["get_scraper_for_url", "BaseScraper", "RustMapsScraper"]
