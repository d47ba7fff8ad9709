"""Core scraping primitives exported for reuse across scrapers and flows.

This package contains small building blocks: Fetcher, Downloader (fetch
stage), Pacer, parser helpers and URL normalisation. The Prefect task
wrappers live in `prefect_tasks` and are imported from there directly.
"""

from .downloader import Downloader, FetchResult
from .fetcher import Fetcher
from .normalizer import normalize_url
from .pacing import Pacer
from .parser import (
    extract_links_from_html,
    generate_tags,
    parse_detail_files,
    parse_listing_cards,
)

__all__ = [
    "Fetcher",
    "Downloader",
    "FetchResult",
    "Pacer",
    "normalize_url",
    "extract_links_from_html",
    "parse_listing_cards",
    "parse_detail_files",
    "generate_tags",
]
