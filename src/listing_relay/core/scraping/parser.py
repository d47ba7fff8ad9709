"""HTML parsing helpers: listing cards, detail-page files, links and tags.

All functions take static HTML and return plain records; fetching lives in
the scraper plugins.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from listing_relay.core.scraping.normalizer import normalize_url

DEFAULT_KEYWORDS = (
    "rust",
    "map",
    "custom",
    "procedural",
    "island",
    "desert",
    "snow",
    "forest",
)
MAX_TAGS = 10


@dataclass(frozen=True)
class ListingCard:
    id: str
    title: str
    url: str


@dataclass(frozen=True)
class FileEntry:
    name: Optional[str]
    size: Optional[str]
    fetch_url: str
    upload_date: Optional[str]


def _text(node) -> Optional[str]:
    if node is None:
        return None
    value = node.get_text(" ", strip=True)
    return value or None


def extract_links_from_html(
    html: str, base_url: str, patterns: Optional[List[str]] = None
) -> List[Tuple[str, str]]:
    """Extract links from HTML and return list of (url, link_text).

    - Normalizes links via `normalize_url`.
    - Returns absolute URLs.
    - Keeps only links whose URL matches one of `patterns` (regexes), if given.
    """
    soup = BeautifulSoup(html, "html.parser")
    compiled = [re.compile(p, re.IGNORECASE) for p in patterns or []]
    results: List[Tuple[str, str]] = []

    for a in soup.find_all("a", href=True):
        raw = str(a.get("href")).strip()
        if not raw or raw.startswith(("javascript:", "mailto:", "#")):
            continue
        link_text = (a.get_text() or "").strip()
        norm = normalize_url(urljoin(base_url, raw))
        if compiled and not any(rx.search(norm) for rx in compiled):
            continue
        results.append((norm, link_text))

    # Deduplicate preserving order by url
    seen = set()
    uniq: List[Tuple[str, str]] = []
    for u, t in results:
        if u not in seen:
            seen.add(u)
            uniq.append((u, t))

    return uniq


def parse_listing_cards(
    html: str,
    base_url: str,
    *,
    container: str = ".map-container",
    link_node: str = ".map-content",
    link_attr: str = "data-url",
    title_node: str = ".map-title",
    id_pattern: str = r"mid=(\d+)",
) -> List[ListingCard]:
    """Return one `ListingCard` per container that carries a link with an id.

    Containers without a link or whose link has no id are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    rx = re.compile(id_pattern)
    cards: List[ListingCard] = []
    seen = set()
    for box in soup.select(container):
        node = box.select_one(link_node) if link_node else box
        href = (node.get(link_attr) or node.get("href")) if node is not None else None
        if not href:
            continue
        m = rx.search(href)
        if not m or m.group(1) in seen:
            continue
        seen.add(m.group(1))
        cards.append(
            ListingCard(
                id=m.group(1),
                title=_text(box.select_one(title_node)) or "Untitled",
                url=urljoin(base_url, href),
            )
        )
    return cards


def parse_detail_files(
    html: str,
    base_url: str,
    *,
    block: str = "#mapfiles",
    entry: str = ".mapfile",
    value: str = ".info .value",
) -> List[FileEntry]:
    """Parse the files block of a detail page.

    Each entry's value cells are, in order: name, size, link, upload date.
    Entries without a name or link are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    root = soup.select_one(block)
    if root is None:
        return []
    files: List[FileEntry] = []
    for node in root.select(entry):
        values = node.select(value)
        link = node.select_one(f"{value} a[href]")
        name = _text(values[0]) if values else None
        if not name or link is None:
            continue
        files.append(
            FileEntry(
                name=name,
                size=_text(values[1]) if len(values) > 1 else None,
                fetch_url=urljoin(base_url, str(link.get("href")).strip()),
                upload_date=_text(values[3]) if len(values) > 3 else None,
            )
        )
    return files


def extract_content_text(
    html: str,
    selectors: str = "p, div.content, .description, .post-content, .map-description",
    min_length: int = 10,
) -> str:
    soup = BeautifulSoup(html, "html.parser")
    texts = [_text(n) for n in soup.select(selectors)]
    return " ".join(t for t in texts if t and len(t) > min_length).strip()


def generate_tags(
    title: str, content: str, keywords: Sequence[str] = DEFAULT_KEYWORDS
) -> List[str]:
    """Title words longer than two chars, then known keywords found in content."""
    tags: List[str] = []

    def add(words: Iterable[str]) -> None:
        for w in words:
            if w not in tags:
                tags.append(w)

    add(w.lower() for w in re.split(r"[\s_\-.]+", title or "") if len(w) > 2)
    lowered = (content or "").lower()
    add(k for k in keywords if k in lowered)
    return tags[:MAX_TAGS]
