"""Filename helpers.

Two different names exist for every artifact:

- the *local* name under `output_dir`, `<item id>_<title>_<url hash><ext>`,
  which only has to be legal on the local filesystem; the short hash of the
  `fetch_url` keeps two files with the same name apart;
- the *publish* name sent to the upload API, which must match
  `[A-Za-z0-9._-]+`. Cyrillic titles are transliterated first so the result
  stays readable.
"""

from __future__ import annotations

import hashlib
import re
import time
from pathlib import Path, PurePosixPath
from typing import Callable
from urllib.parse import urlparse

from listing_relay.core.models import Artifact, Item

CYRILLIC_TO_LATIN = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "e",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "h", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "sch",
    "ъ": "", "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    # ucraniano / bielorrusso
    "є": "ye", "і": "i", "ї": "yi", "ґ": "g", "ў": "u",
}

PLACEHOLDER = "_"
_DISALLOWED = re.compile(r"[^a-zA-Z0-9._-]")
_REPEATED = re.compile(r"_+")
_ILLEGAL_LOCAL = re.compile(r'[\x00-\x1f\x7f/\\?%*:|"<>]')
_TITLE_LIMIT = 50


def transliterate(text: str) -> str:
    out = []
    for ch in text:
        latin = CYRILLIC_TO_LATIN.get(ch.lower())
        if latin is None:
            out.append(ch)
        elif ch.isupper() and latin:
            out.append(latin[0].upper() + latin[1:])
        else:
            out.append(latin)
    return "".join(out)


def sanitize_stem(stem: str) -> str:
    """Transliterate, replace disallowed chars, collapse and trim placeholders."""
    safe = _DISALLOWED.sub(PLACEHOLDER, transliterate(stem))
    safe = _REPEATED.sub(PLACEHOLDER, safe)
    return safe.strip(PLACEHOLDER)


def safe_publish_name(
    path: str | Path, clock: Callable[[], float] = time.time
) -> str:
    """Return the external-facing filename for a local file.

    Never empty: a stem that sanitises to nothing becomes `item_<epoch ms>`.
    """
    p = PurePosixPath(Path(path).name)
    ext = sanitize_stem(p.suffix.lstrip("."))
    stem = sanitize_stem(p.stem)
    if not stem:
        stem = f"item_{int(clock() * 1000)}"
    return f"{stem}.{ext}" if ext else stem


def _clean_local(text: str) -> str:
    return _ILLEGAL_LOCAL.sub("", text).strip().rstrip(".")


def delivery_title(item: Item, artifact: Artifact) -> str:
    """Title of one delivered file: `<item title> - <file name>`."""
    return f"{item.title} - {artifact.name}" if artifact.name else item.title


def url_digest(fetch_url: str, length: int = 8) -> str:
    return hashlib.sha256(fetch_url.encode("utf-8")).hexdigest()[:length]


def local_filename(item: Item, artifact: Artifact, default_ext: str = ".map") -> str:
    """`<item id>_<title truncated to 50 chars>_<fetch_url digest><extension>`."""
    url_name = PurePosixPath(urlparse(artifact.fetch_url).path).name
    ext = PurePosixPath(url_name).suffix if "." in url_name else default_ext
    title = _clean_local(delivery_title(item, artifact))[:_TITLE_LIMIT]
    if ext and title.lower().endswith(ext.lower()):
        title = title[: -len(ext)]
    title = title.strip()
    digest = url_digest(artifact.fetch_url)
    return f"{item.id}_{title}_{digest}{ext}" if title else f"{item.id}_{digest}{ext}"
