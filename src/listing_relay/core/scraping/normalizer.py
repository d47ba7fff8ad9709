"""URL normalizer utilities.

Links scraped from listing pages are normalised before they are used as
artifact identities, so the same file is not seen as two different
`fetch_url`s because of a tracking parameter or a fragment.
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

DEFAULT_REMOVE_PARAMS = {
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_term",
    "utm_content",
    "fbclid",
}


def normalize_url(
    url: str, remove_params: Iterable[str] | None = None, strip_fragment: bool = True
) -> str:
    """Return a normalized URL: lower-case scheme and host, no tracking params.

    Query order and path case are kept; some sites route on them.
    """
    remove = set(remove_params or DEFAULT_REMOVE_PARAMS)
    p = urlparse(url.strip())
    q = [
        (k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if k not in remove
    ]
    return urlunparse(
        (
            p.scheme.lower(),
            p.netloc.lower(),
            p.path or "",
            p.params or "",
            urlencode(q, doseq=True),
            "" if strip_fragment else p.fragment,
        )
    )


def domain_of(url: str) -> str:
    netloc = urlparse(url).netloc.lower()
    return netloc[4:] if netloc.startswith("www.") else netloc
