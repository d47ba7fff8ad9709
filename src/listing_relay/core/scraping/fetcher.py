"""HTTP client with timeout, optional transport retries and UA rotation.

Provides a small `Fetcher` object exposing `get`, `stream_get`, `put` and
`post`. One instance owns one `requests.Session`; call `close()` when done.
"""

from __future__ import annotations

import random
from typing import Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

DEFAULT_UA_POOL = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (compatible; ListingRelayBot/1.0)",
]

DEFAULT_HEADERS = {
    "Accept": "*/*",
    "Accept-Language": "ru-RU,ru;q=0.9,en;q=0.8",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


class Fetcher:
    """Small HTTP client with sensible defaults for scraping.

    `retries` configures urllib3 transport retries for idempotent page
    fetches. Stages that own their retry loop (fetch, publish) pass
    `retries=0` so attempts are not multiplied.

    Usage:
        f = Fetcher(timeout=15, retries=3)
        resp = f.get(url)
    """

    def __init__(
        self,
        timeout: int = 15,
        retries: int = 3,
        backoff_factor: float = 0.3,
        ua_pool: Optional[list[str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.session = session or requests.Session()
        if retries > 0:
            retry = Retry(
                total=retries,
                status_forcelist=(429, 500, 502, 503, 504),
                allowed_methods=frozenset(["GET"]),
                backoff_factor=backoff_factor,
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry)
            self.session.mount("https://", adapter)
            self.session.mount("http://", adapter)
        self.ua_pool = ua_pool or DEFAULT_UA_POOL

    def _headers(self, headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        base = dict(DEFAULT_HEADERS)
        base["User-Agent"] = random.choice(self.ua_pool)
        if headers:
            base.update(headers)
        return base

    def get(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return self.session.get(url, headers=self._headers(headers), **kwargs)

    def stream_get(self, url: str, headers: Optional[Dict[str, str]] = None, **kwargs):
        # Streamed GET for downloading large files
        kwargs.setdefault("timeout", self.timeout)
        return self.session.get(
            url, headers=self._headers(headers), stream=True, **kwargs
        )

    def put(
        self, url: str, data, headers: Optional[Dict[str, str]] = None, **kwargs
    ):
        kwargs.setdefault("timeout", self.timeout)
        return self.session.put(
            url, data=data, headers=self._headers(headers), **kwargs
        )

    def post(self, url: str, json=None, headers: Optional[Dict[str, str]] = None, **kwargs):
        kwargs.setdefault("timeout", self.timeout)
        return self.session.post(
            url, json=json, headers=self._headers(headers), **kwargs
        )

    def close(self) -> None:
        self.session.close()
