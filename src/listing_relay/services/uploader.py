"""
Publish Stage: envia um arquivo local para o sink externo e devolve a URL pública.

Cada tentativa produz um `AttemptResult` com um de três resultados:

- SUCCESS: 2xx com uma URL absoluta no corpo;
- PERMANENT: 4xx, ou 2xx com corpo inválido; não adianta tentar de novo;
- TRANSIENT: 5xx ou erro de rede; tentamos de novo após um intervalo que
    cresce linearmente (`base_delay + tentativa * delay_increment`), com o
    `Retrying` do tenacity controlando as tentativas.

Classification and the retry decision are plain functions so they can be
tested without any network. Sinks (`HttpPutSink`, `GCSSink`) only translate
their transport's answer into an `AttemptResult`.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote, urlparse

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_result,
    stop_after_attempt,
    wait_incrementing,
)

from listing_relay.core.errors import (
    InvalidResponse,
    PublishExhausted,
    PublishPermanent,
)
from listing_relay.core.scraping.fetcher import Fetcher
from listing_relay.core.scraping.pacing import Pacer
from listing_relay.services.naming import safe_publish_name

logger = logging.getLogger(__name__)

_TRANSIENT_NETWORK_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass(frozen=True)
class AttemptResult:
    outcome: AttemptOutcome
    url: Optional[str] = None
    status: Optional[int] = None
    detail: str = ""
    invalid_response: bool = False


@dataclass(frozen=True)
class PublishResult:
    ok: bool
    external_url: str
    filename: str
    attempts: int = 1


def is_absolute_url(value: str) -> bool:
    p = urlparse(value)
    return p.scheme in ("http", "https") and bool(p.netloc)


def classify_response(status: int, body: str) -> AttemptResult:
    """Map a sink HTTP answer to an attempt outcome."""
    if 200 <= status < 300:
        url = (body or "").strip()
        if not is_absolute_url(url):
            return AttemptResult(
                AttemptOutcome.PERMANENT,
                status=status,
                detail="sink sent an invalid success response",
                invalid_response=True,
            )
        return AttemptResult(AttemptOutcome.SUCCESS, url=url, status=status)
    if 400 <= status < 500:
        return AttemptResult(
            AttemptOutcome.PERMANENT, status=status, detail=(body or "")[:200]
        )
    return AttemptResult(
        AttemptOutcome.TRANSIENT, status=status, detail=f"server error {status}"
    )


def should_retry(outcome: AttemptOutcome) -> bool:
    return outcome is AttemptOutcome.TRANSIENT


def _log_retry(state: RetryCallState) -> None:
    result = state.outcome.result() if state.outcome and not state.outcome.failed else None
    logger.debug(
        "Attempt %d failed: %s; waiting %.1fs before retry...",
        state.attempt_number,
        result.detail if result else "",
        state.next_action.sleep if state.next_action else 0.0,
    )


class PublishSink(ABC):
    """Transport for one upload attempt."""

    @abstractmethod
    def put(self, filename: str, data: bytes) -> AttemptResult:
        raise NotImplementedError()

    def close(self) -> None:
        return None


class HttpPutSink(PublishSink):
    """PUT raw bytes to `url_template.format(filename=...)`.

    The API answers 2xx with the public URL as plain text.
    """

    def __init__(
        self,
        url_template: str,
        fetcher: Fetcher | None = None,
        timeout: int = 120,
    ):
        self.url_template = url_template
        self.fetcher = fetcher or Fetcher(timeout=timeout, retries=0)
        self.timeout = timeout

    def put(self, filename: str, data: bytes) -> AttemptResult:
        url = self.url_template.format(filename=quote(filename))
        try:
            resp = self.fetcher.put(
                url,
                data,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout,
            )
        except _TRANSIENT_NETWORK_ERRORS as exc:
            return AttemptResult(AttemptOutcome.TRANSIENT, detail=str(exc))
        except requests.RequestException as exc:
            return AttemptResult(AttemptOutcome.PERMANENT, detail=str(exc))
        return classify_response(resp.status_code, resp.text)

    def close(self) -> None:
        self.fetcher.close()


class GCSSink(PublishSink):
    """Upload to a Google Cloud Storage bucket (requires google-cloud-storage).

    The returned URL is the public `https://storage.googleapis.com/...`
    location of the blob.
    """

    def __init__(self, bucket: str, prefix: str = "", client=None, project: Optional[str] = None):
        try:
            from google.api_core import exceptions as gexc
            from google.cloud import storage
        except Exception as exc:
            raise RuntimeError(
                "google-cloud-storage is required for publish_sink='gcs'. "
                "Install it with `pip install listing-relay[gcs]`"
            ) from exc
        self._gexc = gexc
        self.client = client or storage.Client(project=project)
        self.bucket_name = bucket
        self.prefix = prefix.strip("/")

    def put(self, filename: str, data: bytes) -> AttemptResult:
        blob_name = f"{self.prefix}/{filename}" if self.prefix else filename
        blob = self.client.bucket(self.bucket_name).blob(blob_name)
        gexc = self._gexc
        try:
            blob.upload_from_string(data, content_type="application/octet-stream")
        except gexc.ClientError as exc:
            return AttemptResult(
                AttemptOutcome.PERMANENT, status=getattr(exc, "code", None), detail=str(exc)
            )
        except (gexc.ServerError, gexc.RetryError, requests.RequestException) as exc:
            return AttemptResult(AttemptOutcome.TRANSIENT, detail=str(exc))
        url = f"https://storage.googleapis.com/{self.bucket_name}/{quote(blob_name)}"
        return AttemptResult(AttemptOutcome.SUCCESS, url=url, status=200)


class Publisher:
    """Deliver a local file to a `PublishSink` with bounded linear-backoff retries."""

    def __init__(
        self,
        sink: PublishSink,
        *,
        max_retries: int = 10,
        base_delay: float = 1.0,
        delay_increment: float = 5.0,
        pacer: Pacer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.sink = sink
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.delay_increment = delay_increment
        self.pacer = pacer or Pacer(0)
        self._sleep = sleep

    def publish(self, local_path: str | Path) -> PublishResult:
        path = Path(local_path)
        filename = safe_publish_name(path)
        if not path.is_file():
            raise PublishPermanent(filename, detail=f"file not found: {path}")

        data = path.read_bytes()
        logger.info("Uploading %s -> %s", path.name, filename)

        attempts = 0

        def attempt() -> AttemptResult:
            nonlocal attempts
            attempts += 1
            self.pacer.wait()
            logger.debug(
                "Attempt %d/%d uploading %s", attempts, self.max_retries, filename
            )
            return self.sink.put(filename, data)

        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_incrementing(start=self.base_delay, increment=self.delay_increment),
            retry=retry_if_result(lambda r: should_retry(r.outcome)),
            sleep=self._sleep,
            before_sleep=_log_retry,
            # exhausted: hand back the last transient result instead of RetryError
            retry_error_callback=lambda state: state.outcome.result(),
        )
        last: AttemptResult = retrying(attempt)

        if last.outcome is AttemptOutcome.SUCCESS:
            logger.info("Uploaded %s: %s", filename, last.url)
            return PublishResult(
                ok=True,
                external_url=last.url or "",
                filename=filename,
                attempts=attempts,
            )
        if not should_retry(last.outcome):
            logger.error(
                "Upload of %s rejected (status=%s): %s",
                filename,
                last.status,
                last.detail,
            )
            error_cls = InvalidResponse if last.invalid_response else PublishPermanent
            raise error_cls(filename, status=last.status, detail=last.detail)

        logger.error("All upload attempts for %s exhausted", filename)
        raise PublishExhausted(filename, attempts, last.detail)

    def close(self) -> None:
        self.sink.close()


def build_sink(config) -> PublishSink:
    """Create the sink selected by `PipelineConfig.publish_sink`."""
    if config.publish_sink == "gcs":
        return GCSSink(config.gcs_bucket, prefix=config.gcs_prefix)
    return HttpPutSink(
        config.upload_url_template,
        fetcher=Fetcher(
            timeout=config.publish_timeout, retries=0, ua_pool=[config.user_agent]
        ),
        timeout=config.publish_timeout,
    )
