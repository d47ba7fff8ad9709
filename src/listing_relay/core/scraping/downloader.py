"""
Downloader (Fetch Stage)

Este arquivo contém o componente responsável por baixar os arquivos (artifacts)
de cada item descoberto. A ideia principal é:

- baixar o arquivo em pedaços (stream), para não ocupar muita memória;
- gravar primeiro em `<destino>.part` e só renomear para o destino final quando
    o download terminou, assim um arquivo no destino é sempre completo;
- em qualquer erro (conexão, timeout, HTTP não-2xx) apagar o arquivo parcial e
    tentar de novo, com um intervalo fixo entre tentativas;
- limitar quantos downloads rodam ao mesmo tempo (semáforo);
- calcular um hash (SHA-256) durante o download.

If the destination already exists and is non-empty it is treated as fetched
and no request is made; that is how an interrupted earlier run is resumed.
The downloader never touches the ledger: marking is the orchestrator's job.
"""

from __future__ import annotations

import hashlib
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from listing_relay.core.errors import FetchFailed
from listing_relay.core.models import Artifact
from listing_relay.core.scraping.fetcher import Fetcher
from listing_relay.core.scraping.pacing import Pacer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class FetchResult:
    ok: bool
    local_path: Path
    size: int
    sha256: Optional[str] = None
    skipped: bool = False


def format_bytes(num: int) -> str:
    if num <= 0:
        return "0 B"
    size = float(num)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


class Downloader:
    """Classe responsável por baixar um artifact e devolver metadados.

    - `concurrency`: quantos downloads podem rodar ao mesmo tempo; chamadas
      excedentes esperam no semáforo até uma vaga abrir.
    - `retry_attempts`: número total de tentativas por artifact.
    - `retry_delay`: segundos de espera entre tentativas (tenacity).

    The semaphore bounds concurrency but does not order its waiters.
    FIFO admission comes from the caller's queue: `Pipeline` submits work to
    a thread pool of the same width, whose work queue is first-in first-out.
    Direct concurrent callers of `fetch` are admitted in arbitrary order.

    A classe recebe opcionalmente um `Fetcher` (que encapsula as requisições
    HTTP). Isso facilita testes: podemos injetar respostas controladas.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        *,
        concurrency: int = 3,
        retry_attempts: int = 2,
        retry_delay: float = 5.0,
        chunk_size: int = 8192,
        pacer: Pacer | None = None,
        progress: ProgressCallback | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        self.fetcher = fetcher or Fetcher(retries=0)
        self.concurrency = concurrency
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.chunk_size = chunk_size
        self.pacer = pacer or Pacer(0)
        self.progress = progress
        self._sleep = sleep
        self._slots = threading.BoundedSemaphore(concurrency)

    def fetch(self, artifact: Artifact, destination: str | Path) -> FetchResult:
        """Download `artifact.fetch_url` to `destination`.

        Raises `FetchFailed` once every attempt has failed.
        """
        dest = Path(destination)
        if dest.exists() and dest.stat().st_size > 0:
            logger.debug("File already exists, skipping download: %s", dest)
            return FetchResult(
                ok=True, local_path=dest, size=dest.stat().st_size, skipped=True
            )

        dest.parent.mkdir(parents=True, exist_ok=True)
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_exception_type((requests.RequestException, OSError)),
            sleep=self._sleep,
            before_sleep=self._log_failed_attempt,
            reraise=True,
        )
        try:
            with self._slots:
                return retrying(self._stream_to, artifact.fetch_url, dest)
        except (requests.RequestException, OSError) as exc:
            raise FetchFailed(artifact.fetch_url, exc) from exc

    def _log_failed_attempt(self, state: RetryCallState) -> None:
        logger.debug(
            "Download error (attempt %d/%d): %s",
            state.attempt_number,
            self.retry_attempts,
            state.outcome.exception() if state.outcome else None,
        )

    def _stream_to(self, url: str, dest: Path) -> FetchResult:
        part = dest.with_name(dest.name + ".part")
        hasher = hashlib.sha256()
        total = 0
        self.pacer.wait()
        try:
            resp = self.fetcher.stream_get(url)
            with resp as r:
                r.raise_for_status()
                expected = int(r.headers.get("Content-Length") or 0)
                last_logged = -5
                with open(part, "wb") as fh:
                    for chunk in r.iter_content(chunk_size=self.chunk_size):
                        if not chunk:
                            continue
                        fh.write(chunk)
                        hasher.update(chunk)
                        total += len(chunk)
                        if self.progress is not None:
                            self.progress(total, expected)
                        if expected:
                            pct = int(total * 100 / expected)
                            if pct >= last_logged + 5:
                                logger.debug(
                                    "%s: %d%% (%s/%s)",
                                    dest.name,
                                    pct,
                                    format_bytes(total),
                                    format_bytes(expected),
                                )
                                last_logged = pct
            if total == 0:
                raise requests.exceptions.ContentDecodingError(
                    f"Empty response body from {url}"
                )
            os.replace(part, dest)
        except BaseException:
            part.unlink(missing_ok=True)
            raise

        logger.info("Downloaded: %s (%s)", dest.name, format_bytes(total))
        return FetchResult(
            ok=True, local_path=dest, size=total, sha256=hasher.hexdigest()
        )

    def close(self) -> None:
        self.fetcher.close()
