"""Error taxonomy for the relay pipeline.

Only `DiscoveryError` aborts a run. Everything else is caught at the artifact
boundary by the orchestrator and counted in the run summary.
"""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base class for every error raised by the pipeline."""


class DiscoveryError(RelayError):
    """The item source is unavailable; there is nothing to process."""

    def __init__(self, source: str, cause: Optional[BaseException] = None):
        self.source = source
        self.cause = cause
        super().__init__(f"Discovery failed for {source}: {cause}")


class FetchFailed(RelayError):
    def __init__(self, artifact_id: str, cause: Optional[BaseException] = None):
        self.artifact_id = artifact_id
        self.cause = cause
        super().__init__(f"Failed to fetch {artifact_id}: {cause}")


class PublishError(RelayError):
    def __init__(self, filename: str, message: str):
        self.filename = filename
        super().__init__(message)


class PublishPermanent(PublishError):
    """The sink rejected the request (4xx) or the file cannot be sent at all."""

    def __init__(
        self, filename: str, status: Optional[int] = None, detail: str = ""
    ):
        self.status = status
        self.detail = detail
        msg = f"Sink rejected {filename}"
        if status is not None:
            msg += f" (HTTP {status})"
        if detail:
            msg += f": {detail}"
        super().__init__(filename, msg)


class InvalidResponse(PublishPermanent):
    """2xx answer whose body is not an absolute URL."""


class PublishExhausted(PublishError):
    def __init__(self, filename: str, attempts: int, last_detail: str = ""):
        self.attempts = attempts
        self.last_detail = last_detail
        super().__init__(
            filename,
            f"All {attempts} upload attempts for {filename} exhausted"
            + (f": {last_detail}" if last_detail else ""),
        )


class LedgerIOError(RelayError):
    def __init__(self, path: str, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        super().__init__(f"Could not persist ledger to {path}: {cause}")


class NotifyError(RelayError):
    pass
