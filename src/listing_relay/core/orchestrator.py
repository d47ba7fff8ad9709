"""
Orquestrador do pipeline: descobre itens, decide o que é novo, baixa, publica
e registra o resultado no ledger.

Per artifact:

    Discovered -> (skip if delivered) -> Fetching -> Fetched -> Publishing
               -> Published -> Notified

Any stage may end an artifact in `Failed`; siblings and the run carry on.
Fetch and publish run on a thread pool whose width is the fetch concurrency
(work is admitted in submission order). Their outcomes come back to the
orchestrator thread, which is the only writer of the ledger: it marks the
artifact delivered, then sends the best-effort notification.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from listing_relay.core.config import PipelineConfig
from listing_relay.core.errors import (
    DiscoveryError,
    FetchFailed,
    LedgerIOError,
    PublishError,
)
from listing_relay.core.interfaces import ItemSource, Notifier, NullNotifier
from listing_relay.core.models import (
    Artifact,
    ArtifactEvent,
    DeliveryOutcome,
    Item,
    RunSummary,
    RunSummaryEvent,
    Stage,
)
from listing_relay.core.scraping.downloader import Downloader
from listing_relay.core.scraping.fetcher import Fetcher
from listing_relay.core.scraping.pacing import Pacer
from listing_relay.services.ledger import Ledger
from listing_relay.services.naming import delivery_title, local_filename
from listing_relay.services.uploader import Publisher, build_sink

logger = logging.getLogger(__name__)

_Pending = Dict[Future, Tuple[Item, Artifact]]


class Pipeline:
    """Owns the ledger and the stage services for the duration of a run."""

    def __init__(
        self,
        source: ItemSource,
        ledger: Ledger,
        downloader: Downloader,
        publisher: Publisher,
        notifier: Optional[Notifier] = None,
        *,
        output_dir: str | Path = "./output",
        concurrency: Optional[int] = None,
        delete_local_after_publish: bool = False,
        manifest_path: Optional[str | Path] = None,
    ):
        self.source = source
        self.ledger = ledger
        self.downloader = downloader
        self.publisher = publisher
        self.notifier = notifier or NullNotifier()
        self.output_dir = Path(output_dir)
        self.concurrency = concurrency or downloader.concurrency
        self.delete_local_after_publish = delete_local_after_publish
        self.manifest_path = Path(manifest_path) if manifest_path else None
        self._opened = False

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        source: Optional[ItemSource] = None,
        notifier: Optional[Notifier] = None,
    ) -> "Pipeline":
        """Build every collaborator explicitly from one config object."""
        from listing_relay.scrapers import get_scraper_for_url
        from listing_relay.services.webhook import DiscordWebhook

        ua_pool = [config.user_agent]
        downloader = Downloader(
            Fetcher(timeout=config.fetch_timeout, retries=0, ua_pool=ua_pool),
            concurrency=config.fetch_concurrency,
            retry_attempts=config.fetch_retry_attempts,
            retry_delay=config.fetch_retry_delay,
            pacer=Pacer(config.fetch_pace_seconds, name="fetch"),
        )
        publisher = Publisher(
            build_sink(config),
            max_retries=config.publish_max_retries,
            base_delay=config.publish_base_delay,
            delay_increment=config.publish_delay_increment,
            pacer=Pacer(config.publish_pace_seconds, name="publish"),
        )
        if source is None:
            Plugin = get_scraper_for_url(config.source_url)
            source = Plugin(
                config.source_url,
                config.source_params,
                fetcher=Fetcher(timeout=config.fetch_timeout, ua_pool=ua_pool),
            )
        if notifier is None and config.webhook_url:
            notifier = DiscordWebhook(
                config.webhook_url,
                notify_on_new_items=config.notify_on_new_items,
                notify_on_run_complete=config.notify_on_run_complete,
            )
        return cls(
            source,
            Ledger(config.ledger_path),
            downloader,
            publisher,
            notifier,
            output_dir=config.output_dir,
            concurrency=config.fetch_concurrency,
            delete_local_after_publish=config.delete_local_after_publish,
            manifest_path=config.manifest_path if config.write_manifest else None,
        )

    # ------------------------------------------------------------ lifecycle
    def open(self) -> "Pipeline":
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.ledger.load()
        self._opened = True
        return self

    def close(self) -> None:
        for service in (self.source, self.downloader, self.publisher, self.notifier):
            try:
                service.close()
            except Exception as exc:
                logger.warning("Error closing %s: %s", type(service).__name__, exc)
        self._opened = False

    def __enter__(self) -> "Pipeline":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------ run
    def discover(self) -> List[Item]:
        try:
            return list(self.source.discover())
        except DiscoveryError:
            raise
        except Exception as exc:
            raise DiscoveryError(type(self.source).__name__, exc) from exc

    def run(
        self,
        items: Optional[List[Item]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> RunSummary:
        """Process every undelivered artifact once. Only discovery errors raise."""
        if not self._opened:
            self.open()
        summary = RunSummary()

        if items is None:
            items = self.discover()
        summary.total_found = len(items)
        if not items:
            logger.warning("No items reported by the source")

        try:
            summary.new_items = self.ledger.record_discovered(items)
        except LedgerIOError as exc:
            self._ledger_failure(summary, exc)

        pending: _Pending = {}
        in_flight: set = set()
        with ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="relay"
        ) as pool:
            for index, item in enumerate(items, start=1):
                if cancel is not None and cancel.is_set():
                    summary.cancelled = True
                    break
                if index % 100 == 0 or index <= 20:
                    logger.info("Processing item %d/%d: %s", index, len(items), item.title)

                enriched = self._enrich(item, summary)
                for artifact in (enriched.artifacts if enriched else []):
                    if self.ledger.is_delivered(artifact.fetch_url):
                        summary.skipped_already_delivered += 1
                        continue
                    if artifact.fetch_url in in_flight:
                        continue
                    in_flight.add(artifact.fetch_url)
                    future = pool.submit(self._deliver, enriched, artifact, cancel)
                    pending[future] = (enriched, artifact)

                self._drain(pending, summary, block=False)
            self._drain(pending, summary, block=True)

        self._finish(summary)
        return summary

    def _enrich(self, item: Item, summary: RunSummary) -> Optional[Item]:
        try:
            enriched = self.source.enrich(item)
        except Exception as exc:
            logger.error("Error getting details for item %s: %s", item.id, exc)
            summary.errors += 1
            summary.failures.append(f"enrich: {item.id}: {exc}")
            return None
        try:
            self.ledger.record_enrichment(enriched)
        except LedgerIOError as exc:
            self._ledger_failure(summary, exc)
        return enriched

    def _deliver(
        self, item: Item, artifact: Artifact, cancel: Optional[threading.Event]
    ) -> DeliveryOutcome:
        """Fetch then publish one artifact. Runs on a worker thread; no ledger writes."""
        outcome = DeliveryOutcome(item=item, artifact=artifact)
        if cancel is not None and cancel.is_set():
            outcome.stage = Stage.CANCELLED
            return outcome

        destination = self.output_dir / local_filename(item, artifact)
        outcome.stage = Stage.FETCHING
        try:
            fetched = self.downloader.fetch(artifact, destination)
        except FetchFailed as exc:
            return outcome.fail(Stage.FETCHING, exc)
        except Exception as exc:
            logger.exception("Unexpected error fetching %s", artifact.fetch_url)
            return outcome.fail(Stage.FETCHING, exc)
        outcome.fetched = True
        outcome.local_path = fetched.local_path
        outcome.stage = Stage.FETCHED

        outcome.stage = Stage.PUBLISHING
        try:
            published = self.publisher.publish(fetched.local_path)
        except PublishError as exc:
            return outcome.fail(Stage.PUBLISHING, exc)
        except Exception as exc:
            logger.exception("Unexpected error publishing %s", fetched.local_path)
            return outcome.fail(Stage.PUBLISHING, exc)
        outcome.published = True
        outcome.external_url = published.external_url
        outcome.stage = Stage.PUBLISHED
        return outcome

    def _drain(self, pending: _Pending, summary: RunSummary, block: bool) -> None:
        ready = as_completed(list(pending)) if block else [f for f in pending if f.done()]
        for future in ready:
            item, artifact = pending.pop(future)
            try:
                outcome = future.result()
            except Exception as exc:
                outcome = DeliveryOutcome(item=item, artifact=artifact).fail(
                    Stage.FAILED, exc
                )
            self._complete(outcome, summary)

    def _complete(self, outcome: DeliveryOutcome, summary: RunSummary) -> None:
        """Record one artifact's result. Runs on the orchestrator thread only."""
        title = delivery_title(outcome.item, outcome.artifact)
        if outcome.stage is Stage.CANCELLED:
            summary.cancelled = True
            return

        summary.processed += 1
        if outcome.fetched:
            summary.fetched += 1

        if outcome.stage is Stage.FAILED:
            summary.errors += 1
            stage = outcome.failed_stage.value if outcome.failed_stage else "unknown"
            summary.failures.append(f"{stage}: {outcome.artifact.fetch_url}: {outcome.error}")
            logger.error("%s failed at %s: %s", title, stage, outcome.error)
            return

        try:
            self.ledger.mark_delivered(
                outcome.artifact.fetch_url, published_url=outcome.external_url
            )
        except LedgerIOError as exc:
            self._ledger_failure(summary, exc)
        summary.published += 1
        logger.info("Published: %s -> %s", title, outcome.external_url)

        event = ArtifactEvent(
            item_id=outcome.item.id,
            title=title,
            external_url=outcome.external_url or "",
            tags=list(outcome.item.tags),
            source_url=outcome.item.url,
            description=outcome.item.description,
            image_url=outcome.item.image_url,
        )
        try:
            self.notifier.notify_artifact(event)
            outcome.stage = Stage.NOTIFIED
        except Exception as exc:
            logger.warning("Notification error for %s: %s", title, exc)

        if self.delete_local_after_publish and outcome.local_path is not None:
            try:
                outcome.local_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not delete %s: %s", outcome.local_path, exc)

    def _ledger_failure(self, summary: RunSummary, exc: LedgerIOError) -> None:
        summary.ledger_write_failures += 1
        logger.error("%s; continuing with reduced durability", exc)

    def _finish(self, summary: RunSummary) -> None:
        logger.info(
            "Run finished: processed=%d fetched=%d published=%d skipped=%d errors=%d%s",
            summary.processed,
            summary.fetched,
            summary.published,
            summary.skipped_already_delivered,
            summary.errors,
            " (cancelled)" if summary.cancelled else "",
        )
        try:
            self.notifier.notify_summary(
                RunSummaryEvent(
                    total_found=summary.total_found,
                    fetched=summary.fetched,
                    published=summary.published,
                    errors=summary.errors,
                )
            )
        except Exception as exc:
            logger.warning("Error sending run summary: %s", exc)

        if self.manifest_path is not None:
            try:
                self.ledger.write_manifest(self.manifest_path)
            except OSError as exc:
                logger.error("Error creating manifest: %s", exc)
