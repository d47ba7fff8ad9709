"""
Fluxo de sincronização (explicado de forma simples)

Este arquivo define os "flows" do Prefect que coordenam um scan completo:

1. Valida a configuração do job (`PipelineConfig`).
2. Monta o pipeline: fonte de itens (plugin do site), ledger, downloader,
    publisher e webhook.
3. Descobre os itens da página de listagem (task com retries).
4. Para cada artifact ainda não entregue: baixa, publica no sink externo,
    marca no ledger e notifica.
5. Devolve o resumo do run como dicionário.

Re-running is always safe: anything already delivered is skipped.
`listing_monitor_flow` repeats the scan every N minutes.
"""

from __future__ import annotations

import time
from typing import Optional

from prefect import flow, get_run_logger

from listing_relay.core.config import PipelineConfig
from listing_relay.core.orchestrator import Pipeline
from listing_relay.core.scraping.prefect_tasks import (
    discover_items_task,
    relay_items_task,
)

_sleep = time.sleep


def build_pipeline(config: PipelineConfig) -> Pipeline:
    """Factory kept at module level so tests can monkeypatch it."""
    return Pipeline.from_config(config)


@flow(name="Listing Sync", log_prints=True)
def listing_sync_flow(config_dict: dict) -> dict:
    """One scan: discover, fetch, publish, notify.

    config_dict: must conform to `PipelineConfig`.
    """
    logger = get_run_logger()
    try:
        config = PipelineConfig(**config_dict)
        logger.info("Config valid for job: %s", config.job_name)
    except Exception as e:
        logger.error("Invalid config: %s", e)
        raise

    pipeline = build_pipeline(config)
    with pipeline:
        stats = pipeline.ledger.stats()
        logger.info(
            "Ledger: %d items found, %d delivered, %d with pending files",
            stats.total_found,
            stats.total_delivered,
            stats.remaining,
        )
        items = discover_items_task(pipeline)
        summary = relay_items_task(pipeline, items)

    logger.info(
        "Job %s completed. %d files published, %d errors.",
        config.job_name,
        summary["published"],
        summary["errors"],
    )
    return summary


@flow(name="Listing Monitor", log_prints=True)
def listing_monitor_flow(
    config_dict: dict,
    interval_minutes: int = 60,
    max_runs: Optional[int] = None,
) -> list:
    """Run `listing_sync_flow` repeatedly; a failed scan is logged and retried later."""
    logger = get_run_logger()
    if interval_minutes < 1:
        raise ValueError("interval_minutes must be a positive number")

    summaries: list = []
    runs = 0
    while max_runs is None or runs < max_runs:
        runs += 1
        logger.info("Starting scheduled scan #%d", runs)
        try:
            summaries.append(listing_sync_flow(config_dict))
            logger.info("Scheduled scan completed")
        except Exception as exc:
            logger.error("Error during scheduled scan: %s", exc)
        if max_runs is not None and runs >= max_runs:
            break
        logger.info("Waiting %d minutes until next scan...", interval_minutes)
        _sleep(interval_minutes * 60)
    return summaries


if __name__ == "__main__":
    payload = {
        "job_name": "rustmaps_sync",
        "environment": "dev",
        "source_url": "https://rustmaps.ru",
        "output_dir": "./output",
        "fetch_concurrency": 3,
    }
    listing_sync_flow(payload)
