"""Tarefas Prefect que usam os componentes do pipeline.

Este arquivo adapta o `Pipeline` (descoberta, fetch, publish) para o modelo
de execução do Prefect:

- a descoberta vira uma task com retries: se o site estiver fora do ar, o
    Prefect tenta de novo antes de desistir do run;
- o relay dos artifacts vira outra task, sem retries, porque o próprio
    pipeline já isola e conta as falhas de cada artifact.

Pipelines hold sessions and locks, so result caching is disabled.
"""

from __future__ import annotations

from typing import List

from prefect import get_run_logger, task
from prefect.cache_policies import NONE

from listing_relay.core.models import Item
from listing_relay.core.orchestrator import Pipeline


@task(name="discover_items", retries=2, retry_delay_seconds=3, cache_policy=NONE)
def discover_items_task(pipeline: Pipeline) -> List[Item]:
    logger = get_run_logger()
    items = pipeline.discover()
    logger.info("Discovered %d items", len(items))
    return items


@task(name="relay_items", retries=0, cache_policy=NONE)
def relay_items_task(pipeline: Pipeline, items: List[Item]) -> dict:
    logger = get_run_logger()
    summary = pipeline.run(items=items)
    logger.info(
        "Relayed: fetched=%d published=%d skipped=%d errors=%d",
        summary.fetched,
        summary.published,
        summary.skipped_already_delivered,
        summary.errors,
    )
    return summary.as_dict()
