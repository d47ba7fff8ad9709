"""
Notificação via webhook (formato Discord: `{"embeds": [...]}`).

Envia um embed por artifact publicado e um resumo no fim de cada scan. É
"best effort": erros viram `NotifyError` para quem chamou registrar no log,
mas nunca desfazem uma entrega.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import requests

from listing_relay.core.errors import NotifyError
from listing_relay.core.interfaces import Notifier
from listing_relay.core.models import ArtifactEvent, RunSummaryEvent
from listing_relay.core.scraping.fetcher import Fetcher

logger = logging.getLogger(__name__)

COLOR_OK = 0x00FF00
COLOR_WARN = 0xFF9900
FOOTER = {"text": "listing-relay"}


def build_artifact_embed(event: ArtifactEvent) -> dict:
    fields = [
        {"name": "📝 Title", "value": event.title, "inline": True},
        {"name": "🆔 ID", "value": event.item_id, "inline": True},
        {
            "name": "🌐 Published URL",
            "value": f"[Download]({event.external_url})",
            "inline": False,
        },
    ]
    if event.source_url:
        fields.append(
            {
                "name": "🔗 Original Topic",
                "value": f"[View source]({event.source_url})",
                "inline": False,
            }
        )
    if event.tags:
        fields.append(
            {"name": "🏷️ Tags", "value": ", ".join(event.tags[:10]), "inline": False}
        )
    embed = {
        "title": "🗺️ New item published!",
        "description": event.description or "New file available for download",
        "color": COLOR_OK,
        "fields": fields,
        "footer": FOOTER,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if event.image_url:
        embed["thumbnail"] = {"url": event.image_url}
    return embed


def build_summary_embed(event: RunSummaryEvent) -> dict:
    fields = [
        {"name": "🔍 Total Items Found", "value": str(event.total_found), "inline": True},
        {"name": "📥 Fetched", "value": str(event.fetched), "inline": True},
        {"name": "🚀 Published", "value": str(event.published), "inline": True},
    ]
    if event.errors > 0:
        fields.append({"name": "❌ Errors", "value": str(event.errors), "inline": True})
    return {
        "title": "📊 Scan Summary",
        "color": COLOR_WARN if event.errors > 0 else COLOR_OK,
        "fields": fields,
        "footer": FOOTER,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


class DiscordWebhook(Notifier):
    def __init__(
        self,
        url: str,
        fetcher: Optional[Fetcher] = None,
        timeout: int = 10,
        notify_on_new_items: bool = True,
        notify_on_run_complete: bool = True,
    ):
        self.url = url
        self.fetcher = fetcher or Fetcher(timeout=timeout, retries=0)
        self.notify_on_new_items = notify_on_new_items
        self.notify_on_run_complete = notify_on_run_complete

    def _send(self, embed: dict) -> None:
        try:
            resp = self.fetcher.post(self.url, json={"embeds": [embed]})
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise NotifyError(f"Webhook delivery failed: {exc}") from exc

    def notify_artifact(self, event: ArtifactEvent) -> None:
        if not self.notify_on_new_items:
            return
        self._send(build_artifact_embed(event))
        logger.debug("Webhook notification sent for: %s", event.title)

    def notify_summary(self, event: RunSummaryEvent) -> None:
        if not self.notify_on_run_complete:
            return
        self._send(build_summary_embed(event))
        logger.debug("Scan summary sent to webhook")

    def close(self) -> None:
        self.fetcher.close()
