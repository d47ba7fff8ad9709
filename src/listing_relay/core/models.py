"""Data model shared by the source, the ledger and the pipeline stages.

`Item` and `Artifact` are pydantic models so the ledger can persist them as
JSON with camelCase keys. `DeliveryOutcome` and `RunSummary` are transient
and never written to disk.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class Artifact(_Record):
    """A single downloadable file belonging to an Item.

    Dedup identity is `fetch_url`, never the local filename.
    """

    fetch_url: str
    name: Optional[str] = None
    size: Optional[str] = None
    upload_date: Optional[str] = None
    published_url: Optional[str] = None


class Item(_Record):
    """A discovered listing. Enrichment returns a copy, see `with_artifacts`."""

    id: str
    title: str
    url: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    artifacts: List[Artifact] = Field(default_factory=list)

    def with_artifacts(
        self,
        artifacts: List[Artifact],
        *,
        tags: Optional[List[str]] = None,
        description: Optional[str] = None,
    ) -> "Item":
        update: dict = {"artifacts": list(artifacts)}
        if tags is not None:
            update["tags"] = list(tags)
        if description is not None:
            update["description"] = description
        return self.model_copy(update=update)


class Stage(str, Enum):
    DISCOVERED = "discovered"
    FETCHING = "fetching"
    FETCHED = "fetched"
    PUBLISHING = "publishing"
    PUBLISHED = "published"
    NOTIFIED = "notified"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class DeliveryOutcome:
    item: Item
    artifact: Artifact
    stage: Stage = Stage.DISCOVERED
    fetched: bool = False
    published: bool = False
    external_url: Optional[str] = None
    error_kind: Optional[str] = None
    error: Optional[BaseException] = None
    local_path: Optional[Path] = None
    failed_stage: Optional[Stage] = None

    def fail(self, stage: Stage, error: BaseException) -> "DeliveryOutcome":
        self.failed_stage = stage
        self.stage = Stage.FAILED
        self.error = error
        self.error_kind = type(error).__name__
        return self


@dataclass
class RunSummary:
    total_found: int = 0
    new_items: int = 0
    processed: int = 0
    fetched: int = 0
    published: int = 0
    skipped_already_delivered: int = 0
    errors: int = 0
    ledger_write_failures: int = 0
    cancelled: bool = False
    failures: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class ArtifactEvent:
    """Per-artifact notification payload."""

    item_id: str
    title: str
    external_url: str
    tags: List[str]
    source_url: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class RunSummaryEvent:
    total_found: int
    fetched: int
    published: int
    errors: int
