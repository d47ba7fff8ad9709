from abc import ABC, abstractmethod
from typing import List

from listing_relay.core.models import ArtifactEvent, Item, RunSummaryEvent


class ItemSource(ABC):
    """
    Interface (Contrato) que toda fonte de itens deve seguir.

    Isso garante que o orquestrador não precise mudar quando surgir um novo site.
    """

    @abstractmethod
    def discover(self) -> List[Item]:
        """Return the items currently listed by the source, in listing order.

        Item ids must be stable across calls. Artifacts may be empty here;
        `enrich` attaches them.
        """
        raise NotImplementedError()

    @abstractmethod
    def enrich(self, item: Item) -> Item:
        """Return a copy of `item` with its downloadable artifacts attached."""
        raise NotImplementedError()

    def close(self) -> None:
        """Release network resources. Default is a no-op."""
        return None


class Notifier(ABC):
    """Best-effort sink for post-publish events. Failures never affect delivery."""

    @abstractmethod
    def notify_artifact(self, event: ArtifactEvent) -> None:
        raise NotImplementedError()

    @abstractmethod
    def notify_summary(self, event: RunSummaryEvent) -> None:
        raise NotImplementedError()

    def close(self) -> None:
        return None


class NullNotifier(Notifier):
    """Used when no webhook is configured."""

    def notify_artifact(self, event: ArtifactEvent) -> None:
        return None

    def notify_summary(self, event: RunSummaryEvent) -> None:
        return None
