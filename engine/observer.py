from __future__ import annotations

import logging

from core.nodes import ItemNode
from engine.coordinator import HarvestCoordinator
from scrapers.base import Subscription, TimelineHost

log = logging.getLogger(__name__)


class ChangeObserver:
    """Feeds the coordinator the rendered timeline, then every node added to it.

    :meth:`start` takes the document snapshot and the mutation subscription
    in one host call, so no node can be rendered between the two.  Batches
    the host delivers before the initial scan has run are held back and
    forwarded right after it.
    """

    def __init__(
        self,
        host: TimelineHost,
        coordinator: HarvestCoordinator,
        root_selector: str = "main",
    ) -> None:
        self._host = host
        self._coordinator = coordinator
        self._root_selector = root_selector
        self._subscription: Subscription | None = None
        self._scanned = False
        self._backlog: list[list[ItemNode]] = []
        self._stopped = False

    @property
    def active(self) -> bool:
        return self._subscription is not None and not self._stopped

    async def start(self) -> None:
        if self._subscription is not None or self._stopped:
            return
        document, subscription = await self._host.watch(
            self._root_selector, self._on_nodes_added
        )
        if self._stopped:
            await subscription.cancel()
            return
        self._subscription = subscription
        self._coordinator.on_initial_scan(document)
        self._scanned = True
        backlog, self._backlog = self._backlog, []
        for nodes in backlog:
            self._coordinator.on_nodes_added(nodes)

    async def stop(self) -> bool:
        """Cancel the subscription; only the first call does anything."""
        if self._stopped:
            return False
        self._stopped = True
        self._backlog = []
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.cancel()
            log.debug("Unsubscribed from timeline mutations")
        return True

    def _on_nodes_added(self, nodes: list[ItemNode]) -> None:
        if self._stopped:
            return
        added = [n for n in nodes if n is not None and getattr(n, "is_element", False)]
        if not added:
            return
        if not self._scanned:
            self._backlog.append(added)
            return
        self._coordinator.on_nodes_added(added)
