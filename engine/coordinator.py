from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from core import markup
from core.extractor import RecordExtractor
from core.nodes import ItemNode
from engine.buffer import CompletionBuffer, Pending
from engine.state import HarvestState

log = logging.getLogger(__name__)


class HarvestCoordinator:
    """Extracts tweets from batches of nodes into the shared state.

    The cap is checked before every extraction, so a batch may be cut short
    once the target is met.  Records still waiting for their avatar go to
    the completion buffer instead of the output.
    """

    def __init__(
        self,
        state: HarvestState,
        extractor: RecordExtractor,
        buffer: CompletionBuffer,
        item_selector: str = markup.ITEM,
    ) -> None:
        self._state = state
        self._extractor = extractor
        self._buffer = buffer
        self._item_selector = item_selector
        self._scanned = False

    def on_initial_scan(self, document: ItemNode) -> int:
        if self._scanned:
            log.warning("Initial scan requested twice; ignoring")
            return 0
        self._scanned = True
        return self.harvest([document])

    def on_nodes_added(self, nodes: list[ItemNode]) -> int:
        return self.harvest(nodes)

    def harvest(self, roots: Iterable[ItemNode]) -> int:
        """Harvest every tweet under *roots*; returns how many were appended."""
        if self._state.done:
            return 0

        appended = 0
        incomplete: list[Pending] = []
        for node in self._items(roots):
            if self._state.capped:
                break
            record = self._extractor.extract(node)
            if record is None:
                continue
            if record.is_complete:
                if self._state.append(record):
                    appended += 1
            else:
                incomplete.append((node, record))

        if incomplete and not self._state.capped:
            self._buffer.hold(incomplete)
        if appended or incomplete:
            log.debug(
                "Harvested %d tweets (%d pending avatar), %d/%d collected",
                appended, len(incomplete), self._state.collected, self._state.target,
            )
        return appended

    def _items(self, roots: Iterable[ItemNode]) -> Iterator[ItemNode]:
        for root in roots:
            if root is None or not getattr(root, "is_element", False):
                continue
            yield from root.select(self._item_selector)
