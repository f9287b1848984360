from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from core.extractor import RecordExtractor
from core.models import Record
from core.nodes import ItemNode
from engine.state import HarvestState

log = logging.getLogger(__name__)

Pending = tuple[ItemNode | None, Record]
RefreshFn = Callable[[ItemNode], Awaitable[ItemNode | None]]


class CompletionBuffer:
    """Holds records whose avatar had not loaded yet.

    Each batch handed to :meth:`hold` gets exactly one delayed re-check.
    Only the avatar lookup is repeated; a record whose avatar resolves is
    promoted, one that still lacks it is dropped for good.
    """

    def __init__(
        self,
        state: HarvestState,
        extractor: RecordExtractor,
        refresh: RefreshFn,
        delay: float = 0.5,
    ) -> None:
        self._state = state
        self._extractor = extractor
        self._refresh = refresh
        self._delay = delay
        self._tasks: set[asyncio.Task] = set()

    def hold(self, pairs: list[Pending]) -> None:
        if not pairs or self._state.done or self._state.capped:
            return
        self._state.pending += len(pairs)
        task = asyncio.get_running_loop().create_task(self._recheck_later(pairs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def on_deferred_recheck(self, pairs: list[Pending]) -> int:
        """Promote every pair whose avatar now resolves; drop the rest."""
        self._state.pending -= len(pairs)
        promoted = 0
        for node, record in pairs:
            if self._state.done or self._state.capped:
                break
            url = self._avatar(node)
            if not url:
                continue
            record.author_image_url = url
            if self._state.append(record):
                promoted += 1
        if len(pairs) - promoted:
            log.debug(
                "Re-check promoted %d of %d pending records", promoted, len(pairs)
            )
        return promoted

    async def _recheck_later(self, pairs: list[Pending]) -> None:
        await asyncio.sleep(self._delay)
        if self._state.done or self._state.capped:
            self._state.pending -= len(pairs)
            return

        current: list[Pending] = []
        for node, record in pairs:
            try:
                fresh = await self._refresh(node) if node is not None else None
            except Exception as e:
                log.warning("Could not refresh pending tweet node: %s", e)
                fresh = None
            current.append((fresh, record))
        self.on_deferred_recheck(current)

    def _avatar(self, node: ItemNode | None) -> str | None:
        if node is None:
            return None
        try:
            return self._extractor.extract_avatar(node)
        except Exception as e:
            log.debug("Avatar lookup failed on %r: %s", node, e)
            return None
