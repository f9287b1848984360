"""Drive loop: scrolls the timeline until enough tweets are harvested.

The loop alternates between advancing the host and checking progress.
Three things touch the shared :class:`~engine.state.HarvestState`: this
loop, the mutation callback of the change observer and the completion
buffer's delayed re-checks.  Each of them changes state only inside a
synchronous transition (``on_tick``, ``on_initial_scan``,
``on_nodes_added``, ``on_deferred_recheck``), never across an ``await``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from config.settings import settings
from core.csv_export import to_csv
from core.extractor import RecordExtractor
from core.models import HarvestResult
from engine.buffer import CompletionBuffer
from engine.coordinator import HarvestCoordinator
from engine.observer import ChangeObserver
from engine.sinks import OutputSink
from engine.state import CompletionCell, HarvestState
from scrapers.base import TimelineHost

log = logging.getLogger(__name__)

TARGET_REACHED = "target_reached"
IDLE_LIMIT = "idle_limit"


class DriveState(str, enum.Enum):
    ADVANCING = "advancing"
    CHECK = "check"
    DONE = "done"


class DriveLoop:
    def __init__(
        self,
        host: TimelineHost,
        state: HarvestState,
        observer: ChangeObserver,
        sinks: Sequence[OutputSink] = (),
        tick_interval: float = 0.1,
        max_idle_ticks: int = 0,
    ) -> None:
        self._host = host
        self._state = state
        self._observer = observer
        self._sinks = list(sinks)
        self._tick_interval = tick_interval
        self._max_idle_ticks = max_idle_ticks

        self.phase = DriveState.ADVANCING
        self.reason: str | None = None
        self.ticks = 0
        self._idle_ticks = 0
        self._last_collected = 0
        self._cell: CompletionCell[HarvestResult] | None = None

    async def run(self) -> HarvestResult:
        if self._cell is not None:
            return await self._cell.wait()
        self._cell = CompletionCell()
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()

        try:
            await self._observer.start()
            self._last_collected = self._state.collected

            while self.on_tick() is not DriveState.DONE:
                await self._host.advance()
                await asyncio.sleep(self._tick_interval)

            await self._finish(started_at, time.monotonic() - t0)
        except BaseException as e:
            self._state.done = True
            self._cell.fail(e)
            if isinstance(e, asyncio.CancelledError):
                log.warning("Harvest cancelled after %d ticks", self.ticks)
            else:
                log.error("Harvest aborted: %s", e)
            await self._observer.stop()
            raise
        return await self._cell.wait()

    def on_tick(self) -> DriveState:
        """CHECK transition: decide between another advance and DONE."""
        if self.phase is DriveState.DONE:
            return self.phase
        self.phase = DriveState.CHECK
        self.ticks += 1

        collected = self._state.collected
        if collected > self._last_collected:
            self._idle_ticks = 0
            self._last_collected = collected
        else:
            self._idle_ticks += 1

        if self._state.capped:
            self._complete(TARGET_REACHED)
        elif self._max_idle_ticks and self._idle_ticks >= self._max_idle_ticks:
            log.warning(
                "No new tweets after %d advances; stopping with %d/%d",
                self._idle_ticks, collected, self._state.target,
            )
            self._complete(IDLE_LIMIT)
        else:
            self.phase = DriveState.ADVANCING
        return self.phase

    def _complete(self, reason: str) -> None:
        self.reason = reason
        self._state.done = True
        del self._state.records[self._state.target:]
        self.phase = DriveState.DONE

    async def _finish(self, started_at: datetime, duration: float) -> None:
        await self._observer.stop()
        records = list(self._state.records)
        result = HarvestResult(
            records=records,
            csv=to_csv(records),
            reason=self.reason or TARGET_REACHED,
            started_at=started_at,
            duration_seconds=duration,
            extra={"target": self._state.target, "ticks": self.ticks},
        )
        for sink in self._sinks:
            try:
                await sink.save(result)
            except Exception as e:
                log.error("Output sink %s failed: %s", type(sink).__name__, e)
        self._cell.resolve(result)
        log.info(
            "Harvest done: %d tweets | %s | %d ticks | %.1fs",
            len(records), result.reason, self.ticks, duration,
        )


async def harvest_timeline(
    host: TimelineHost,
    max_records: int = 100,
    sinks: Sequence[OutputSink] = (),
    *,
    origin: str | None = None,
    root_selector: str | None = None,
    tick_interval: float | None = None,
    recheck_delay: float | None = None,
    max_idle_ticks: int | None = None,
) -> HarvestResult:
    """Harvest up to *max_records* tweets from *host*.

    Unset options fall back to the ``TIMELINE_*`` / ``HARVEST_*`` settings.
    """
    if recheck_delay is None:
        recheck_delay = settings.HARVEST_RECHECK_DELAY_SECONDS
    if tick_interval is None:
        tick_interval = settings.HARVEST_TICK_SECONDS
    if max_idle_ticks is None:
        max_idle_ticks = settings.HARVEST_MAX_IDLE_TICKS

    state = HarvestState(max_records)
    extractor = RecordExtractor(origin or settings.TIMELINE_ORIGIN)
    buffer = CompletionBuffer(state, extractor, host.refresh, delay=recheck_delay)
    coordinator = HarvestCoordinator(state, extractor, buffer)
    observer = ChangeObserver(
        host, coordinator, root_selector or settings.TIMELINE_ROOT_SELECTOR
    )
    loop = DriveLoop(
        host,
        state,
        observer,
        sinks=sinks,
        tick_interval=tick_interval,
        max_idle_ticks=max_idle_ticks,
    )
    return await loop.run()
