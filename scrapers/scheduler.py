from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config.settings import settings
from core.models import HarvestResult
from data.database import get_session
from data.repositories import HarvestRunRepository
from engine.sinks import CsvFileSink, DatabaseSink
from scrapers.timeline import TimelineScraper

log = logging.getLogger(__name__)


class HarvestBusyError(RuntimeError):
    """A harvest is already running; the browser is single-use."""


class HarvestScheduler:
    """Runs timeline harvests periodically and on demand, one at a time."""

    def __init__(self, broadcast_fn=None, scraper: TimelineScraper | None = None) -> None:
        self._broadcast = broadcast_fn
        self._scheduler = AsyncIOScheduler()
        self._scraper = scraper or TimelineScraper(
            sinks=[CsvFileSink(settings.HARVEST_OUTPUT_DIR), DatabaseSink()]
        )
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def start(self) -> None:
        minutes = settings.HARVEST_INTERVAL_MINUTES
        if minutes > 0:
            self._scheduler.add_job(
                self._scheduled_run,
                "interval",
                minutes=minutes,
                id="harvest_timeline",
                replace_existing=True,
            )
        self._scheduler.start()
        log.info(
            "Harvest scheduler started (interval: %s)",
            f"{minutes} min" if minutes > 0 else "manual only",
        )

    def stop(self) -> None:
        self._scheduler.shutdown(wait=False)

    async def run_now(self, max_records: int | None = None) -> HarvestResult:
        """Manually trigger a harvest; raises HarvestBusyError if one is running."""
        if self._lock.locked():
            raise HarvestBusyError("A harvest is already in progress")
        return await self._run_harvest(max_records)

    def get_status(self) -> dict:
        jobs = []
        for job in self._scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run": job.next_run_time.isoformat()
                    if job.next_run_time
                    else None,
                }
            )
        return {"running": self._scheduler.running, "busy": self.busy, "jobs": jobs}

    async def _scheduled_run(self) -> None:
        if self._lock.locked():
            log.info("Skipping scheduled harvest: previous run still in progress")
            return
        await self._run_harvest(None, raise_errors=False)

    async def _run_harvest(
        self, max_records: int | None, raise_errors: bool = True
    ) -> HarvestResult | None:
        async with self._lock:
            started_at = datetime.now(timezone.utc)
            t0 = time.monotonic()
            log.info("Starting harvest")
            try:
                result = await self._scraper.scrape(max_records)
            except Exception as e:
                log.error("Harvest failed: %s", e)
                await self._log_failure(started_at, time.monotonic() - t0, max_records, e)
                await self._notify(
                    {"event": "harvest_failed", "error": str(e)[:200]}
                )
                if raise_errors:
                    raise
                return None

        await self._notify(
            {
                "event": "harvest_complete",
                "records": len(result.records),
                "new": result.extra.get("records_new", 0),
                "reason": result.reason,
                "csv_path": result.extra.get("csv_path"),
            }
        )
        return result

    async def _log_failure(
        self,
        started_at: datetime,
        duration: float,
        max_records: int | None,
        error: Exception,
    ) -> None:
        try:
            async with get_session() as session:
                await HarvestRunRepository(session).log_run(
                    status="failed",
                    target=max_records or settings.HARVEST_MAX_RECORDS,
                    records_harvested=0,
                    records_new=0,
                    error_message=str(error),
                    duration_seconds=duration,
                    started_at=started_at,
                )
        except Exception as e:
            log.error("Failed to record failed harvest run: %s", e)

    async def _notify(self, event: dict) -> None:
        if self._broadcast:
            await self._broadcast(event)
