from __future__ import annotations

import logging
from collections.abc import Sequence

from config.settings import settings
from core.models import HarvestResult
from engine.drive import harvest_timeline
from engine.sinks import OutputSink
from scrapers.browser import BrowserTimeline

log = logging.getLogger(__name__)


class TimelineScraper:
    """Runs one harvest against the live timeline in a fresh browser."""

    source_name = "timeline"

    def __init__(
        self,
        sinks: Sequence[OutputSink] = (),
        *,
        url: str | None = None,
        headless: bool | None = None,
    ) -> None:
        self._sinks = list(sinks)
        self._url = url or settings.TIMELINE_URL
        self._headless = settings.BROWSER_HEADLESS if headless is None else headless

    async def scrape(self, max_records: int | None = None) -> HarvestResult:
        target = settings.HARVEST_MAX_RECORDS if max_records is None else max_records
        log.info("Harvesting %d tweets from %s", target, self._url)
        async with BrowserTimeline(
            self._url,
            headless=self._headless,
            storage_state=settings.BROWSER_STORAGE_STATE or None,
            nav_timeout_ms=settings.BROWSER_NAV_TIMEOUT_MS,
        ) as host:
            return await harvest_timeline(host, target, self._sinks)
