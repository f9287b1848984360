from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from core.csv_export import export_filename
from core.models import HarvestResult
from data.database import get_session
from data.repositories import HarvestRunRepository, RecordRepository

log = logging.getLogger(__name__)


class OutputSink(ABC):
    @abstractmethod
    async def save(self, result: HarvestResult) -> None:
        """Persist a finished harvest."""
        ...


class CsvFileSink(OutputSink):
    """Writes the CSV text to ``tweets-<timestamp>.csv`` in a directory."""

    def __init__(self, output_dir: str | Path) -> None:
        self._dir = Path(output_dir)

    async def save(self, result: HarvestResult) -> None:
        path = self._dir / export_filename(datetime.now(timezone.utc))
        await asyncio.to_thread(self._write, path, result.csv)
        result.extra["csv_path"] = str(path)
        log.info("Wrote %d tweets to %s", len(result.records), path)

    @staticmethod
    def _write(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


class DatabaseSink(OutputSink):
    """Upserts the records and logs the run."""

    def __init__(
        self,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = get_session,
    ) -> None:
        self._session_factory = session_factory

    async def save(self, result: HarvestResult) -> None:
        async with self._session_factory() as session:
            new_count = await RecordRepository(session).upsert_many(result.records)
            await HarvestRunRepository(session).log_run(
                status="success" if result.reason == "target_reached" else "partial",
                target=result.extra.get("target", len(result.records)),
                records_harvested=len(result.records),
                records_new=new_count,
                stop_reason=result.reason,
                duration_seconds=result.duration_seconds,
                started_at=result.started_at,
            )
        result.extra["records_new"] = new_count
        log.info(
            "Stored %d tweets (%d new)", len(result.records), new_count
        )
