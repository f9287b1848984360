from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Integer, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert
from sqlalchemy.ext.asyncio import AsyncSession

from core.models import FIELD_NAMES, Record
from data.schema import DBHarvestRun, DBRecord

# Engagement counters refreshed when a tweet is seen again.
_MUTABLE_COLUMNS = (
    "author_image_url",
    "reply_count",
    "share_count",
    "like_count",
    "view_count",
)


def db_to_record(row: DBRecord) -> Record:
    return Record(**{attr: getattr(row, attr) for attr in FIELD_NAMES})


# ── RecordRepository ─────────────────────────────────────────────────


class RecordRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def upsert_many(self, records: list[Record]) -> int:
        """Insert or refresh harvested tweets. Returns count of new rows."""
        if not records:
            return 0

        keys = {r.record_key() for r in records}
        existing = set(
            (
                await self._s.scalars(
                    select(DBRecord.record_key).where(DBRecord.record_key.in_(keys))
                )
            ).all()
        )

        now = datetime.now(timezone.utc)
        for record in records:
            values = {attr: getattr(record, attr) for attr in FIELD_NAMES}
            stmt = (
                sqlite_upsert(DBRecord)
                .values(record_key=record.record_key(), harvested_at=now, **values)
                .on_conflict_do_update(
                    index_elements=["record_key"],
                    set_={
                        **{col: values[col] for col in _MUTABLE_COLUMNS},
                        "harvested_at": now,
                    },
                )
            )
            await self._s.execute(stmt)
        return len(keys - existing)

    async def list_records(
        self,
        *,
        handle: str | None = None,
        search: str | None = None,
        promoted: bool | None = None,
        sort: str = "harvested_at",
        order: str = "desc",
        limit: int = 50,
        offset: int = 0,
    ) -> list[DBRecord]:
        q = select(DBRecord)
        if handle:
            q = q.where(DBRecord.author_handle == handle)
        if search:
            q = q.where(DBRecord.text.ilike(f"%{search}%"))
        if promoted is not None:
            q = q.where(DBRecord.is_promoted.is_(promoted))

        sort_col = getattr(DBRecord, sort, DBRecord.harvested_at)
        q = q.order_by(sort_col.desc() if order == "desc" else sort_col.asc())
        q = q.limit(limit).offset(offset)
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def get_stats(self) -> dict:
        total = await self._s.scalar(select(func.count(DBRecord.id))) or 0
        promoted = (
            await self._s.scalar(
                select(func.count(DBRecord.id)).where(DBRecord.is_promoted.is_(True))
            )
            or 0
        )
        authors = (
            await self._s.scalar(select(func.count(func.distinct(DBRecord.author_handle))))
            or 0
        )
        last = await self._s.scalar(select(func.max(DBRecord.harvested_at)))

        top_q = (
            select(DBRecord.author_handle, func.count(DBRecord.id).label("n"))
            .where(DBRecord.author_handle.is_not(None))
            .group_by(DBRecord.author_handle)
            .order_by(func.count(DBRecord.id).desc())
            .limit(10)
        )
        rows = (await self._s.execute(top_q)).all()

        return {
            "total_records": total,
            "promoted_records": promoted,
            "unique_authors": authors,
            "last_harvested_at": last.isoformat() if last else None,
            "top_authors": [{"handle": r[0], "count": r[1]} for r in rows],
        }


# ── HarvestRunRepository ─────────────────────────────────────────────


class HarvestRunRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._s = session

    async def log_run(
        self,
        *,
        status: str,
        target: int,
        records_harvested: int,
        records_new: int,
        duration_seconds: float,
        started_at: datetime,
        stop_reason: str = "",
        error_message: str = "",
    ) -> None:
        run = DBHarvestRun(
            status=status,
            target=target,
            records_harvested=records_harvested,
            records_new=records_new,
            stop_reason=stop_reason,
            error_message=error_message[:500],
            duration_seconds=round(duration_seconds, 2),
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
        )
        self._s.add(run)

    async def recent_runs(self, limit: int = 20) -> list[DBHarvestRun]:
        q = (
            select(DBHarvestRun)
            .order_by(DBHarvestRun.started_at.desc())
            .limit(limit)
        )
        result = await self._s.execute(q)
        return list(result.scalars().all())

    async def run_stats(self) -> dict:
        """Total runs, success rate and tweets added across all runs."""
        row = (
            await self._s.execute(
                select(
                    func.count(DBHarvestRun.id),
                    func.sum(func.cast(DBHarvestRun.status == "success", Integer)),
                    func.max(DBHarvestRun.started_at),
                    func.sum(DBHarvestRun.records_new),
                )
            )
        ).one()
        total_runs = row[0] or 0
        return {
            "total_runs": total_runs,
            "success_rate": round((row[1] or 0) / max(total_runs, 1) * 100, 0),
            "last_run": row[2].isoformat() if row[2] else None,
            "total_records": row[3] or 0,
        }
