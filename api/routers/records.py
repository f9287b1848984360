from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import Response

from core.csv_export import export_filename, to_csv
from data.database import get_session
from data.repositories import RecordRepository, db_to_record

router = APIRouter(prefix="/api/records", tags=["records"])

_SORT_PATTERN = "^(harvested_at|created_at|like_count|view_count)$"


def _record_to_dict(r) -> dict:
    return {
        "id": r.id,
        "record_key": r.record_key,
        **db_to_record(r).to_dict(),
        "harvestedAt": r.harvested_at.isoformat() if r.harvested_at else None,
    }


@router.get("")
async def list_records(
    handle: str | None = None,
    search: str | None = None,
    promoted: bool | None = None,
    sort: str = Query("harvested_at", pattern=_SORT_PATTERN),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    async with get_session() as session:
        repo = RecordRepository(session)
        rows = await repo.list_records(
            handle=handle,
            search=search,
            promoted=promoted,
            sort=sort,
            order=order,
            limit=limit,
            offset=offset,
        )
        return [_record_to_dict(r) for r in rows]


@router.get("/stats")
async def record_stats():
    async with get_session() as session:
        return await RecordRepository(session).get_stats()


@router.get("/export.csv")
async def export_records(
    handle: str | None = None,
    promoted: bool | None = None,
    limit: int = Query(1000, ge=1, le=10000),
):
    async with get_session() as session:
        rows = await RecordRepository(session).list_records(
            handle=handle, promoted=promoted, limit=limit
        )
        csv_text = to_csv(db_to_record(r) for r in rows)
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{export_filename()}"'
        },
    )
