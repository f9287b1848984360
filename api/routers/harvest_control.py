from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from scrapers.scheduler import HarvestBusyError

router = APIRouter(prefix="/api/harvest", tags=["harvest"])

# The scheduler reference is injected by main.py at startup
_scheduler = None


def set_scheduler(scheduler) -> None:
    global _scheduler
    _scheduler = scheduler


@router.post("/run")
async def trigger_harvest(count: int | None = Query(None, ge=1, le=5000)):
    if _scheduler is None:
        raise HTTPException(503, "Scheduler not initialized")

    try:
        result = await _scheduler.run_now(count)
    except HarvestBusyError as e:
        raise HTTPException(409, str(e))
    except Exception as e:
        raise HTTPException(502, f"Harvest failed: {e}")

    return {
        "records": len(result.records),
        "reason": result.reason,
        "records_new": result.extra.get("records_new", 0),
        "csv_path": result.extra.get("csv_path"),
        "duration_seconds": round(result.duration_seconds, 2),
    }


@router.get("/status")
async def scheduler_status():
    if _scheduler is None:
        return {"running": False, "busy": False, "jobs": []}
    return _scheduler.get_status()
