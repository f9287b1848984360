"""Timeline Harvester entry point.

    python main.py                      # serve the API (default)
    python main.py harvest --count 50   # one harvest, then exit
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging

import uvicorn

from api.app import create_app
from api.routers.harvest_control import set_scheduler
from config.settings import settings
from data.database import init_db
from engine.sinks import CsvFileSink, DatabaseSink, OutputSink
from scrapers.scheduler import HarvestScheduler
from scrapers.timeline import TimelineScraper

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
)
log = logging.getLogger(__name__)

app = create_app()


@app.on_event("startup")
async def on_startup() -> None:
    log.info("Initialising database…")
    await init_db()

    log.info("Starting harvest scheduler…")
    scheduler = HarvestScheduler(broadcast_fn=app.state.broadcaster.broadcast)
    app.state.scheduler = scheduler
    set_scheduler(scheduler)
    scheduler.start()


@app.on_event("shutdown")
async def on_shutdown() -> None:
    if hasattr(app.state, "scheduler"):
        app.state.scheduler.stop()
        log.info("Harvest scheduler stopped.")


async def run_once(args: argparse.Namespace) -> int:
    sinks: list[OutputSink] = [CsvFileSink(args.output)]
    if not args.no_db:
        await init_db()
        sinks.append(DatabaseSink())

    scraper = TimelineScraper(sinks, url=args.url, headless=not args.headful)
    result = await scraper.scrape(args.count)
    print(
        f"Harvested {len(result.records)} tweets ({result.reason}) "
        f"in {result.duration_seconds:.1f}s"
    )
    if "csv_path" in result.extra:
        print(f"CSV: {result.extra['csv_path']}")
    if args.json:
        print(json.dumps(result.json, ensure_ascii=False, indent=2))
    return 0 if result.reason == "target_reached" else 1


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Harvest tweets from a timeline")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the API server (default)")

    harvest = sub.add_parser("harvest", help="Run a single harvest and exit")
    harvest.add_argument(
        "--count", type=int, default=settings.HARVEST_MAX_RECORDS,
        help=f"Tweets to collect (default: {settings.HARVEST_MAX_RECORDS})",
    )
    harvest.add_argument("--url", default=settings.TIMELINE_URL, help="Timeline URL")
    harvest.add_argument(
        "--output", default=settings.HARVEST_OUTPUT_DIR, help="CSV output directory"
    )
    harvest.add_argument("--headful", action="store_true", help="Show the browser")
    harvest.add_argument("--no-db", action="store_true", help="Skip the database")
    harvest.add_argument(
        "--json", action="store_true", help="Print the harvested tweets as JSON"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "harvest":
        return asyncio.run(run_once(args))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.DASHBOARD_PORT,
        reload=False,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
