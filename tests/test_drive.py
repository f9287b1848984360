import asyncio

import pytest
from conftest import FakeTimeline, tweet_html

from core.extractor import RecordExtractor
from engine.buffer import CompletionBuffer
from engine.coordinator import HarvestCoordinator
from engine.drive import (
    IDLE_LIMIT,
    TARGET_REACHED,
    DriveLoop,
    DriveState,
    harvest_timeline,
)
from engine.observer import ChangeObserver
from engine.sinks import OutputSink
from engine.state import CompletionCell, HarvestState

FAST = {"tick_interval": 0.001, "recheck_delay": 0.01, "origin": "https://x.com"}


class RecordingSink(OutputSink):
    def __init__(self):
        self.saved = []

    async def save(self, result):
        self.saved.append(result)


class BrokenSink(OutputSink):
    async def save(self, result):
        raise OSError("disk full")


def _loop(host: FakeTimeline, target: int, max_idle_ticks: int = 0, sinks=()):
    state = HarvestState(target)
    extractor = RecordExtractor("https://x.com")
    buffer = CompletionBuffer(state, extractor, host.refresh, delay=0.01)
    coordinator = HarvestCoordinator(state, extractor, buffer)
    observer = ChangeObserver(host, coordinator)
    return DriveLoop(
        host,
        state,
        observer,
        sinks=sinks,
        tick_interval=0.001,
        max_idle_ticks=max_idle_ticks,
    )


@pytest.mark.asyncio
async def test_initial_scan_can_satisfy_the_target():
    host = FakeTimeline(initial=[tweet_html(1), tweet_html(2), tweet_html(3)])
    sink = RecordingSink()

    result = await harvest_timeline(host, 2, [sink], max_idle_ticks=0, **FAST)

    assert len(result.records) == 2
    assert result.reason == TARGET_REACHED
    assert host.advances == 0
    assert host.subscribed == 1
    assert host.cancelled == 1
    assert len(result.csv.split("\n")) == 3
    assert sink.saved == [result]


@pytest.mark.asyncio
async def test_scrolls_until_target():
    host = FakeTimeline(
        initial=[tweet_html(1)],
        pages=[[tweet_html(2), tweet_html(3)], [tweet_html(4), tweet_html(5)]],
    )

    result = await harvest_timeline(host, 4, max_idle_ticks=0, **FAST)

    assert [r.permalink for r in result.records] == [
        f"https://x.com/alice/status/{i}" for i in range(1, 5)
    ]
    assert host.advances == 2
    assert host.cancelled == 1
    assert result.extra["target"] == 4


@pytest.mark.asyncio
async def test_idle_limit_stops_a_dry_timeline():
    host = FakeTimeline(initial=[tweet_html(1)])
    loop = _loop(host, 5, max_idle_ticks=3)

    result = await loop.run()

    assert result.reason == IDLE_LIMIT
    assert len(result.records) == 1
    assert loop.phase is DriveState.DONE
    assert loop.ticks == 3
    assert host.advances == 2
    assert host.cancelled == 1


@pytest.mark.asyncio
async def test_late_avatar_is_collected_while_scrolling():
    host = FakeTimeline(
        initial=[tweet_html(1, avatar=None)],
        rerendered={"1": tweet_html(1)},
    )

    result = await harvest_timeline(host, 1, max_idle_ticks=500, **FAST)

    assert result.reason == TARGET_REACHED
    assert len(result.records) == 1
    assert result.records[0].author_image_url is not None
    assert host.refreshed == ["1"]


@pytest.mark.asyncio
async def test_zero_target_yields_header_only():
    host = FakeTimeline(initial=[tweet_html(1)])

    result = await harvest_timeline(host, 0, max_idle_ticks=0, **FAST)

    assert result.records == []
    assert result.csv.startswith("text,authorDisplayName")
    assert "\n" not in result.csv
    assert host.advances == 0


@pytest.mark.asyncio
async def test_mutations_after_done_are_ignored():
    host = FakeTimeline(initial=[tweet_html(1)])
    loop = _loop(host, 1)

    result = await loop.run()
    host.callback = loop._observer._on_nodes_added
    host.render([tweet_html(2)])

    assert len(result.records) == 1
    assert loop._state.collected == 1


@pytest.mark.asyncio
async def test_concurrent_runs_share_one_result():
    host = FakeTimeline(initial=[tweet_html(1)], pages=[[tweet_html(2)]])
    loop = _loop(host, 2)

    first, second = await asyncio.gather(loop.run(), loop.run())

    assert first is second
    assert host.subscribed == 1
    assert host.cancelled == 1


class DeadTimeline(FakeTimeline):
    async def advance(self):
        raise RuntimeError("page crashed")


@pytest.mark.asyncio
async def test_concurrent_runs_share_a_failure():
    loop = _loop(DeadTimeline(initial=[tweet_html(1)]), 5)

    first, second = await asyncio.wait_for(
        asyncio.gather(loop.run(), loop.run(), return_exceptions=True), 2
    )

    assert isinstance(first, RuntimeError)
    assert second is first


@pytest.mark.asyncio
async def test_cancelled_run_releases_the_subscription():
    host = FakeTimeline(initial=[tweet_html(1)])
    loop = _loop(host, 5)

    task = asyncio.create_task(loop.run())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert host.cancelled == 1
    assert loop._state.done
    host.callback = loop._observer._on_nodes_added
    host.render([tweet_html(2)])
    assert loop._state.collected == 1


@pytest.mark.asyncio
async def test_waiter_on_a_cancelled_run_is_cancelled_too():
    loop = _loop(FakeTimeline(initial=[tweet_html(1)]), 5)

    task = asyncio.create_task(loop.run())
    await asyncio.sleep(0.01)
    waiter = asyncio.create_task(loop.run())
    await asyncio.sleep(0.01)
    task.cancel()

    results = await asyncio.wait_for(
        asyncio.gather(task, waiter, return_exceptions=True), 2
    )
    assert all(isinstance(r, asyncio.CancelledError) for r in results)


@pytest.mark.asyncio
async def test_failing_sink_does_not_lose_the_result():
    host = FakeTimeline(initial=[tweet_html(1)])
    sink = RecordingSink()

    result = await harvest_timeline(host, 1, [BrokenSink(), sink], max_idle_ticks=0, **FAST)

    assert len(result.records) == 1
    assert sink.saved == [result]


@pytest.mark.asyncio
async def test_host_failure_propagates():
    host = DeadTimeline(initial=[tweet_html(1)])
    loop = _loop(host, 5)

    with pytest.raises(RuntimeError, match="page crashed"):
        await loop.run()

    assert loop._state.done
    assert host.cancelled == 1


@pytest.mark.asyncio
async def test_completion_cell_resolves_once():
    cell = CompletionCell()

    assert not cell.resolved
    assert cell.resolve("first") is True
    assert cell.resolve("second") is False
    assert cell.resolved
    assert await cell.wait() == "first"
    assert cell.fail(RuntimeError("late")) is False


@pytest.mark.asyncio
async def test_completion_cell_failure_reaches_waiters():
    cell = CompletionCell()
    error = RuntimeError("boom")

    assert cell.fail(error) is True
    assert cell.resolve("value") is False
    with pytest.raises(RuntimeError) as info:
        await cell.wait()
    assert info.value is error


def test_negative_target_is_rejected():
    with pytest.raises(ValueError):
        HarvestState(-1)
