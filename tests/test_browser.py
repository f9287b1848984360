import pytest
from conftest import AVATAR, document, tweet_html

from core import markup
from core.extractor import RecordExtractor
from core.nodes import SoupNode
from scrapers import browser
from scrapers.browser import HARVEST_ID_ATTR, BrowserTimeline


class FakePage:
    """Stands in for a Playwright page: canned ``evaluate`` results per script."""

    def __init__(self, responses=None):
        self.responses = responses or {}
        self.calls = []
        self.closed = False

    async def evaluate(self, script, arg=None):
        self.calls.append((script, arg))
        value = self.responses.get(script)
        return value(arg) if callable(value) else value

    def is_closed(self):
        return self.closed


def _host(page: FakePage) -> BrowserTimeline:
    host = BrowserTimeline("https://x.com/home")
    host._page = page
    return host


def _item(html: str) -> SoupNode:
    return SoupNode.from_html(html).select_one(markup.ITEM)


@pytest.mark.asyncio
async def test_watch_snapshots_and_subscribes_in_one_call():
    page = FakePage({browser._WATCH_JS: document(tweet_html(1), tweet_html(2))})
    received = []

    doc, subscription = await _host(page).watch("main", received.append)

    assert len(doc.select(markup.ITEM)) == 2
    assert page.calls == [
        (browser._WATCH_JS, ["__harvestNodesAdded", "main", markup.ITEM, HARVEST_ID_ATTR])
    ]
    assert subscription is not None


@pytest.mark.asyncio
async def test_dispatch_parses_fragments_until_cancelled():
    page = FakePage({browser._WATCH_JS: document()})
    host = _host(page)
    received = []
    _, subscription = await host.watch("main", received.append)

    host._dispatch([tweet_html(5), "<div>spinner</div>"])

    assert len(received) == 1
    nodes = received[0]
    assert len(nodes) == 2
    record = RecordExtractor("https://x.com").extract(nodes[0].select_one(markup.ITEM))
    assert record.permalink == "https://x.com/alice/status/5"

    await subscription.cancel()
    host._dispatch([tweet_html(6)])

    assert len(received) == 1
    assert page.calls[-1] == (browser._DISCONNECT_JS, None)


@pytest.mark.asyncio
async def test_refresh_rereads_the_tagged_article():
    def rerender(arg):
        return tweet_html(7) if arg == [HARVEST_ID_ATTR, "7"] else None

    page = FakePage({browser._REFRESH_JS: rerender})
    host = _host(page)
    extractor = RecordExtractor("https://x.com")
    stale = _item(tweet_html(7, avatar=None))

    assert extractor.extract_avatar(stale) is None
    fresh = await host.refresh(stale)

    assert fresh.attr(HARVEST_ID_ATTR) == "7"
    assert extractor.extract_avatar(fresh) == AVATAR


@pytest.mark.asyncio
async def test_refresh_of_a_recycled_article_is_none():
    page = FakePage({browser._REFRESH_JS: None})
    host = _host(page)

    assert await host.refresh(_item(tweet_html(8))) is None


@pytest.mark.asyncio
async def test_refresh_without_harvest_id_or_page():
    page = FakePage()
    host = _host(page)
    untagged = _item('<article data-testid="tweet"></article>')

    assert await host.refresh(untagged) is None
    assert page.calls == []

    page.closed = True
    assert await host.refresh(_item(tweet_html(9))) is None
    assert page.calls == []


@pytest.mark.asyncio
async def test_advance_scrolls_one_viewport():
    page = FakePage()
    await _host(page).advance()
    assert page.calls == [(browser._ADVANCE_JS, None)]


@pytest.mark.asyncio
async def test_closed_host_refuses_calls():
    host = BrowserTimeline("https://x.com/home")
    with pytest.raises(RuntimeError):
        await host.advance()
