from __future__ import annotations

import html
from contextlib import asynccontextmanager

import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core import markup
from core.nodes import ItemNode, SoupNode
from data.schema import Base
from scrapers.base import NodesAddedCallback, Subscription, TimelineHost

AVATAR = "https://pbs.twimg.com/profile_images/1/alice_normal.jpg"
SVG_PLACEHOLDER = "data:image/svg+xml;charset=utf-8,%3Csvg%3E%3C/svg%3E"


def tweet_html(
    tid: str | int,
    text: str | list[str] = "hello world",
    *,
    name: str = "Alice",
    handle: str = "@alice",
    avatar: str | None = AVATAR,
    created_at: str = "2024-05-01T12:00:00.000Z",
    href: str | None = None,
    replies: str = "3",
    retweets: str = "1.2K",
    likes: str = "2.5K",
    views: str | None = "3M",
    ad: bool = False,
) -> str:
    href = href or f"/alice/status/{tid}"
    segments = [text] if isinstance(text, str) else text
    text_html = "".join(
        f'<div data-testid="tweetText"><span>{html.escape(s)}</span></div>'
        for s in segments
    )
    avatar_html = (
        f'<div data-testid="UserAvatar-Container-alice"><img src="{html.escape(avatar)}"></div>'
        if avatar is not None
        else '<div data-testid="UserAvatar-Container-alice"></div>'
    )
    views_html = (
        f'<a href="{href}/analytics"><div><span><span>{views}</span></span></div></a>'
        if views is not None
        else ""
    )
    ad_html = "<div><span>Ad</span></div>" if ad else ""

    def action(test_id: str, label: str) -> str:
        return (
            f'<button data-testid="{test_id}"><div><span><span>{label}</span>'
            "</span></div></button>"
        )

    return (
        f'<article data-testid="tweet" data-harvest-id="{tid}">'
        f"{avatar_html}"
        '<div data-testid="User-Name">'
        f'<div dir="ltr"><span>{html.escape(name)}</span></div>'
        f'<a role="link" tabindex="-1" href="/alice"><span>{html.escape(handle)}</span></a>'
        "</div>"
        f'<a href="{href}"><time datetime="{created_at}">May 1</time></a>'
        f"{text_html}{ad_html}"
        '<div role="group">'
        f"{action('reply', replies)}{action('retweet', retweets)}{action('like', likes)}"
        f"{views_html}"
        "</div>"
        "</article>"
    )


def document(*tweets: str) -> str:
    return f"<html><body><main>{''.join(tweets)}</main></body></html>"


class FakeSubscription(Subscription):
    def __init__(self, host: FakeTimeline) -> None:
        self._host = host

    async def cancel(self) -> None:
        self._host.cancelled += 1
        self._host.callback = None


class FakeTimeline(TimelineHost):
    """In-memory timeline: each advance renders the next page of tweets.

    ``rerendered`` maps a harvest id to the HTML the tweet has by the time
    it is refreshed; ids listed in ``vanished`` are gone on refresh.
    """

    def __init__(
        self,
        initial: list[str] = (),
        pages: list[list[str]] = (),
        rerendered: dict[str, str] | None = None,
        vanished: set[str] | None = None,
    ) -> None:
        self.document_html = document(*initial)
        self.pages = [list(p) for p in pages]
        self.rerendered = rerendered or {}
        self.vanished = vanished or set()
        self.callback: NodesAddedCallback | None = None
        self.root_selector: str | None = None
        self.subscribed = 0
        self.cancelled = 0
        self.advances = 0
        self.refreshed: list[str] = []

    async def snapshot(self) -> ItemNode:
        return SoupNode.from_html(self.document_html)

    async def subscribe(
        self, root_selector: str, callback: NodesAddedCallback
    ) -> Subscription:
        self.subscribed += 1
        self.root_selector = root_selector
        self.callback = callback
        return FakeSubscription(self)

    async def advance(self) -> None:
        self.advances += 1
        if self.pages:
            self.render(self.pages.pop(0))

    def render(self, fragments: list[str]) -> None:
        if self.callback is not None:
            self.callback([SoupNode.from_html(f) for f in fragments])

    async def refresh(self, node: ItemNode) -> ItemNode | None:
        harvest_id = node.attr("data-harvest-id")
        self.refreshed.append(harvest_id)
        if harvest_id in self.vanished:
            return None
        if harvest_id in self.rerendered:
            return SoupNode.from_html(self.rerendered[harvest_id]).select_one(markup.ITEM)
        return node


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, expire_on_commit=False)

    @asynccontextmanager
    async def get_session():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    yield get_session
    await engine.dispose()
