"""Live timeline host backed by a Playwright Chromium page.

Every tweet article the page renders is tagged with a ``data-harvest-id``
before its HTML leaves the browser.  Snapshots and mutation batches are
parsed into :class:`~core.nodes.SoupNode` objects; the tag lets a pending
node be re-read later, after its avatar had time to load.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core import markup
from core.nodes import ItemNode, SoupNode
from scrapers.base import NodesAddedCallback, Subscription, TimelineHost

log = logging.getLogger(__name__)

HARVEST_ID_ATTR = "data-harvest-id"
_BINDING = "__harvestNodesAdded"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# Installed as an init script.  __harvestTag tags every tweet article at or
# below a node; __harvestObserve (re)installs the mutation observer.
_PAGE_HELPERS_JS = """
window.__harvestTag = (node, itemSelector, attr) => {
  window.__harvestSeq = window.__harvestSeq || 0;
  const items = node.matches && node.matches(itemSelector)
    ? [node] : Array.from(node.querySelectorAll ? node.querySelectorAll(itemSelector) : []);
  for (const el of items) {
    if (!el.hasAttribute(attr)) el.setAttribute(attr, String(++window.__harvestSeq));
  }
};
window.__harvestObserve = (binding, rootSelector, itemSelector, attr) => {
  if (window.__harvestObserver) window.__harvestObserver.disconnect();
  const root = document.querySelector(rootSelector) || document.body;
  const observer = new MutationObserver((mutations) => {
    const added = [];
    for (const m of mutations) {
      for (const node of m.addedNodes) {
        if (node.nodeType !== Node.ELEMENT_NODE) continue;
        window.__harvestTag(node, itemSelector, attr);
        added.push(node.outerHTML);
      }
    }
    if (added.length) window[binding](added);
  });
  observer.observe(root, { childList: true, subtree: true });
  window.__harvestObserver = observer;
};
"""

_SNAPSHOT_JS = """
([itemSelector, attr]) => {
  window.__harvestTag(document.documentElement, itemSelector, attr);
  return document.documentElement.outerHTML;
}
"""

_OBSERVE_JS = """
([binding, rootSelector, itemSelector, attr]) => {
  window.__harvestObserve(binding, rootSelector, itemSelector, attr);
}
"""

# Snapshot and observer installation run in the same synchronous turn.
_WATCH_JS = """
([binding, rootSelector, itemSelector, attr]) => {
  window.__harvestTag(document.documentElement, itemSelector, attr);
  window.__harvestObserve(binding, rootSelector, itemSelector, attr);
  return document.documentElement.outerHTML;
}
"""

_DISCONNECT_JS = """
() => {
  if (window.__harvestObserver) window.__harvestObserver.disconnect();
  window.__harvestObserver = null;
}
"""

_REFRESH_JS = """
([attr, id]) => {
  const el = document.querySelector(`[${attr}="${id}"]`);
  return el ? el.outerHTML : null;
}
"""

_ADVANCE_JS = "() => window.scrollBy(0, window.innerHeight)"


class _PageSubscription(Subscription):
    def __init__(self, host: BrowserTimeline) -> None:
        self._host = host

    async def cancel(self) -> None:
        self._host._callback = None
        page = self._host._page
        if page is not None and not page.is_closed():
            await page.evaluate(_DISCONNECT_JS)


class BrowserTimeline(TimelineHost):
    """Drives a real timeline page.

    Use as an async context manager::

        async with BrowserTimeline("https://x.com/home") as host:
            result = await harvest_timeline(host, 50)
    """

    def __init__(
        self,
        url: str,
        *,
        headless: bool = True,
        storage_state: str | None = None,
        nav_timeout_ms: int = 60000,
        item_selector: str = markup.ITEM,
    ) -> None:
        self._url = url
        self._headless = headless
        self._storage_state = storage_state
        self._nav_timeout_ms = nav_timeout_ms
        self._item_selector = item_selector
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._callback: NodesAddedCallback | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("BrowserTimeline is not open")
        return self._page

    async def __aenter__(self) -> BrowserTimeline:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def open(self) -> None:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self._headless)
            context_kwargs: dict[str, Any] = {
                "viewport": {"width": 1280, "height": 1600},
                "user_agent": USER_AGENT,
            }
            if self._storage_state:
                if not Path(self._storage_state).exists():
                    raise FileNotFoundError(
                        f"Browser storage_state file not found: {self._storage_state}"
                    )
                context_kwargs["storage_state"] = self._storage_state
            self._context = await self._browser.new_context(**context_kwargs)
            await self._context.add_init_script(_PAGE_HELPERS_JS)
            self._page = await self._context.new_page()
            await self._page.expose_function(_BINDING, self._dispatch)

            log.info("Opening timeline %s", self._url)
            await self._page.goto(
                self._url, wait_until="domcontentloaded", timeout=self._nav_timeout_ms
            )
            try:
                await self._page.wait_for_selector(
                    self._item_selector, timeout=self._nav_timeout_ms
                )
            except PlaywrightTimeoutError:
                log.warning(
                    "No tweets rendered on %s after %d ms; continuing anyway",
                    self._url, self._nav_timeout_ms,
                )
        except Exception:
            await self.close()
            raise

    async def close(self) -> None:
        self._callback = None
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = self._context = self._browser = self._playwright = None

    # ── TimelineHost ────────────────────────────────────────────────

    async def snapshot(self) -> ItemNode:
        html = await self.page.evaluate(
            _SNAPSHOT_JS, [self._item_selector, HARVEST_ID_ATTR]
        )
        return SoupNode.from_html(html)

    async def subscribe(
        self, root_selector: str, callback: NodesAddedCallback
    ) -> Subscription:
        self._callback = callback
        await self.page.evaluate(
            _OBSERVE_JS,
            [_BINDING, root_selector, self._item_selector, HARVEST_ID_ATTR],
        )
        return _PageSubscription(self)

    async def watch(
        self, root_selector: str, callback: NodesAddedCallback
    ) -> tuple[ItemNode, Subscription]:
        self._callback = callback
        html = await self.page.evaluate(
            _WATCH_JS,
            [_BINDING, root_selector, self._item_selector, HARVEST_ID_ATTR],
        )
        return SoupNode.from_html(html), _PageSubscription(self)

    async def advance(self) -> None:
        await self.page.evaluate(_ADVANCE_JS)

    async def refresh(self, node: ItemNode) -> ItemNode | None:
        harvest_id = node.attr(HARVEST_ID_ATTR)
        if not harvest_id or self._page is None or self._page.is_closed():
            return None
        html = await self._page.evaluate(_REFRESH_JS, [HARVEST_ID_ATTR, harvest_id])
        if html is None:
            return None
        return SoupNode.from_html(html).select_one(f'[{HARVEST_ID_ATTR}="{harvest_id}"]')

    def _dispatch(self, fragments: list[str]) -> None:
        callback = self._callback
        if callback is None:
            return
        callback([SoupNode.from_html(html) for html in fragments])
