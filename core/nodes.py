"""The node capability the extractor is written against.

Hosts hand the engine opaque item nodes; anything implementing
:class:`ItemNode` works, whether it wraps a live DOM, a parsed snapshot or a
test double.  :class:`SoupNode` is the implementation used by the browser
host: outer HTML snapshots parsed with BeautifulSoup.
"""

from __future__ import annotations

from typing import Protocol

from bs4 import BeautifulSoup, Tag


class ItemNode(Protocol):
    is_element: bool

    def select(self, css: str) -> list[ItemNode]: ...

    def select_one(self, css: str) -> ItemNode | None: ...

    def text(self) -> str: ...

    def attr(self, name: str) -> str | None: ...

    def closest(self, tag: str) -> ItemNode | None: ...


class SoupNode:
    """:class:`ItemNode` over a BeautifulSoup ``Tag``."""

    def __init__(self, tag: Tag) -> None:
        self._tag = tag

    @classmethod
    def from_html(cls, html: str) -> SoupNode:
        return cls(BeautifulSoup(html, "html.parser"))

    @property
    def tag(self) -> Tag:
        return self._tag

    @property
    def is_element(self) -> bool:
        return isinstance(self._tag, Tag)

    def select(self, css: str) -> list[SoupNode]:
        return [SoupNode(t) for t in self._tag.select(css)]

    def select_one(self, css: str) -> SoupNode | None:
        found = self._tag.select_one(css)
        return SoupNode(found) if found is not None else None

    def text(self) -> str:
        return self._tag.get_text()

    def attr(self, name: str) -> str | None:
        value = self._tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def closest(self, tag: str) -> SoupNode | None:
        if self._tag.name == tag:
            return self
        parent = self._tag.find_parent(tag)
        return SoupNode(parent) if parent is not None else None

    def __repr__(self) -> str:
        return f"<SoupNode {self._tag.name} {self._tag.attrs!r}>"
