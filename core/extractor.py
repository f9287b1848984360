from __future__ import annotations

import logging
from functools import partial
from typing import Callable, TypeVar

from core import markup
from core.models import Record
from core.nodes import ItemNode
from core.normalize import is_placeholder_image, parse_count, to_absolute_url

log = logging.getLogger(__name__)

T = TypeVar("T")


class RecordExtractor:
    """Turns one tweet node into a :class:`Record`.

    Extraction never raises: every field is looked up independently and a
    failed lookup leaves that field at its default.  The only ``None``
    result is for input that is not an element at all.  The node is read,
    never modified, so the same node state always yields the same record.
    """

    def __init__(self, origin: str) -> None:
        self._origin = origin

    def extract(self, node: ItemNode | None) -> Record | None:
        if node is None or not getattr(node, "is_element", False):
            return None

        field = self._field
        display_name, handle = field(node, "identity", self._identity, (None, None))
        replies, shares, likes = (
            field(node, test_id, partial(self._action_count, test_id=test_id), 0)
            for test_id in (markup.REPLY, markup.SHARE, markup.LIKE)
        )
        return Record(
            text=field(node, "text", self._text, None),
            author_display_name=display_name,
            author_handle=handle,
            author_image_url=field(node, "avatar", self.extract_avatar, None),
            created_at=field(node, "created_at", self._created_at, None),
            permalink=field(node, "permalink", self._permalink, None),
            is_promoted=field(node, "promoted", self._is_promoted, False),
            reply_count=replies,
            share_count=shares,
            like_count=likes,
            view_count=field(node, "views", self._view_count, 0),
        )

    def extract_avatar(self, node: ItemNode) -> str | None:
        """Avatar photo URL, or ``None`` while only a placeholder is shown."""
        img = node.select_one(markup.AVATAR_IMAGE)
        if img is None:
            return None
        url = to_absolute_url(img.attr("src"), self._origin)
        if not url or is_placeholder_image(url, self._origin):
            return None
        return url

    # ── field lookups ────────────────────────────────────────────────

    @staticmethod
    def _field(
        node: ItemNode, name: str, lookup: Callable[[ItemNode], T], default: T
    ) -> T:
        try:
            return lookup(node)
        except Exception as e:
            log.debug("Lookup of %s failed on %r: %s", name, node, e)
            return default

    @staticmethod
    def _text(node: ItemNode) -> str | None:
        segments = [seg.text().strip() for seg in node.select(markup.TEXT_SEGMENT)]
        return "\n".join(segments) or None

    @staticmethod
    def _identity(node: ItemNode) -> tuple[str | None, str | None]:
        block = node.select_one(markup.USER_BLOCK)
        if block is None:
            return None, None
        name_el = block.select_one(markup.DISPLAY_NAME)
        handle_el = block.select_one(markup.HANDLE)
        display_name = name_el.text().strip() if name_el is not None else ""
        handle = handle_el.text().strip() if handle_el is not None else ""
        return display_name or None, handle or None

    @staticmethod
    def _created_at(node: ItemNode) -> str | None:
        time_el = node.select_one(markup.TIME)
        if time_el is None:
            return None
        return time_el.attr("datetime") or None

    def _permalink(self, node: ItemNode) -> str | None:
        time_el = node.select_one(markup.TIME)
        if time_el is None:
            return None
        link = time_el.closest("a")
        if link is None:
            return None
        return to_absolute_url(link.attr("href"), self._origin)

    @staticmethod
    def _is_promoted(node: ItemNode) -> bool:
        for span in node.select(markup.SPAN):
            if span.text().strip() == markup.PROMOTED_LABEL:
                return True
        return bool(node.select(markup.PLACEMENT_TRACKING))

    @staticmethod
    def _numeric_label(control: ItemNode | None) -> int:
        if control is None:
            return 0
        label = control.select_one(markup.NUMERIC_LABEL)
        return parse_count(label.text() if label is not None else "")

    def _action_count(self, node: ItemNode, test_id: str) -> int:
        return self._numeric_label(node.select_one(markup.action(test_id)))

    def _view_count(self, node: ItemNode) -> int:
        for link in node.select(markup.LINK):
            href = link.attr("href") or ""
            if markup.ANALYTICS_PATH in href.lower():
                return self._numeric_label(link)
        return 0
