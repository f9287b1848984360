from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

# Serialized (JSON / CSV) name for every Record attribute, in output order.
FIELD_NAMES: dict[str, str] = {
    "text": "text",
    "author_display_name": "authorDisplayName",
    "author_handle": "authorHandle",
    "author_image_url": "authorImageUrl",
    "created_at": "createdAt",
    "permalink": "permalink",
    "is_promoted": "isPromoted",
    "reply_count": "replyCount",
    "share_count": "shareCount",
    "like_count": "likeCount",
    "view_count": "viewCount",
}


@dataclass
class Record:
    """A single tweet harvested from the timeline."""

    text: str | None = None
    author_display_name: str | None = None
    author_handle: str | None = None
    author_image_url: str | None = None  # the only field allowed to arrive late
    created_at: str | None = None
    permalink: str | None = None
    is_promoted: bool = False
    reply_count: int = 0
    share_count: int = 0
    like_count: int = 0
    view_count: int = 0

    @property
    def is_complete(self) -> bool:
        return bool(self.author_image_url)

    def to_dict(self) -> dict[str, Any]:
        return {FIELD_NAMES[f.name]: getattr(self, f.name) for f in fields(self)}

    def record_key(self) -> str:
        """Stable id used to upsert the same tweet across runs."""
        basis = self.permalink or (
            f"{self.author_handle}:{self.created_at}:{(self.text or '')[:80]}"
        )
        return hashlib.md5(basis.encode()).hexdigest()[:16]


@dataclass
class HarvestResult:
    """Outcome of a single harvest run."""

    records: list[Record]
    csv: str
    reason: str  # "target_reached" | "idle_limit"
    started_at: datetime
    duration_seconds: float
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def json(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.records]
