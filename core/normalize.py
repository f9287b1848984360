"""Pure helpers turning raw markup fragments into typed values."""

from __future__ import annotations

import math
import re
from urllib.parse import urljoin, urlsplit

_PLAIN_RE = re.compile(r"^[0-9]+$")
_THOUSANDS_RE = re.compile(r"^[0-9]*\.?[0-9]+[Kk]$")
_MILLIONS_RE = re.compile(r"^[0-9]*\.?[0-9]+[Mm]$")

_SVG_PLACEHOLDER = "data:image/svg+xml"


def to_absolute_url(raw: str | None, origin: str) -> str | None:
    """Resolve *raw* against *origin*; ``None`` for anything unusable."""
    if not raw or not isinstance(raw, str):
        return None
    raw = raw.strip()
    if not raw:
        return None
    try:
        url = urljoin(origin.rstrip("/") + "/", raw)
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme:
        return None
    return url


def parse_count(raw: str | None) -> int:
    """Parse engagement labels such as ``1,234``, ``2.5K`` or ``3M``."""
    if not raw or not isinstance(raw, str):
        return 0
    txt = raw.replace(",", "").strip()
    if _PLAIN_RE.match(txt):
        return int(txt)
    if _THOUSANDS_RE.match(txt):
        return _round_half_up(float(txt[:-1]) * 1e3)
    if _MILLIONS_RE.match(txt):
        return _round_half_up(float(txt[:-1]) * 1e6)
    return 0


def is_placeholder_image(url: str, origin: str) -> bool:
    """True for avatar sources that are not a real photo."""
    if url.rstrip("/") == origin.rstrip("/"):
        return True
    return _SVG_PLACEHOLDER in url


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
