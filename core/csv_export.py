from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from core.models import FIELD_NAMES, Record

HEADER = list(FIELD_NAMES.values())


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_csv(records: Iterable[Record]) -> str:
    """Serialize records as CSV text: header first, ``\\n`` between rows.

    Fields holding a comma, quote or line break are double-quoted with inner
    quotes doubled; there is no trailing newline.
    """
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)
    writer.writerow(HEADER)
    for record in records:
        writer.writerow([_cell(getattr(record, attr)) for attr in FIELD_NAMES])
    text = buf.getvalue()
    return text[:-1] if text.endswith("\n") else text


def export_filename(now: datetime | None = None) -> str:
    """``tweets-2024-05-01T12-30-05.csv`` style name, UTC, whole seconds."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return f"tweets-{now.strftime('%Y-%m-%dT%H-%M-%S')}.csv"
