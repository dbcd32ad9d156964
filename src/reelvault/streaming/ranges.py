"""HTTP Range header parsing for the video relay."""

from __future__ import annotations

import re
from dataclasses import dataclass

from ..infra.exceptions import RangeNotSatisfiableError

_RANGE_RE = re.compile(r"^\s*bytes\s*=\s*(\d*)\s*-\s*(\d*)\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class RangeRequest:
    start: int
    end: int | None = None  # inclusive

    def resolved_end(self, size: int) -> int:
        return size - 1 if self.end is None else self.end

    def length(self, size: int) -> int:
        return self.resolved_end(size) - self.start + 1


def parse_range_header(header: str | None, size: int) -> RangeRequest | None:
    """
    Parse a ``Range`` header against a known asset size.

    Returns None when there is no usable header (absent or malformed), meaning
    the full asset should be served. Only the first range of a multi-range
    header is honored and ``end`` is clamped to ``size - 1``.

    Raises:
        RangeNotSatisfiableError: The range starts at or beyond ``size``
    """
    if not header:
        return None

    first = header.split(",", 1)[0]
    match = _RANGE_RE.match(first)
    if match is None:
        return None

    raw_start, raw_end = match.groups()
    if not raw_start and not raw_end:
        return None

    if not raw_start:
        # Suffix form: last N bytes
        suffix = int(raw_end)
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiableError(size)
        return RangeRequest(start=max(0, size - suffix), end=size - 1)

    start = int(raw_start)
    end = int(raw_end) if raw_end else None
    if end is not None and end < start:
        return None
    if start >= size:
        raise RangeNotSatisfiableError(size)
    if end is None or end > size - 1:
        end = size - 1
    return RangeRequest(start=start, end=end)


def content_range(start: int, end: int, size: int) -> str:
    return f"bytes {start}-{end}/{size}"
