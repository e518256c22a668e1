"""Date normalization and business-day windows.

Every date the engine touches (order dates, payment instants, expense dates)
passes through :func:`parse` at the ingestion boundary. Core logic only ever
sees timezone-aware ``datetime`` values in the business timezone.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any

from daily_settlement.config import get_settings

_FALLBACK_FORMATS = (
    "%Y.%m.%d",
    "%Y/%m/%d",
    "%Y.%m.%d %H:%M",
    "%Y/%m/%d %H:%M",
    "%Y.%m.%d %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
)


def business_tz() -> tzinfo:
    return get_settings().tzinfo


def _from_epoch(seconds: float, nanos: float = 0, tz: tzinfo | None = None) -> datetime | None:
    try:
        instant = datetime.fromtimestamp(float(seconds), tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
    if nanos:
        instant += timedelta(microseconds=int(nanos) // 1000)
    return instant.astimezone(tz or business_tz())


def _parse_string(value: str, tz: tzinfo) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = None
        for fmt in _FALLBACK_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            return None
    return _localize(parsed, tz)


def _localize(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def parse(value: Any, tz: tzinfo | None = None) -> datetime | None:
    """Normalize a heterogeneous date value into an aware ``datetime``.

    Accepts native ``datetime``/``date`` objects, structured timestamps
    (``{"seconds": ..., "nanoseconds": ...}`` mappings or objects exposing
    ``to_datetime()``/``ToDatetime()``), ISO-like strings and epoch seconds.
    Returns ``None`` for anything that cannot be understood.
    """
    tz = tz or business_tz()

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _localize(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=tz)
    if isinstance(value, str):
        return _parse_string(value, tz)
    if isinstance(value, (int, float)):
        return _from_epoch(value, tz=tz)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None or isinstance(seconds, bool):
            return None
        nanos = value.get("nanoseconds", value.get("_nanoseconds")) or 0
        try:
            return _from_epoch(float(seconds), float(nanos), tz=tz)
        except (TypeError, ValueError):
            return None

    for attr in ("to_datetime", "ToDatetime", "toDate"):
        converter = getattr(value, attr, None)
        if callable(converter):
            try:
                converted = converter()
            except (TypeError, ValueError, OverflowError):
                return None
            if isinstance(converted, datetime):
                # protobuf ToDatetime() returns naive UTC
                if converted.tzinfo is None:
                    converted = converted.replace(tzinfo=UTC)
                return converted.astimezone(tz)
            return None
    return None


def parse_day(value: Any, tz: tzinfo | None = None) -> date | None:
    """Calendar day of :func:`parse`'s result in the business timezone."""
    instant = parse(value, tz)
    return instant.date() if instant else None


@dataclass(frozen=True)
class DayWindow:
    """Closed interval covering one business day."""

    day: date
    start: datetime
    end: datetime

    def contains(self, instant: datetime | None) -> bool:
        return instant is not None and self.start <= instant <= self.end

    def is_before(self, instant: datetime | None) -> bool:
        """True when ``instant`` falls on an earlier day than the window."""
        return instant is not None and instant < self.start


def day_window(day: date, tz: tzinfo | None = None) -> DayWindow:
    """Build ``[startOfDay(day), endOfDay(day)]`` in the business timezone."""
    tz = tz or business_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day, time.max, tzinfo=tz)
    return DayWindow(day=day, start=start, end=end)


def daterange(start: date, end: date) -> Iterator[date]:
    """Yield each calendar day from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
