"""Extract date ranges such as "last month" or "Q2 2024" from queries."""

from __future__ import annotations

import calendar
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo

from qdrant_client import models

logger = logging.getLogger(__name__)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
MONTHS = [
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
]


@dataclass(frozen=True)
class TemporalRange:
    """An absolute date interval derived from a phrase in a query."""

    start_date: datetime | None = None
    end_date: datetime | None = None
    is_relative: bool = False
    relative_text: str = ""

    def __post_init__(self) -> None:
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999_000)


def _month_range(now: datetime, year: int, month: int) -> tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    start = start_of_day(now.replace(year=year, month=month, day=1))
    end = end_of_day(now.replace(year=year, month=month, day=last_day))
    return start, end


def _days_since_sunday(value: datetime) -> int:
    # weekday(): Monday == 0 ... Sunday == 6
    return (value.weekday() + 1) % 7


Handler = Callable[[re.Match[str], datetime], TemporalRange | None]


def _last_weekday(match: re.Match[str], now: datetime) -> TemporalRange:
    target = WEEKDAYS.index(match.group(1))
    days_ago = (now.weekday() - target) % 7 or 7
    day = now - timedelta(days=days_ago)
    return TemporalRange(start_of_day(day), end_of_day(day), True, match.group(0))


def _last_month(match: re.Match[str], now: datetime) -> TemporalRange:
    year, month = (now.year - 1, 12) if now.month == 1 else (now.year, now.month - 1)
    start, end = _month_range(now, year, month)
    return TemporalRange(start, end, True, match.group(0))


def _this_month(match: re.Match[str], now: datetime) -> TemporalRange:
    start, end = _month_range(now, now.year, now.month)
    return TemporalRange(start, end, True, match.group(0))


def _last_week(match: re.Match[str], now: datetime) -> TemporalRange:
    start = start_of_day(now - timedelta(days=7 + _days_since_sunday(now)))
    end = end_of_day(start + timedelta(days=6))
    return TemporalRange(start, end, True, match.group(0))


def _this_week(match: re.Match[str], now: datetime) -> TemporalRange:
    start = start_of_day(now - timedelta(days=_days_since_sunday(now)))
    return TemporalRange(start, end_of_day(now), True, match.group(0))


def _last_n_days(match: re.Match[str], now: datetime) -> TemporalRange:
    days = int(match.group(1))
    start = start_of_day(now - timedelta(days=days))
    return TemporalRange(start, end_of_day(now), True, match.group(0))


def _quarter(match: re.Match[str], now: datetime) -> TemporalRange:
    quarter, year = int(match.group(1)), int(match.group(2))
    first_month = (quarter - 1) * 3 + 1
    start, _ = _month_range(now, year, first_month)
    _, end = _month_range(now, year, first_month + 2)
    return TemporalRange(start, end, False, match.group(0))


def _month_year(match: re.Match[str], now: datetime) -> TemporalRange:
    month = MONTHS.index(match.group(1)) + 1
    start, end = _month_range(now, int(match.group(2)), month)
    return TemporalRange(start, end, False, match.group(0))


def _year(match: re.Match[str], now: datetime) -> TemporalRange | None:
    year = int(match.group(1))
    if not 2000 <= year <= now.year + 1:
        return None
    start, _ = _month_range(now, year, 1)
    _, end = _month_range(now, year, 12)
    return TemporalRange(start, end, False, match.group(0))


# Order matters: the first pattern that matches (and yields a range) wins,
# so specific phrases must come before the bare year.
PATTERNS: list[tuple[re.Pattern[str], Handler]] = [
    (re.compile(rf"\blast\s+({'|'.join(WEEKDAYS)})\b"), _last_weekday),
    (re.compile(r"\blast\s+month\b"), _last_month),
    (re.compile(r"\bthis\s+month\b"), _this_month),
    (re.compile(r"\blast\s+week\b"), _last_week),
    (re.compile(r"\bthis\s+week\b"), _this_week),
    (re.compile(r"\blast\s+(\d+)\s+days?\b"), _last_n_days),
    (re.compile(r"\bq([1-4])\s+(\d{4})\b"), _quarter),
    (re.compile(rf"\b({'|'.join(MONTHS)})\s+(\d{{4}})\b"), _month_year),
    (re.compile(r"\b(\d{4})\b"), _year),
]


def parse_temporal_query(
    query: str,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> tuple[str, TemporalRange | None]:
    """Find a temporal phrase in *query* and convert it to a date range.

    Args:
        query: The user's question.
        now: Reference time for relative phrases.
        tz: Zone for the default *now*, e.g. ``ZoneInfo("Europe/London")``.
            Without it the system's current UTC offset is used, which is a
            fixed offset: ranges crossing a DST change are an hour off at
            the far boundary.

    Returns:
        ``(cleaned_query, range)``. The matched phrase is removed from the
        cleaned query; when nothing matches, or the phrase names a date that
        cannot exist ("Q1 0000"), the query is returned unchanged with ``None``.
    """
    if now is None:
        now = datetime.now(tz) if tz is not None else datetime.now().astimezone()
    lowered = query.lower()

    for pattern, handler in PATTERNS:
        match = pattern.search(lowered)
        if not match:
            continue
        try:
            temporal_range = handler(match, now)
        except (ValueError, OverflowError) as exc:
            logger.warning("Ignoring temporal phrase %r: %s", match.group(0), exc)
            continue
        if temporal_range is None:
            continue
        cleaned = re.sub(re.escape(match.group(0)), "", query, count=1, flags=re.IGNORECASE)
        cleaned = " ".join(cleaned.split())
        return cleaned, temporal_range

    return query, None


def build_date_range_filter(
    temporal_range: TemporalRange | None,
    field: str = "source_date",
    fallback_field: str | None = "created_at",
) -> models.Condition | None:
    """Build a single Qdrant condition restricting *field* to the range.

    With a *fallback_field*, points whose *field* is empty are matched on
    the fallback instead (older points and sources without a known date).
    """
    if temporal_range is None:
        return None

    gte = temporal_range.start_date.isoformat() if temporal_range.start_date else None
    lte = temporal_range.end_date.isoformat() if temporal_range.end_date else None
    if gte is None and lte is None:
        return None

    primary = models.FieldCondition(key=field, range=models.DatetimeRange(gte=gte, lte=lte))
    if not fallback_field:
        return primary

    fallback = models.Filter(
        must=[
            models.IsEmptyCondition(is_empty=models.PayloadField(key=field)),
            models.FieldCondition(key=fallback_field, range=models.DatetimeRange(gte=gte, lte=lte)),
        ]
    )
    return models.Filter(should=[primary, fallback])
