"""
Calendar helpers for time-series metrics: UTC day/period keys and gap filling
"""
import dataclasses
from datetime import date, datetime, timedelta, timezone
from typing import Any, List, Optional, Sequence, TypeVar

from core.exceptions import ValidationError

T = TypeVar("T")

PERIODS = ("weekly", "monthly")


def utc_date(timestamp_ms: int) -> date:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()


def day_key(timestamp_ms: int) -> str:
    """``YYYY-MM-DD`` of the UTC day containing ``timestamp_ms``"""
    return utc_date(timestamp_ms).isoformat()


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def period_key(day: date, period: str) -> str:
    """
    Bucket key for churn periods

    weekly: the Monday starting the week (``YYYY-MM-DD``); monthly: ``YYYY-MM``.
    """
    if period == "monthly":
        return month_key(day)
    if period == "weekly":
        return (day - timedelta(days=day.weekday())).isoformat()
    raise ValidationError(f"Unsupported period: {period}", field="period")


def parse_day(value: str, field: str = "date") -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD", field=field) from e


def start_of_day(value: str) -> datetime:
    day = parse_day(value, "start_date")
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def end_of_day(value: str) -> datetime:
    """``23:59:59Z`` on the given day"""
    day = parse_day(value, "end_date")
    return datetime(day.year, day.month, day.day, 23, 59, 59, tzinfo=timezone.utc)


def start_of_day_ms(value: str) -> int:
    return int(start_of_day(value).timestamp() * 1000)


def end_of_day_ms(value: str) -> int:
    return int(end_of_day(value).timestamp() * 1000)


def as_utc_datetime(value: Any) -> Optional[datetime]:
    """Coerce a stored timestamp (datetime or ISO string) to an aware UTC datetime; None when unusable"""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _point_date(point: Any) -> str:
    return point["date"] if isinstance(point, dict) else point.date


def _point_at(template: Any, day: str, carry_forward: bool) -> Any:
    if isinstance(template, dict):
        point = dict(template)
        if not carry_forward:
            for name, value in point.items():
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    point[name] = type(value)(0)
        point["date"] = day
        return point

    changes = {"date": day}
    if not carry_forward:
        for f in dataclasses.fields(template):
            value = getattr(template, f.name)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                changes[f.name] = type(value)(0)
    return dataclasses.replace(template, **changes)


def fill_daily_gaps(series: Sequence[T], carry_forward: bool = True) -> List[T]:
    """
    Densify a date-sorted daily series between its first and last date

    Missing days repeat the last known values (``carry_forward=True``, for
    levels such as MRR) or get zeroed numeric fields (``carry_forward=False``,
    for flows such as daily revenue). Points are dicts or dataclasses with a
    ``date`` of ``YYYY-MM-DD``. Series with fewer than two points come back
    as a copy; the input is never mutated.
    """
    if len(series) < 2:
        return list(series)

    by_date = {_point_date(point): point for point in series}
    current = parse_day(_point_date(series[0]))
    end = parse_day(_point_date(series[-1]))

    result: List[T] = []
    last: Optional[T] = None
    while current <= end:
        key = current.isoformat()
        point = by_date.get(key)
        if point is not None:
            last = point
            result.append(point)
        else:
            result.append(_point_at(last, key, carry_forward))
        current += timedelta(days=1)

    return result
