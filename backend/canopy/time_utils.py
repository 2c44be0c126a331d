# Overview: UTC timestamps for storage and ISO-8601 conversion at the API edge.

from __future__ import annotations

from datetime import date, datetime, time, timezone

# All timestamps are stored as naive datetimes in UTC


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(raw: str, *, end_of_day: bool = False) -> datetime:
    """
    Parse a client timestamp ("2024-05-01", "2024-05-01T08:30:00Z",
    "...+02:00") into naive UTC. Raises ValueError on anything else.

    A bare date means midnight, or its last microsecond with end_of_day.
    """
    text = raw.strip()
    if len(text) == 10:
        day = date.fromisoformat(text)
        return datetime.combine(day, time.max if end_of_day else time.min)
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    return _as_naive_utc(datetime.fromisoformat(text))


def parse_date_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    """Inclusive (start, end) bounds for list filters; blank values are open ends."""
    lower = parse_timestamp(start) if start and start.strip() else None
    upper = parse_timestamp(end, end_of_day=True) if end and end.strip() else None
    if lower is not None and upper is not None and lower > upper:
        raise ValueError("start is after end")
    return lower, upper


def to_utc_z(moment: datetime | None) -> str | None:
    """Render a stored timestamp as "2024-05-01T08:30:00Z" (seconds precision)."""
    if moment is None:
        return None
    moment = _as_naive_utc(moment).replace(microsecond=0)
    return f"{moment.isoformat()}Z"
