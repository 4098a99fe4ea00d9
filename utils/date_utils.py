from datetime import date, datetime, timedelta, timezone


def utcnow() -> datetime:
    # Naive UTC, matching the TIMESTAMP columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def window_start(as_of: date, days: int) -> date:
    return as_of - timedelta(days=days)


def daterange(start: date, end: date, step_days=1):
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=step_days)


def to_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])
