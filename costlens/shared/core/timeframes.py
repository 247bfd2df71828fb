from datetime import datetime, timedelta, timezone

TIME_RANGE_DAYS: dict[str, int] = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_TIME_RANGE = "30d"


def resolve_time_range(
    label: str | None, now: datetime | None = None
) -> tuple[datetime, datetime]:
    """
    Map a dashboard range label ("7d", "30d", "90d") to a [start, end] window.

    Unknown or missing labels fall back to 30 days.
    """
    end = now or datetime.now(timezone.utc)
    days = TIME_RANGE_DAYS.get((label or "").strip().lower(), TIME_RANGE_DAYS[DEFAULT_TIME_RANGE])
    return end - timedelta(days=days), end


def lookback_window(days: int, now: datetime | None = None) -> tuple[datetime, datetime]:
    if days < 1:
        raise ValueError("lookback days must be >= 1")
    end = now or datetime.now(timezone.utc)
    return end - timedelta(days=days), end
