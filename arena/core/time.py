from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; every stored timestamp is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_utc_day(now: datetime) -> datetime:
    return as_naive_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)


def epoch_ms(value: datetime) -> int:
    return int(as_naive_utc(value).replace(tzinfo=timezone.utc).timestamp() * 1000)
