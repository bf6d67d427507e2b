from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Mongo hands back naive UTC datetimes unless tz_aware is set."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Clock:
    """Wall clock. Services take one so tests can pin time."""

    def now(self) -> datetime:
        return utcnow()


class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, at: datetime):
        self._at = ensure_aware(at)

    def now(self) -> datetime:
        return self._at

    def advance(self, **kwargs) -> None:
        self._at = self._at + timedelta(**kwargs)

    def set(self, at: datetime) -> None:
        self._at = ensure_aware(at)
