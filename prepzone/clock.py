"""
Day-boundary clocks.

All day keys are UTC calendar dates formatted as YYYY-MM-DD.
"""
from datetime import date, datetime, timedelta, timezone
import time


def day_key(day: date) -> str:
    return day.isoformat()


class Clock:
    """Source of the current day and timestamp."""

    def today(self) -> date:
        raise NotImplementedError

    def now_ms(self) -> int:
        raise NotImplementedError

    def today_key(self) -> str:
        return day_key(self.today())

    def yesterday_key(self) -> str:
        return day_key(self.today() - timedelta(days=1))


class SystemClock(Clock):
    """Wall-clock time, normalized to UTC."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()

    def now_ms(self) -> int:
        return int(time.time() * 1000)


class FixedClock(Clock):
    """Clock pinned to a given day; can be advanced to simulate rollover."""

    def __init__(self, day: date):
        self._day = day

    @classmethod
    def from_key(cls, key: str) -> "FixedClock":
        return cls(date.fromisoformat(key))

    def today(self) -> date:
        return self._day

    def now_ms(self) -> int:
        midnight = datetime(self._day.year, self._day.month, self._day.day, tzinfo=timezone.utc)
        return int(midnight.timestamp() * 1000)

    def set_day(self, day: date) -> None:
        self._day = day

    def advance(self, days: int = 1) -> None:
        self._day = self._day + timedelta(days=days)
