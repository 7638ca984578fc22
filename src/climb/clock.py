from __future__ import annotations

import datetime as dt
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .utils.time import resolve_tz

MS_PER_DAY = 86_400_000


@dataclass(frozen=True, order=True)
class DayKey:
    """A calendar day in the clock's timezone.

    Day-scoped state (usage totals, nudge and penalty flags) is keyed by
    ``str(day)``. Two instants roll over to a new key exactly when their local
    calendar dates differ; there is no rolling 24h window.
    """

    ordinal: int

    @classmethod
    def from_date(cls, value: dt.date) -> "DayKey":
        return cls(value.toordinal())

    @classmethod
    def parse(cls, value: str) -> Optional["DayKey"]:
        if not value:
            return None
        try:
            return cls.from_date(dt.date.fromisoformat(str(value)[:10]))
        except ValueError:
            return None

    @property
    def date(self) -> dt.date:
        return dt.date.fromordinal(self.ordinal)

    def days_since(self, other: "DayKey") -> int:
        return self.ordinal - other.ordinal

    def shift(self, days: int) -> "DayKey":
        return DayKey(self.ordinal + int(days))

    def __str__(self) -> str:
        return self.date.isoformat()


class Clock:
    """Time source injected into every component that reads the time."""

    def __init__(self, timezone_name: str = "local") -> None:
        self._tzinfo = resolve_tz(timezone_name)

    def now_ms(self) -> int:
        raise NotImplementedError

    @property
    def tzinfo(self) -> Optional[dt.tzinfo]:
        return self._tzinfo

    def day_of(self, epoch_ms: int) -> DayKey:
        if self._tzinfo is None:
            local = dt.datetime.fromtimestamp(epoch_ms / 1000.0)
        else:
            local = dt.datetime.fromtimestamp(epoch_ms / 1000.0, tz=self._tzinfo)
        return DayKey.from_date(local.date())

    def today(self) -> DayKey:
        return self.day_of(self.now_ms())


class SystemClock(Clock):
    def now_ms(self) -> int:
        return int(time.time() * 1000)


class ManualClock(Clock):
    """Clock that only moves when told to. Used by tests and event replay."""

    def __init__(self, start_ms: int = 0, timezone_name: str = "UTC") -> None:
        super().__init__(timezone_name)
        self._now_ms = int(start_ms)
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        with self._lock:
            return self._now_ms

    def set(self, epoch_ms: int) -> None:
        with self._lock:
            self._now_ms = int(epoch_ms)

    def advance(self, millis: int) -> int:
        with self._lock:
            self._now_ms += int(millis)
            return self._now_ms

    def advance_days(self, days: int) -> int:
        return self.advance(days * MS_PER_DAY)
