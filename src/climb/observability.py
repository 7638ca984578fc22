from __future__ import annotations

import json
import threading
import time
from collections import Counter
from typing import Any, Dict, Optional

from .models import FocusSession


class Observability:
    """Process counters plus running totals over completed focus sessions.

    ``window`` counters reset every ``log_interval_sec`` when the snapshot is
    logged, ``counters`` accumulate for the whole run.
    """

    def __init__(self, log_interval_sec: int = 60) -> None:
        self._lock = threading.Lock()
        self._counters: Counter[str] = Counter()
        self._window: Counter[str] = Counter()
        self._gauges: Dict[str, float] = {}
        self._focus_totals: Counter[str] = Counter()
        self._interval = max(10, int(log_interval_sec))
        self._window_started = time.monotonic()
        self._last_event_ts: Optional[int] = None

    def inc(self, name: str, count: int = 1) -> None:
        if not name:
            return
        with self._lock:
            self._counters[name] += count
            self._window[name] += count

    def set_gauge(self, name: str, value: float) -> None:
        if name:
            with self._lock:
                self._gauges[name] = value

    def set_last_event_ts(self, ts_ms: Optional[int]) -> None:
        if ts_ms is not None:
            with self._lock:
                self._last_event_ts = ts_ms

    def record_drop(self, reason: str) -> None:
        self.inc("events.dropped")
        if reason:
            self.inc(f"drop.reason.{reason}")

    def record_session(self, session: FocusSession) -> None:
        with self._lock:
            self._focus_totals["sessions"] += 1
            self._focus_totals["focus_ms"] += session.total_focus_time
            self._focus_totals["away_ms"] += max(
                0, session.total_duration - session.total_focus_time
            )
            self._focus_totals["exits"] += session.exit_count
            self._focus_totals["points"] += session.points_earned

    def counter(self, name: str) -> int:
        with self._lock:
            return int(self._counters.get(name, 0))

    def focus_total(self, name: str) -> int:
        with self._lock:
            return int(self._focus_totals.get(name, 0))

    def snapshot(self, db_size_bytes: int = 0) -> Dict[str, Any]:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "window": dict(self._window),
                "gauges": dict(self._gauges),
                "focus": dict(self._focus_totals),
                "db_size_bytes": db_size_bytes,
                "last_event_ts": self._last_event_ts,
            }

    def maybe_log(self, logger, db_size_bytes: int = 0) -> None:
        now = time.monotonic()
        if now - self._window_started < self._interval:
            return
        payload = self.snapshot(db_size_bytes=db_size_bytes)
        payload["event"] = "metrics_window"
        payload["window_sec"] = int(now - self._window_started)
        with self._lock:
            self._window = Counter()
            self._window_started = now
        logger.info(json.dumps(payload, separators=(",", ":")))
