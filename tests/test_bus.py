from __future__ import annotations

import sys
import threading
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.bus import EventBus
from climb.clock import ManualClock
from climb.observability import Observability


def test_events_handled_in_order() -> None:
    seen = []
    bus = EventBus(seen.append, ManualClock(0), queue_size=100)
    bus.start()
    for ts in range(1, 21):
        assert bus.enqueue({"type": "app_state", "state": "active", "ts": ts})
    bus.join()
    bus.stop()

    assert [event.ts_ms for event in seen] == list(range(1, 21))


def test_invalid_events_are_dropped_and_counted() -> None:
    seen = []
    metrics = Observability()
    bus = EventBus(seen.append, ManualClock(7), metrics=metrics)
    bus.start()
    bus.enqueue({"type": "app_state", "state": "sideways"})
    bus.enqueue({"type": "app_state", "state": "inactive"})
    bus.join()
    bus.stop()

    assert [event.state for event in seen] == ["inactive"]
    assert seen[0].ts_ms == 7
    assert metrics.counter("drop.reason.schema") == 1


def test_handler_errors_do_not_stop_worker() -> None:
    seen = []

    def _handler(event) -> None:
        if event.ts_ms == 1:
            raise RuntimeError("boom")
        seen.append(event.ts_ms)

    metrics = Observability()
    bus = EventBus(_handler, ManualClock(0), metrics=metrics)
    bus.start()
    bus.enqueue({"type": "app_state", "state": "active", "ts": 1})
    bus.enqueue({"type": "app_state", "state": "active", "ts": 2})
    bus.join()
    bus.stop()

    assert seen == [2]
    assert metrics.counter("drop.reason.handler_error") == 1


def test_enqueue_reports_full_queue() -> None:
    bus = EventBus(lambda event: None, ManualClock(0), queue_size=1)

    assert bus.enqueue({"state": "active"}) is True
    assert bus.enqueue({"state": "active"}) is False


def test_stop_without_drain_discards_backlog() -> None:
    started = threading.Event()
    release = threading.Event()
    seen = []

    def _handler(event) -> None:
        started.set()
        release.wait(timeout=5)
        seen.append(event.ts_ms)

    metrics = Observability()
    bus = EventBus(_handler, ManualClock(0), metrics=metrics)
    bus.start()
    for ts in (1, 2, 3):
        bus.enqueue({"type": "app_state", "state": "active", "ts": ts})
    assert started.wait(timeout=5)

    threading.Timer(0.2, release.set).start()
    bus.stop(drain_seconds=0)

    assert seen == [1]
    assert metrics.counter("drop.reason.shutdown") == 2
    assert bus.enqueue({"type": "app_state", "state": "active", "ts": 4}) is False
