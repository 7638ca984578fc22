from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Optional

from .clock import Clock
from .normalize import Event, NormalizationError, normalize_event
from .observability import Observability

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], None]

_SHUTDOWN = object()


class EventBus:
    """Single-writer queue in front of the engine.

    Producers call :meth:`enqueue` from any thread; one worker normalizes
    each raw event and hands it to ``handler`` in arrival order. Events
    still queued when :meth:`stop` gives up draining are discarded.
    """

    def __init__(
        self,
        handler: EventHandler,
        clock: Clock,
        validation_level: str = "lenient",
        queue_size: int = 1000,
        metrics: Optional[Observability] = None,
        db_size: Optional[Callable[[], int]] = None,
    ) -> None:
        self._handler = handler
        self._clock = clock
        self._validation_level = validation_level
        self._pending: queue.Queue[Any] = queue.Queue(maxsize=max(1, queue_size))
        self._closing = threading.Event()
        self._thread = threading.Thread(target=self._drain_forever, name="climb-bus", daemon=True)
        self._metrics = metrics
        self._db_size = db_size

    @property
    def backlog(self) -> int:
        return self._pending.unfinished_tasks

    @property
    def capacity(self) -> int:
        return self._pending.maxsize

    def start(self) -> None:
        self._thread.start()

    def join(self) -> None:
        """Block until every queued event has been handled."""
        self._pending.join()

    def stop(self, drain_seconds: int = 0) -> None:
        if not self._thread.is_alive():
            return
        give_up_at = time.monotonic() + max(0, drain_seconds)
        while self.backlog and time.monotonic() < give_up_at:
            time.sleep(0.05)
        left = self.backlog
        self._closing.set()
        try:
            self._pending.put(_SHUTDOWN, timeout=5)
        except queue.Full:
            logger.error("event bus worker did not accept shutdown")
        self._thread.join(timeout=5)
        if left:
            logger.warning("event bus stopped with %s events unhandled", left)

    def enqueue(self, event: Dict[str, Any]) -> bool:
        if self._closing.is_set():
            return False
        try:
            self._pending.put_nowait(event)
        except queue.Full:
            self._record_drop("queue_full")
            return False
        self._update_depth()
        return True

    def _drain_forever(self) -> None:
        while True:
            item = self._pending.get()
            if item is _SHUTDOWN:
                self._pending.task_done()
                return
            try:
                if self._closing.is_set():
                    self._record_drop("shutdown")
                else:
                    self._dispatch(item)
            finally:
                self._pending.task_done()
                self._update_depth()
                if self._metrics:
                    self._metrics.maybe_log(logger, self._db_size() if self._db_size else 0)

    def _dispatch(self, raw: Dict[str, Any]) -> None:
        try:
            event = normalize_event(
                raw, validation_level=self._validation_level, now_ms=self._clock.now_ms()
            )
        except NormalizationError as exc:
            logger.warning("rejected event %r: %s", raw.get("type"), exc)
            self._record_drop("schema")
            return
        try:
            self._handler(event)
        except Exception:
            logger.exception("engine failed on %s event", type(event).__name__)
            self._record_drop("handler_error")

    def _record_drop(self, reason: str) -> None:
        if self._metrics:
            self._metrics.record_drop(reason)

    def _update_depth(self) -> None:
        if self._metrics:
            self._metrics.set_gauge("queue.depth", self._pending.qsize())
