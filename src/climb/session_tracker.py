from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Set

from .clock import Clock
from .logging_ import log_event
from .models import (
    APP_STATE_ACTIVE,
    AWAY_STATES,
    AppLeave,
    FocusSession,
)
from .notifier import Notifier
from .store import BaseStore, StoreError
from .utils.time import format_duration_ms

logger = logging.getLogger(__name__)

FOCUS_CONFIG_KEY = "focus_mode_config"

FocusModeListener = Callable[[bool], None]


class SessionTracker:
    """Owns at most one active focus session for a single user.

    ``Idle -> Active`` via :meth:`start`; ``Active -> Idle`` via :meth:`end`
    or :meth:`abort`. While active, ``_left_at`` marks an open excursion
    (the user is currently away). Only closed excursions are recorded in
    ``app_leave_times``.
    """

    def __init__(
        self,
        clock: Clock,
        store: BaseStore,
        notifier: Optional[Notifier] = None,
        focus_mode_enabled: bool = True,
    ) -> None:
        self._clock = clock
        self._store = store
        self._notifier = notifier or Notifier()
        self._lock = threading.RLock()
        self._session: Optional[FocusSession] = None
        self._left_at: Optional[int] = None
        self._focus_mode_enabled = self._load_focus_mode(focus_mode_enabled)
        self._listeners: Set[FocusModeListener] = set()

    @property
    def current(self) -> Optional[FocusSession]:
        with self._lock:
            return self._session

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._session is not None

    @property
    def away_open(self) -> bool:
        with self._lock:
            return self._left_at is not None

    def start(
        self, session_id: str, preset_name: str, now_ms: Optional[int] = None
    ) -> FocusSession:
        with self._lock:
            if self._session is not None:
                logger.warning(
                    "start ignored: session %s already active", self._session.id
                )
                return self._session
            now = self._clock.now_ms() if now_ms is None else int(now_ms)
            self._session = FocusSession(
                id=f"focus_{now}",
                session_id=session_id,
                start_time=now,
                preset_name=preset_name,
            )
            self._left_at = None
            session = self._session
        log_event(logger, "focus_session_started", id=session.id, preset=preset_name)
        return session

    def on_app_state_changed(self, state: str, now_ms: Optional[int] = None) -> None:
        state_key = str(state or "").strip().lower()
        warning: Optional[tuple[int, str, int]] = None
        with self._lock:
            if self._session is None or not self._focus_mode_enabled:
                return
            session = self._session
            # Excursions stay inside the session window and never run backwards.
            now = max(
                self._clock.now_ms() if now_ms is None else int(now_ms),
                session.start_time,
                self._left_at or 0,
            )
            if state_key in AWAY_STATES:
                if self._left_at is not None:
                    return
                self._left_at = now
                session.exit_count += 1
            elif state_key == APP_STATE_ACTIVE:
                if self._left_at is None:
                    return
                session.app_leave_times.append(AppLeave(left_at=self._left_at, returned_at=now))
                self._left_at = None
                warning = (session.exit_count, session.preset_name, session.time_away_ms())
            else:
                logger.warning("unknown app state ignored: %r", state)
                return

        if warning is not None:
            exit_count, preset_name, away_ms = warning
            self._notifier.focus_warning(
                exit_count, preset_name, away_ms, format_duration_ms(away_ms)
            )

    def end(self, points_earned: int, now_ms: Optional[int] = None) -> Optional[FocusSession]:
        with self._lock:
            session = self._session
            if session is None:
                return None
            end_time = max(
                self._clock.now_ms() if now_ms is None else int(now_ms),
                self._last_mark(session),
            )
            session.end_time = end_time
            session.total_duration = end_time - session.start_time
            session.total_focus_time = max(0, session.total_duration - session.time_away_ms())
            session.completed = True
            session.points_earned = int(points_earned)
            self._session = None
            self._left_at = None

        try:
            self._store.insert_focus_session(session)
        except StoreError:
            logger.exception("failed to persist focus session %s", session.id)
        log_event(
            logger,
            "focus_session_ended",
            id=session.id,
            preset=session.preset_name,
            total_focus_time=session.total_focus_time,
            exit_count=session.exit_count,
            points=session.points_earned,
        )
        self._notifier.session_complete(session)
        return session

    def _last_mark(self, session: FocusSession) -> int:
        marks = [session.start_time]
        marks.extend(leave.returned_at for leave in session.app_leave_times)
        return max(marks)

    def abort(self) -> None:
        with self._lock:
            session = self._session
            self._session = None
            self._left_at = None
        if session is not None:
            log_event(logger, "focus_session_aborted", id=session.id)

    def is_focus_mode_enabled(self) -> bool:
        with self._lock:
            return self._focus_mode_enabled

    def set_focus_mode_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._focus_mode_enabled = bool(enabled)
            listeners = list(self._listeners)
        try:
            self._store.set_json(FOCUS_CONFIG_KEY, {"enabled": bool(enabled)})
        except StoreError:
            logger.exception("failed to save focus mode config")
        log_event(logger, "focus_mode_toggled", enabled=bool(enabled))
        for listener in listeners:
            try:
                listener(bool(enabled))
            except Exception:
                logger.exception("focus mode listener failed")

    def add_focus_mode_listener(self, listener: FocusModeListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.add(listener)

        def _remove() -> None:
            with self._lock:
                self._listeners.discard(listener)

        return _remove

    def all_sessions(self) -> List[FocusSession]:
        try:
            return self._store.fetch_focus_sessions()
        except StoreError:
            logger.exception("failed to load focus sessions")
            return []

    def sessions_between(self, start_ms: int, end_ms: int) -> List[FocusSession]:
        try:
            return self._store.fetch_focus_sessions(start_ms=start_ms, end_ms=end_ms)
        except StoreError:
            logger.exception("failed to load focus sessions")
            return []

    def clear_sessions(self) -> None:
        try:
            self._store.clear_focus_sessions()
        except StoreError:
            logger.exception("failed to clear focus sessions")
        self.abort()

    def _load_focus_mode(self, default: bool) -> bool:
        try:
            cfg = self._store.get_json(FOCUS_CONFIG_KEY)
        except StoreError:
            logger.exception("failed to read focus mode config")
            return default
        if isinstance(cfg, dict) and "enabled" in cfg:
            return bool(cfg["enabled"])
        return default
