from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

from .blocker import BlockerConfigStore, active_blocked_apps
from .clock import Clock
from .config import Config
from .models import (
    APP_STATE_ACTIVE,
    AWAY_STATES,
    BlockedApp,
    FocusSession,
    LimitCheck,
    TeamStreak,
    find_preset,
)
from .normalize import AppStateEvent, Event, SessionCommand, UsageEvent
from .notifier import Notifier
from .observability import Observability
from .pomodoro import award_team_session
from .session_tracker import SessionTracker
from .store import BaseStore
from .streak import StreakEngine
from .teams import TeamRepository
from .usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


@dataclass
class SessionOutcome:
    session: FocusSession
    base_points: int
    total_points: int
    streak: Optional[TeamStreak] = None


class FocusEngine:
    """Wires one user's tracker to the shared ledger, streak and blocker state.

    App-state events drive the session tracker and, independently, the usage
    watcher: a background event naming an external app opens a usage window
    that is charged to that app on the next ``active`` event.
    """

    def __init__(
        self,
        config: Config,
        store: BaseStore,
        clock: Clock,
        notifier: Optional[Notifier] = None,
        metrics: Optional[Observability] = None,
    ) -> None:
        self._config = config
        self._notifier = notifier or Notifier()
        self._metrics = metrics
        self.tracker = SessionTracker(
            clock, store, self._notifier, focus_mode_enabled=config.focus.enabled
        )
        self.ledger = UsageLedger(store, clock, config.usage.limits_minutes)
        self.teams = TeamRepository(store, clock)
        self.streaks = StreakEngine(self.teams, clock, config.streak)
        self.blocker = BlockerConfigStore(store, clock, config.blocker)
        self._lock = threading.Lock()
        self._away_app: Optional[str] = None
        self._away_since: Optional[int] = None

    def handle(self, event: Event) -> None:
        if self._metrics:
            self._metrics.set_last_event_ts(event.ts_ms)
        if isinstance(event, AppStateEvent):
            self._inc(f"events.state.{event.state}")
            self._handle_app_state(event)
        elif isinstance(event, UsageEvent):
            self._inc("events.usage")
            self.ledger.record_usage(event.app, event.millis)
            self.check_usage_limit(event.app)
        elif isinstance(event, SessionCommand):
            self._inc(f"events.session.{event.action}")
            self._handle_session_command(event)

    def start_session(
        self,
        session_id: str,
        preset_name: Optional[str] = None,
        now_ms: Optional[int] = None,
    ) -> FocusSession:
        preset = find_preset(preset_name or self._config.focus.default_preset)
        name = preset.name if preset is not None else (preset_name or "")
        session = self.tracker.start(session_id, name, now_ms=now_ms)
        blocked = self.blocked_apps()
        if blocked:
            logger.info("blocking during session: %s", ", ".join(app.id for app in blocked))
        return session

    def complete_session(
        self,
        points_earned: int,
        team_id: Optional[str] = None,
        user_id: Optional[str] = None,
        now_ms: Optional[int] = None,
    ) -> Optional[SessionOutcome]:
        session = self.tracker.end(points_earned, now_ms=now_ms)
        if session is None:
            return None
        outcome = SessionOutcome(
            session=session, base_points=int(points_earned), total_points=int(points_earned)
        )
        if team_id and user_id:
            awarded = award_team_session(self.streaks, team_id, user_id, outcome.base_points)
            if awarded is not None:
                outcome.streak, outcome.total_points = awarded
        if outcome.total_points:
            self._notifier.points_changed(outcome.total_points, "focus_session")
        self._inc("sessions.completed")
        if self._metrics:
            self._metrics.record_session(session)
        return outcome

    def abort_session(self) -> None:
        self.tracker.abort()
        self._inc("sessions.aborted")

    def blocked_apps(self) -> List[BlockedApp]:
        return active_blocked_apps(self.blocker.load(), self.tracker.is_active)

    def check_usage_limit(self, app_id: str) -> LimitCheck:
        result = self.ledger.check_limit(app_id, self._config.usage.penalty_points)
        if result.show_nudge:
            self._inc("usage.nudges")
            self._notifier.usage_nudge(result.app_id, result.usage_minutes, result.limit_minutes)
        if result.penalty.applied:
            self._inc("usage.penalties")
            self._notifier.penalty_alert(result.penalty.points_lost, result.app_id)
            self._notifier.points_changed(
                -result.penalty.points_lost, f"usage_limit:{result.app_id}"
            )
        return result

    def _handle_app_state(self, event: AppStateEvent) -> None:
        was_away = self.tracker.away_open
        self.tracker.on_app_state_changed(event.state, now_ms=event.ts_ms)
        if not was_away and self.tracker.away_open:
            self._inc("focus.exits")

        charged: Optional[tuple[str, int]] = None
        with self._lock:
            if event.state in AWAY_STATES:
                if event.app and self._away_app is None:
                    self._away_app = event.app
                    self._away_since = event.ts_ms
            elif event.state == APP_STATE_ACTIVE and self._away_app is not None:
                charged = (self._away_app, event.ts_ms - int(self._away_since or event.ts_ms))
                self._away_app = None
                self._away_since = None

        if charged is not None:
            app, millis = charged
            self.ledger.record_usage(app, millis, day=self.ledger.day_of(event.ts_ms))
            self.check_usage_limit(app)

    def _handle_session_command(self, command: SessionCommand) -> None:
        if command.action == "start":
            self.start_session(
                command.session_id, command.preset_name or None, now_ms=command.ts_ms
            )
        elif command.action == "end":
            self.complete_session(
                command.points, command.team_id, command.user_id, now_ms=command.ts_ms
            )
        elif command.action == "abort":
            self.abort_session()

    def _inc(self, name: str) -> None:
        if self._metrics:
            self._metrics.inc(name)
