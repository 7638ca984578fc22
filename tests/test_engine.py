from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.clock import MS_PER_DAY, ManualClock
from climb.config import config_from_dict
from climb.engine import FocusEngine
from climb.normalize import normalize_event
from climb.notifier import Notifier
from climb.observability import Observability
from climb.store import MemoryStore

# 2026-03-10T08:00:00Z
MORNING_MS = 1_773_129_600_000
MINUTE = 60_000


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.calls = []

    def focus_warning(self, exit_count, preset_name, time_away_ms, time_away) -> None:
        self.calls.append(("focus_warning", exit_count, time_away_ms))

    def penalty_alert(self, points_lost, app_id) -> None:
        self.calls.append(("penalty_alert", points_lost, app_id))

    def usage_nudge(self, app_id, usage_minutes, limit_minutes) -> None:
        self.calls.append(("usage_nudge", app_id, usage_minutes, limit_minutes))

    def points_changed(self, delta, reason) -> None:
        self.calls.append(("points_changed", delta, reason))


def _engine():
    clock = ManualClock(MORNING_MS)
    notifier = RecordingNotifier()
    metrics = Observability()
    engine = FocusEngine(config_from_dict({}), MemoryStore(), clock, notifier, metrics)
    return clock, notifier, metrics, engine


def _feed(engine: FocusEngine, clock: ManualClock, raw: dict) -> None:
    event = normalize_event(raw, now_ms=clock.now_ms())
    clock.set(max(clock.now_ms(), event.ts_ms))
    engine.handle(event)


def test_time_in_external_app_is_charged_and_penalised() -> None:
    clock, notifier, metrics, engine = _engine()
    engine.start_session("pomo-1", "classic")
    left = MORNING_MS + MINUTE
    _feed(engine, clock, {"type": "app_state", "state": "background", "app": "instagram", "ts": left})
    _feed(engine, clock, {"type": "app_state", "state": "active", "ts": left + 11 * MINUTE})

    assert engine.ledger.usage_minutes("instagram") == 11
    assert engine.tracker.current.exit_count == 1
    assert notifier.calls == [
        ("focus_warning", 1, 11 * MINUTE),
        ("usage_nudge", "instagram", 11, 10),
        ("penalty_alert", 25, "instagram"),
        ("points_changed", -25, "usage_limit:instagram"),
    ]
    assert metrics.counter("usage.penalties") == 1
    assert metrics.counter("focus.exits") == 1


def test_penalty_not_repeated_same_day() -> None:
    clock, notifier, metrics, engine = _engine()
    _feed(engine, clock, {"type": "app_usage", "app": "instagram", "minutes": 12, "ts": MORNING_MS})
    _feed(engine, clock, {"type": "app_usage", "app": "instagram", "minutes": 3, "ts": MORNING_MS + 1})

    penalties = [call for call in notifier.calls if call[0] == "penalty_alert"]
    assert penalties == [("penalty_alert", 25, "instagram")]
    assert engine.ledger.usage_minutes("instagram") == 15


def test_away_without_app_is_not_charged() -> None:
    clock, notifier, metrics, engine = _engine()
    engine.start_session("pomo-2")
    _feed(engine, clock, {"type": "app_state", "state": "inactive", "ts": MORNING_MS + 1_000})
    _feed(engine, clock, {"type": "app_state", "state": "active", "ts": MORNING_MS + 30 * MINUTE})

    assert engine.ledger.snapshot() == {}
    assert engine.tracker.current.preset_name == "Classic"


def test_session_completion_applies_team_streak() -> None:
    clock, notifier, metrics, engine = _engine()
    team = engine.teams.create_team("alice", "Climbers")

    engine.start_session("pomo-3", "Classic")
    clock.advance(25 * MINUTE)
    first = engine.complete_session(100, team.id, "alice")
    assert first.total_points == 100
    assert first.streak.current_streak == 0

    clock.advance_days(1)
    engine.start_session("pomo-4", "Classic")
    clock.advance(25 * MINUTE)
    second = engine.complete_session(100, team.id, "alice")

    assert second.streak.current_streak == 1
    assert second.streak.streak_multiplier == pytest.approx(1.1)
    assert second.total_points == 110
    assert engine.teams.get_team(team.id).team_points == 210
    assert ("points_changed", 110, "focus_session") in notifier.calls
    assert [s.points_earned for s in engine.tracker.all_sessions()] == [100, 100]


def test_session_commands_drive_tracker() -> None:
    clock, notifier, metrics, engine = _engine()
    _feed(engine, clock, {"type": "session_start", "session_id": "p", "preset": "short", "ts": MORNING_MS})
    assert engine.tracker.current.preset_name == "Short"

    _feed(engine, clock, {"type": "session_end", "points": 15, "ts": MORNING_MS + 15 * MINUTE})
    sessions = engine.tracker.all_sessions()
    assert len(sessions) == 1
    assert sessions[0].total_duration == 15 * MINUTE
    assert metrics.focus_total("sessions") == 1
    assert metrics.focus_total("focus_ms") == 15 * MINUTE
    assert metrics.focus_total("points") == 15

    _feed(engine, clock, {"type": "session_start", "session_id": "q", "ts": MORNING_MS + 16 * MINUTE})
    _feed(engine, clock, {"type": "session_abort", "ts": MORNING_MS + 17 * MINUTE})
    assert engine.tracker.current is None
    assert len(engine.tracker.all_sessions()) == 1
    assert metrics.counter("sessions.aborted") == 1


def test_complete_without_session_returns_none() -> None:
    clock, notifier, metrics, engine = _engine()
    assert engine.complete_session(50) is None
    assert notifier.calls == []


def test_blocked_apps_only_during_session() -> None:
    clock, notifier, metrics, engine = _engine()
    assert engine.blocked_apps() == []

    engine.start_session("pomo-5", "Classic")
    assert [app.id for app in engine.blocked_apps()] == ["instagram", "tiktok"]

    engine.blocker.toggle_block_on_start(False)
    assert engine.blocked_apps() == []


def test_live_events_use_event_time_not_wall_clock() -> None:
    clock, notifier, metrics, engine = _engine()
    clock.set(MORNING_MS + MS_PER_DAY)
    start = MORNING_MS
    for raw in (
        {"type": "session_start", "session_id": "late", "ts": start},
        {"type": "app_state", "state": "background", "app": "instagram", "ts": start + MINUTE},
        {"type": "app_state", "state": "active", "ts": start + 3 * MINUTE},
        {"type": "session_end", "points": 10, "ts": start + 10 * MINUTE},
    ):
        engine.handle(normalize_event(raw, now_ms=clock.now_ms()))

    session = engine.tracker.all_sessions()[0]
    assert session.total_duration == 10 * MINUTE
    assert session.total_focus_time == 8 * MINUTE
    event_day = engine.ledger.day_of(start)
    assert engine.ledger.usage_minutes("instagram", event_day) == 2
    assert engine.ledger.usage_minutes("instagram") == 0
