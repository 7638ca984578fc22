from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.clock import ManualClock
from climb.config import StreakConfig
from climb.pomodoro import PomodoroSessionResult, record_team_pomodoro_session
from climb.store import MemoryStore
from climb.streak import StreakEngine, check_milestone, streak_bonus
from climb.teams import TeamRepository

# 2026-03-10T12:00:00Z
NOON_MS = 1_773_144_000_000


def _setup(member_activity: str = "lifetime", members=("bob",)):
    clock = ManualClock(NOON_MS)
    teams = TeamRepository(MemoryStore(), clock)
    engine = StreakEngine(teams, clock, StreakConfig(member_activity=member_activity))
    team = teams.create_team("alice", "Climbers", owner_name="Alice")
    for user_id in members:
        teams.add_member(team.id, user_id)
    return clock, teams, engine, team.id


def _set_streak(teams: TeamRepository, team_id: str, current: int, last_date: str, multiplier: float) -> None:
    team = teams.get_team(team_id)
    team.streak.current_streak = current
    team.streak.streak_multiplier = multiplier
    team.streak.last_session_date = last_date
    teams.save_team(team)


def _mark_all_completed(teams: TeamRepository, team_id: str) -> None:
    team = teams.get_team(team_id)
    for member in team.members:
        member.pomodoro_sessions_completed = max(1, member.pomodoro_sessions_completed)
    teams.save_team(team)


def test_award_bonus_applies_multiplier() -> None:
    clock, teams, engine, team_id = _setup()
    _set_streak(teams, team_id, 6, "2026-03-09", 1.6)

    total = engine.award_bonus(team_id, 100)

    assert total == 160
    assert teams.get_team(team_id).team_points == 160


def test_bonus_is_floored_after_rounding() -> None:
    assert streak_bonus(100, 1.7) == 70
    assert streak_bonus(25, 1.3) == 7
    assert streak_bonus(10, 1.0) == 0


def test_gap_of_several_days_resets_streak() -> None:
    clock, teams, engine, team_id = _setup()
    _mark_all_completed(teams, team_id)
    _set_streak(teams, team_id, 9, "2026-03-07", 1.9)

    streak = engine.record_session_completion(team_id, "alice")

    assert streak.current_streak == 1
    assert streak.all_members_consecutive_days == 0
    assert streak.streak_multiplier == pytest.approx(1.1)
    assert streak.last_session_date == "2026-03-10"


def test_next_day_with_all_members_active_extends_streak() -> None:
    clock, teams, engine, team_id = _setup()
    _mark_all_completed(teams, team_id)
    _set_streak(teams, team_id, 4, "2026-03-09", 1.4)

    streak = engine.record_session_completion(team_id, "bob")

    assert streak.current_streak == 5
    assert streak.all_members_consecutive_days == 1
    assert streak.streak_multiplier == pytest.approx(1.5)


def test_same_day_completion_leaves_streak_unchanged() -> None:
    clock, teams, engine, team_id = _setup()
    _set_streak(teams, team_id, 3, "2026-03-10", 1.3)

    streak = engine.record_session_completion(team_id, "alice")

    assert streak.current_streak == 3
    assert streak.streak_multiplier == pytest.approx(1.3)
    team = teams.get_team(team_id)
    assert team.member("alice").pomodoro_sessions_completed == 1
    assert team.member("alice").last_session_date == "2026-03-10"


def test_missing_last_session_date_starts_streak() -> None:
    clock, teams, engine, team_id = _setup()
    team = teams.get_team(team_id)
    team.streak.last_session_date = None
    teams.save_team(team)

    streak = engine.record_session_completion(team_id, "alice")

    assert streak.current_streak == 1


def test_lifetime_activity_counts_earlier_sessions() -> None:
    clock, teams, engine, team_id = _setup("lifetime")
    engine.record_session_completion(team_id, "alice")
    engine.record_session_completion(team_id, "bob")
    clock.advance_days(1)

    streak = engine.record_session_completion(team_id, "alice")

    assert streak.current_streak == 1
    assert streak.all_members_consecutive_days == 1


def test_daily_activity_requires_everyone_today() -> None:
    clock, teams, engine, team_id = _setup("daily")
    engine.record_session_completion(team_id, "alice")
    engine.record_session_completion(team_id, "bob")
    clock.advance_days(1)

    streak = engine.record_session_completion(team_id, "alice")

    assert streak.current_streak == 0
    assert streak.all_members_consecutive_days == 0
    assert streak.last_session_date == "2026-03-11"


def test_daily_activity_solo_team_extends() -> None:
    clock, teams, engine, team_id = _setup("daily", members=())
    engine.record_session_completion(team_id, "alice")
    clock.advance_days(1)

    streak = engine.record_session_completion(team_id, "alice")

    assert streak.current_streak == 1


def test_multiplier_tracks_streak_and_caps() -> None:
    clock, teams, engine, team_id = _setup(members=())
    for _ in range(25):
        clock.advance_days(1)
        streak = engine.record_session_completion(team_id, "alice")
        expected = min(3.0, 1.0 + 0.1 * streak.current_streak)
        assert streak.streak_multiplier == pytest.approx(expected)
        assert 1.0 <= streak.streak_multiplier <= 3.0
    assert streak.current_streak == 25
    assert streak.streak_multiplier == pytest.approx(3.0)


def test_unknown_team_or_member() -> None:
    clock, teams, engine, team_id = _setup()

    assert engine.record_session_completion("missing", "alice") is None
    assert engine.record_session_completion(team_id, "mallory") is None
    assert engine.award_bonus("missing", 40) == 40
    assert teams.get_team(team_id).member("alice").pomodoro_sessions_completed == 0


def test_level_up_unlocks_reward() -> None:
    clock, teams, engine, team_id = _setup()

    engine.award_bonus(team_id, 4_999)
    assert teams.get_team(team_id).team_level == 1

    engine.award_bonus(team_id, 1)
    team = teams.get_team(team_id)
    assert team.team_level == 2
    assert len(team.team_rewards) == 1
    reward = team.team_rewards[0]
    assert reward.milestone == 2
    assert reward.points == 500
    assert reward.name == "Team Level 2 Unlocked!"


def test_status_eligibility_and_milestones() -> None:
    clock, teams, engine, team_id = _setup()
    _set_streak(teams, team_id, 6, "2026-03-09", 1.6)
    engine.record_session_completion(team_id, "alice")

    # bob has never completed a session, so the streak holds at 6
    status = engine.streak_status(team_id)
    assert status["currentStreak"] == 6
    assert status["multiplier"] == pytest.approx(1.6)
    assert status["estimatedBonusForSession"] == 15
    assert status["daysUntilNextMilestone"] == 1

    eligibility = engine.check_eligibility(team_id)
    assert eligibility["completedToday"] == ["alice"]
    assert eligibility["missingMembers"] == ["bob"]
    assert eligibility["isEligible"] is False
    assert eligibility["requiresSession"] is True

    info = engine.next_milestone_info(team_id)
    assert info["daysRemaining"] == 1
    assert info["nextMilestone"].name == "Week Warrior"

    assert check_milestone(7).name == "Week Warrior"
    assert check_milestone(8) is None


def test_calculate_session_rewards_uses_current_multiplier() -> None:
    clock, teams, engine, team_id = _setup()
    _set_streak(teams, team_id, 5, "2026-03-10", 1.5)

    rewards = engine.calculate_session_rewards(team_id, 50)

    assert rewards == {
        "basePoints": 50,
        "streakBonus": 25,
        "totalPoints": 75,
        "multiplier": 1.5,
    }


def test_team_pomodoro_session_records_and_awards() -> None:
    clock, teams, engine, team_id = _setup()
    _mark_all_completed(teams, team_id)
    _set_streak(teams, team_id, 1, "2026-03-09", 1.1)

    result = record_team_pomodoro_session(
        engine,
        PomodoroSessionResult(
            user_id="alice",
            team_id=team_id,
            session_minutes=25,
            focused_minutes=24.6,
            distractions_count=1,
            completed_successfully=True,
        ),
    )

    assert result["newStreak"] == 2
    assert result["streakMultiplier"] == pytest.approx(1.2)
    assert result["basePoints"] == 24
    assert result["bonusPoints"] == 4
    assert result["totalPoints"] == 28


def test_failed_pomodoro_session_is_ignored() -> None:
    clock, teams, engine, team_id = _setup()
    result = record_team_pomodoro_session(
        engine,
        PomodoroSessionResult("alice", team_id, 25, 10, 6, False),
    )
    assert result is None
    assert teams.get_team(team_id).member("alice").pomodoro_sessions_completed == 0
