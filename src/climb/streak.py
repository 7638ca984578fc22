from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from .clock import Clock, DayKey
from .config import StreakConfig
from .logging_ import log_event
from .models import Team, TeamReward, TeamStreak, streak_multiplier
from .teams import TeamRepository

logger = logging.getLogger(__name__)

STANDARD_SESSION_MINUTES = 25


@dataclass(frozen=True)
class StreakMilestone:
    days: int
    name: str
    bonus: int


STREAK_MILESTONES: List[StreakMilestone] = [
    StreakMilestone(3, "On Fire", 250),
    StreakMilestone(7, "Week Warrior", 500),
    StreakMilestone(14, "Fortnight Fighter", 1000),
    StreakMilestone(30, "Month Master", 2000),
    StreakMilestone(60, "Legendary Climber", 3000),
    StreakMilestone(100, "Unstoppable Force", 5000),
]


def check_milestone(current_streak: int) -> Optional[StreakMilestone]:
    for milestone in STREAK_MILESTONES:
        if milestone.days == current_streak:
            return milestone
    return None


def streak_bonus(base_points: int, multiplier: float) -> int:
    # Rounding first keeps e.g. 100 * (1.7 - 1.0) at 70 instead of 69.
    return int(math.floor(round(base_points * (multiplier - 1.0), 6)))


class StreakEngine:
    """Team streak bookkeeping and streak-scaled point awards.

    Every mutation is load snapshot -> transform -> save snapshot while
    holding the repository's per-team lock.
    """

    def __init__(
        self,
        teams: TeamRepository,
        clock: Clock,
        config: Optional[StreakConfig] = None,
    ) -> None:
        self._teams = teams
        self._clock = clock
        self._config = config or StreakConfig()

    def multiplier_for(self, current_streak: int) -> float:
        return streak_multiplier(
            current_streak,
            step=self._config.multiplier_step,
            cap=self._config.max_multiplier,
        )

    def record_session_completion(self, team_id: str, user_id: str) -> Optional[TeamStreak]:
        with self._teams.lock(team_id):
            team = self._teams.get_team(team_id)
            if team is None:
                logger.warning("streak update skipped: team %s not found", team_id)
                return None
            member = team.member(user_id)
            if member is None:
                logger.warning("streak update skipped: %s not in team %s", user_id, team_id)
                return None

            today = self._clock.today()
            member.pomodoro_sessions_completed += 1
            member.last_session_date = str(today)

            streak = team.streak
            last = DayKey.parse(streak.last_session_date or "")
            days_diff = today.days_since(last) if last is not None else None

            if days_diff == 1 and self._all_members_active(team, today):
                streak.current_streak += 1
                streak.all_members_consecutive_days += 1
            elif days_diff is None or days_diff > 1:
                streak.current_streak = 1
                streak.all_members_consecutive_days = 0

            streak.streak_multiplier = self.multiplier_for(streak.current_streak)
            streak.last_session_date = str(today)
            self._teams.save_team(team)

        log_event(
            logger,
            "team_streak_updated",
            team_id=team_id,
            user_id=user_id,
            days_diff=days_diff,
            current_streak=streak.current_streak,
            multiplier=streak.streak_multiplier,
        )
        return replace(streak)

    def award_bonus(self, team_id: str, base_points: int) -> int:
        with self._teams.lock(team_id):
            team = self._teams.get_team(team_id)
            if team is None:
                logger.warning("bonus skipped: team %s not found", team_id)
                return base_points

            bonus = streak_bonus(base_points, team.streak.streak_multiplier)
            total = base_points + bonus
            team.team_points += total

            new_level = max(1, team.team_points // self._config.level_points + 1)
            if new_level > team.team_level:
                team.team_level = new_level
                team.team_rewards.append(
                    TeamReward(
                        id=uuid.uuid4().hex,
                        name=f"Team Level {new_level} Unlocked!",
                        description=f"Reached team level {new_level}",
                        points=self._config.level_reward_points,
                        unlocked_at=self._clock.now_ms(),
                        milestone=new_level,
                    )
                )
                log_event(logger, "team_level_up", team_id=team_id, level=new_level)
            self._teams.save_team(team)

        return total

    def streak_status(self, team_id: str) -> Optional[Dict[str, Any]]:
        team = self._teams.get_team(team_id)
        if team is None:
            return None
        streak = team.streak
        upcoming = _next_milestone(streak.current_streak)
        return {
            "currentStreak": streak.current_streak,
            "multiplier": streak.streak_multiplier,
            "allMembersConsecutive": streak.all_members_consecutive_days,
            "estimatedBonusForSession": streak_bonus(
                STANDARD_SESSION_MINUTES, streak.streak_multiplier
            ),
            "daysUntilNextMilestone": (
                upcoming.days - streak.current_streak if upcoming is not None else 0
            ),
        }

    def check_eligibility(self, team_id: str) -> Optional[Dict[str, Any]]:
        team = self._teams.get_team(team_id)
        if team is None:
            return None
        today = str(self._clock.today())
        completed = [m.user_id for m in team.members if m.last_session_date == today]
        missing = [m.user_id for m in team.members if m.last_session_date != today]
        return {
            "isEligible": not missing and bool(team.members),
            "completedToday": completed,
            "missingMembers": missing,
            "requiresSession": bool(missing),
        }

    def calculate_session_rewards(
        self, team_id: str, focused_minutes: int
    ) -> Optional[Dict[str, Any]]:
        team = self._teams.get_team(team_id)
        if team is None:
            return None
        base = int(focused_minutes)
        bonus = streak_bonus(base, team.streak.streak_multiplier)
        return {
            "basePoints": base,
            "streakBonus": bonus,
            "totalPoints": base + bonus,
            "multiplier": team.streak.streak_multiplier,
        }

    def next_milestone_info(self, team_id: str) -> Optional[Dict[str, Any]]:
        team = self._teams.get_team(team_id)
        if team is None:
            return None
        current = team.streak.current_streak
        upcoming = _next_milestone(current)
        if upcoming is None:
            return {
                "daysRemaining": 0,
                "nextMilestone": STREAK_MILESTONES[-1],
                "progress": 100.0,
            }
        return {
            "daysRemaining": upcoming.days - current,
            "nextMilestone": upcoming,
            "progress": current / upcoming.days * 100.0,
        }

    def _all_members_active(self, team: Team, today: DayKey) -> bool:
        # "lifetime" reads the cumulative counter, so a member who ever
        # completed a session counts as active on every later day.
        if self._config.member_activity == "daily":
            return all(m.last_session_date == str(today) for m in team.members)
        return all(m.pomodoro_sessions_completed > 0 for m in team.members)


def _next_milestone(current_streak: int) -> Optional[StreakMilestone]:
    for milestone in STREAK_MILESTONES:
        if milestone.days > current_streak:
            return milestone
    return None
