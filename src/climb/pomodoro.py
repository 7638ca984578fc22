from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .models import TeamStreak
from .streak import StreakEngine

logger = logging.getLogger(__name__)


@dataclass
class PomodoroSessionResult:
    user_id: str
    team_id: str
    session_minutes: float
    focused_minutes: float
    distractions_count: int
    completed_successfully: bool


def award_team_session(
    engine: StreakEngine, team_id: str, user_id: str, base_points: int
) -> Optional[Tuple[TeamStreak, int]]:
    """Record the member's completion, then pay ``base_points`` plus the streak bonus.

    Returns the updated streak and the total paid, or ``None`` when the team
    or member is unknown (nothing is awarded then).
    """
    streak = engine.record_session_completion(team_id, user_id)
    if streak is None:
        return None
    return streak, engine.award_bonus(team_id, int(base_points))


def record_team_pomodoro_session(
    engine: StreakEngine, result: PomodoroSessionResult
) -> Optional[Dict[str, Any]]:
    """Advance the team streak for a finished session and pay out the bonus.

    Unsuccessful sessions and unknown teams/members yield ``None``.
    """
    if not result.completed_successfully:
        return None

    base_points = int(result.focused_minutes)
    awarded = award_team_session(engine, result.team_id, result.user_id, base_points)
    if awarded is None:
        return None
    streak, total_points = awarded
    logger.info(
        "team pomodoro recorded team=%s user=%s base=%s total=%s streak=%s",
        result.team_id,
        result.user_id,
        base_points,
        total_points,
        streak.current_streak,
    )
    return {
        "basePoints": base_points,
        "bonusPoints": total_points - base_points,
        "totalPoints": total_points,
        "streakMultiplier": streak.streak_multiplier,
        "newStreak": streak.current_streak,
    }
