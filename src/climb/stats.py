from __future__ import annotations

from typing import Any, Dict, Sequence

from .models import FocusSession


def build_session_stats(sessions: Sequence[FocusSession]) -> Dict[str, Any]:
    if not sessions:
        return {
            "totalSessions": 0,
            "totalFocusTime": 0,
            "totalDuration": 0,
            "averageFocusTime": 0,
            "averageExitCount": 0,
            "totalPointsEarned": 0,
        }

    count = len(sessions)
    total_focus = sum(item.total_focus_time for item in sessions)
    total_duration = sum(item.total_duration for item in sessions)
    total_exits = sum(item.exit_count for item in sessions)
    total_points = sum(item.points_earned for item in sessions)
    return {
        "totalSessions": count,
        "totalFocusTime": total_focus,
        "totalDuration": total_duration,
        "averageFocusTime": total_focus / count,
        "averageExitCount": total_exits / count,
        "totalPointsEarned": total_points,
    }


def focus_percentage(session: FocusSession) -> int:
    if session.total_duration <= 0:
        return 0
    return int(round(100.0 * session.total_focus_time / session.total_duration))
