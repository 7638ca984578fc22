from __future__ import annotations

import logging

from .logging_ import log_event
from .models import FocusSession
from .stats import focus_percentage

logger = logging.getLogger(__name__)


class Notifier:
    """Outbound signals for the UI / notification layer. Default is silent."""

    def focus_warning(
        self, exit_count: int, preset_name: str, time_away_ms: int, time_away: str
    ) -> None:
        return None

    def penalty_alert(self, points_lost: int, app_id: str) -> None:
        return None

    def usage_nudge(self, app_id: str, usage_minutes: int, limit_minutes: int) -> None:
        return None

    def session_complete(self, session: FocusSession) -> None:
        return None

    def points_changed(self, delta: int, reason: str) -> None:
        return None


class LogNotifier(Notifier):
    def focus_warning(
        self, exit_count: int, preset_name: str, time_away_ms: int, time_away: str
    ) -> None:
        log_event(
            logger,
            "focus_warning",
            level=logging.WARNING,
            exit_count=exit_count,
            preset=preset_name,
            time_away_ms=time_away_ms,
            time_away=time_away,
        )

    def penalty_alert(self, points_lost: int, app_id: str) -> None:
        log_event(logger, "penalty_alert", level=logging.WARNING, app=app_id, points_lost=points_lost)

    def usage_nudge(self, app_id: str, usage_minutes: int, limit_minutes: int) -> None:
        log_event(
            logger,
            "usage_nudge",
            app=app_id,
            usage_minutes=usage_minutes,
            limit_minutes=limit_minutes,
        )

    def session_complete(self, session: FocusSession) -> None:
        log_event(
            logger,
            "session_complete",
            id=session.id,
            preset=session.preset_name,
            points=session.points_earned,
            focus_ms=session.total_focus_time,
            exits=session.exit_count,
            focus_pct=focus_percentage(session),
        )

    def points_changed(self, delta: int, reason: str) -> None:
        log_event(logger, "points_changed", delta=delta, reason=reason)
