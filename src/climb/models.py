from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

APP_STATE_ACTIVE = "active"
APP_STATE_BACKGROUND = "background"
APP_STATE_INACTIVE = "inactive"
VALID_APP_STATES = {APP_STATE_ACTIVE, APP_STATE_BACKGROUND, APP_STATE_INACTIVE}
AWAY_STATES = {APP_STATE_BACKGROUND, APP_STATE_INACTIVE}

MAX_STREAK_MULTIPLIER = 3.0
STREAK_MULTIPLIER_STEP = 0.1


def normalize_app_id(app_id: str) -> str:
    return str(app_id or "").strip().lower()


@dataclass
class AppLeave:
    left_at: int
    returned_at: int

    @property
    def duration_ms(self) -> int:
        return max(0, self.returned_at - self.left_at)

    def to_dict(self) -> Dict[str, Any]:
        return {"leftAt": self.left_at, "returnedAt": self.returned_at}

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AppLeave":
        return cls(left_at=int(raw.get("leftAt", 0)), returned_at=int(raw.get("returnedAt", 0)))


@dataclass
class FocusSession:
    id: str
    session_id: str
    start_time: int
    preset_name: str
    end_time: Optional[int] = None
    total_duration: int = 0
    total_focus_time: int = 0
    app_leave_times: List[AppLeave] = field(default_factory=list)
    exit_count: int = 0
    completed: bool = False
    points_earned: int = 0

    def time_away_ms(self) -> int:
        return sum(leave.duration_ms for leave in self.app_leave_times)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "sessionId": self.session_id,
            "startTime": self.start_time,
            "presetName": self.preset_name,
            "totalDuration": self.total_duration,
            "totalFocusTime": self.total_focus_time,
            "appLeaveTimes": [leave.to_dict() for leave in self.app_leave_times],
            "exitCount": self.exit_count,
            "completed": self.completed,
            "pointsEarned": self.points_earned,
        }
        if self.end_time is not None:
            data["endTime"] = self.end_time
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "FocusSession":
        end_time = raw.get("endTime")
        return cls(
            id=str(raw.get("id", "")),
            session_id=str(raw.get("sessionId", "")),
            start_time=int(raw.get("startTime", 0)),
            preset_name=str(raw.get("presetName", "")),
            end_time=int(end_time) if end_time is not None else None,
            total_duration=int(raw.get("totalDuration", 0)),
            total_focus_time=int(raw.get("totalFocusTime", 0)),
            app_leave_times=[
                AppLeave.from_dict(item)
                for item in raw.get("appLeaveTimes") or []
                if isinstance(item, dict)
            ],
            exit_count=int(raw.get("exitCount", 0)),
            completed=bool(raw.get("completed", False)),
            points_earned=int(raw.get("pointsEarned", 0)),
        )


@dataclass
class UsageLedgerEntry:
    date_key: str
    app_id: str
    accumulated_millis: int = 0
    nudge_shown: bool = False
    penalty_applied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dateKey": self.date_key,
            "appId": self.app_id,
            "accumulatedMillis": self.accumulated_millis,
            "nudgeShown": self.nudge_shown,
            "penaltyApplied": self.penalty_applied,
        }


@dataclass
class PenaltyResult:
    applied: bool
    points_lost: int

    def to_dict(self) -> Dict[str, Any]:
        return {"applied": self.applied, "pointsLost": self.points_lost}


@dataclass
class LimitCheck:
    app_id: str
    usage_minutes: int
    limit_minutes: int
    exceeded: bool
    show_nudge: bool = False
    penalty: PenaltyResult = field(default_factory=lambda: PenaltyResult(False, 0))


def streak_multiplier(
    current_streak: int,
    step: float = STREAK_MULTIPLIER_STEP,
    cap: float = MAX_STREAK_MULTIPLIER,
) -> float:
    return round(min(cap, 1.0 + step * max(0, current_streak)), 6)


@dataclass
class TeamStreak:
    current_streak: int = 0
    all_members_consecutive_days: int = 0
    streak_multiplier: float = 1.0
    last_session_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStreak": self.current_streak,
            "allMembersConsecutiveDays": self.all_members_consecutive_days,
            "streakMultiplier": self.streak_multiplier,
            "lastSessionDate": self.last_session_date,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TeamStreak":
        current = int(raw.get("currentStreak", 0))
        last = raw.get("lastSessionDate")
        return cls(
            current_streak=current,
            all_members_consecutive_days=int(raw.get("allMembersConsecutiveDays", 0)),
            streak_multiplier=float(raw.get("streakMultiplier", streak_multiplier(current))),
            last_session_date=str(last)[:10] if last else None,
        )


@dataclass
class TeamMember:
    user_id: str
    name: str
    role: str = "member"
    joined_at: int = 0
    pomodoro_sessions_completed: int = 0
    last_session_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "name": self.name,
            "role": self.role,
            "joinedAt": self.joined_at,
            "pomodoroSessionsCompleted": self.pomodoro_sessions_completed,
            "lastSessionDate": self.last_session_date,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TeamMember":
        return cls(
            user_id=str(raw.get("userId", "")),
            name=str(raw.get("name", raw.get("userId", ""))),
            role=str(raw.get("role", "member")),
            joined_at=int(raw.get("joinedAt", 0) or 0),
            pomodoro_sessions_completed=int(raw.get("pomodoroSessionsCompleted", 0)),
            last_session_date=raw.get("lastSessionDate") or None,
        )


@dataclass
class TeamReward:
    id: str
    name: str
    description: str
    points: int
    unlocked_at: int
    milestone: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "points": self.points,
            "unlockedAt": self.unlocked_at,
            "milestone": self.milestone,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "TeamReward":
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            description=str(raw.get("description", "")),
            points=int(raw.get("points", 0)),
            unlocked_at=int(raw.get("unlockedAt", 0) or 0),
            milestone=int(raw.get("milestone", 0)),
        )


@dataclass
class Team:
    id: str
    name: str
    owner_id: str
    description: str = ""
    members: List[TeamMember] = field(default_factory=list)
    is_public: bool = True
    access_code: str = ""
    max_members: int = 10
    team_points: int = 0
    team_level: int = 1
    team_rewards: List[TeamReward] = field(default_factory=list)
    streak: TeamStreak = field(default_factory=TeamStreak)
    created_at: int = 0
    updated_at: int = 0

    def member(self, user_id: str) -> Optional[TeamMember]:
        for item in self.members:
            if item.user_id == user_id:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "ownerId": self.owner_id,
            "members": [item.to_dict() for item in self.members],
            "isPublic": self.is_public,
            "accessCode": self.access_code,
            "maxMembers": self.max_members,
            "teamPoints": self.team_points,
            "teamLevel": self.team_level,
            "teamRewards": [item.to_dict() for item in self.team_rewards],
            "streak": self.streak.to_dict(),
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Team":
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            owner_id=str(raw.get("ownerId", "")),
            description=str(raw.get("description", "")),
            members=[
                TeamMember.from_dict(item)
                for item in raw.get("members") or []
                if isinstance(item, dict)
            ],
            is_public=bool(raw.get("isPublic", True)),
            access_code=str(raw.get("accessCode", "") or ""),
            max_members=int(raw.get("maxMembers", 10)),
            team_points=int(raw.get("teamPoints", 0)),
            team_level=int(raw.get("teamLevel", 1)),
            team_rewards=[
                TeamReward.from_dict(item)
                for item in raw.get("teamRewards") or []
                if isinstance(item, dict)
            ],
            streak=TeamStreak.from_dict(raw.get("streak") or {}),
            created_at=int(raw.get("createdAt", 0) or 0),
            updated_at=int(raw.get("updatedAt", 0) or 0),
        )


@dataclass
class BlockedApp:
    id: str
    package_name: str
    name: str
    category: str = "other"
    is_blocked: bool = True
    added_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "packageName": self.package_name,
            "name": self.name,
            "category": self.category,
            "isBlocked": self.is_blocked,
        }
        if self.added_at:
            data["addedAt"] = self.added_at
        return data

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "BlockedApp":
        return cls(
            id=str(raw.get("id", "")),
            package_name=str(raw.get("packageName", "")),
            name=str(raw.get("name", "")),
            category=str(raw.get("category", "other")),
            is_blocked=bool(raw.get("isBlocked", True)),
            added_at=raw.get("addedAt") or None,
        )


@dataclass
class BlockerSettings:
    enabled: bool = True
    block_on_pomodoro_start: bool = True
    blocked_apps: List[BlockedApp] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "blockOnPomodoroStart": self.block_on_pomodoro_start,
            "blockedApps": [app.to_dict() for app in self.blocked_apps],
        }


@dataclass
class PomodoroPreset:
    id: str
    name: str
    focus_min: int
    short_break_min: int
    long_break_min: int
    long_break_after: int


PRESETS: List[PomodoroPreset] = [
    PomodoroPreset("classic", "Classic", 25, 5, 15, 4),
    PomodoroPreset("short", "Short", 15, 3, 10, 4),
    PomodoroPreset("deep", "Deep Work", 50, 10, 20, 2),
    PomodoroPreset("study", "Study Mode", 30, 5, 15, 3),
]


def find_preset(name_or_id: str) -> Optional[PomodoroPreset]:
    key = str(name_or_id or "").strip().lower()
    for preset in PRESETS:
        if preset.id == key or preset.name.lower() == key:
            return preset
    return None
