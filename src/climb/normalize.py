from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .models import VALID_APP_STATES, normalize_app_id
from .utils.time import parse_ts, to_epoch_ms

EVENT_APP_STATE = "app_state"
EVENT_APP_USAGE = "app_usage"
EVENT_SESSION_START = "session_start"
EVENT_SESSION_END = "session_end"
EVENT_SESSION_ABORT = "session_abort"
SESSION_EVENT_TYPES = {EVENT_SESSION_START, EVENT_SESSION_END, EVENT_SESSION_ABORT}
VALID_EVENT_TYPES = {EVENT_APP_STATE, EVENT_APP_USAGE} | SESSION_EVENT_TYPES


class NormalizationError(ValueError):
    pass


@dataclass
class AppStateEvent:
    state: str
    ts_ms: int
    app: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class UsageEvent:
    app: str
    millis: int
    ts_ms: int
    source: str = "unknown"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class SessionCommand:
    """User action on the focus timer: start, end (with points) or abort."""

    action: str
    ts_ms: int
    session_id: str = ""
    preset_name: str = ""
    points: int = 0
    team_id: Optional[str] = None
    user_id: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))


Event = Union[AppStateEvent, UsageEvent, SessionCommand]


def normalize_event(
    raw: Dict[str, Any],
    validation_level: str = "lenient",
    now_ms: Optional[int] = None,
) -> Event:
    if not isinstance(raw, dict):
        raise NormalizationError("event must be an object")

    level = validation_level.strip().lower()
    if level not in {"lenient", "strict"}:
        raise NormalizationError(f"unknown validation level: {validation_level}")
    strict = level == "strict"

    event_type = _normalize_type(raw, strict)
    ts_ms = _normalize_ts(raw.get("ts"), strict, now_ms)
    event_id = _normalize_event_id(raw.get("event_id"), strict)

    if event_type == EVENT_APP_STATE:
        state = str(raw.get("state") or "").strip().lower()
        if state not in VALID_APP_STATES:
            raise NormalizationError(f"invalid app state: {raw.get('state')!r}")
        app = normalize_app_id(raw.get("app") or "") or None
        return AppStateEvent(state=state, ts_ms=ts_ms, app=app, event_id=event_id)

    if event_type in SESSION_EVENT_TYPES:
        return _normalize_session_command(raw, event_type, ts_ms, event_id, strict)

    app =normalize_app_id(raw.get("app") or "")
    if not app:
        raise NormalizationError("usage event requires app")
    millis = _normalize_millis(raw, strict)
    return UsageEvent(
        app=app,
        millis=millis,
        ts_ms=ts_ms,
        source=str(raw.get("source") or "unknown"),
        event_id=event_id,
    )


def _normalize_session_command(
    raw: Dict[str, Any], event_type: str, ts_ms: int, event_id: str, strict: bool
) -> SessionCommand:
    action = event_type.split("_", 1)[1]
    session_id = str(raw.get("session_id") or "")
    if action == "start" and not session_id:
        if strict:
            raise NormalizationError("session_start requires session_id")
        session_id = str(uuid.uuid4())
    try:
        points = int(raw.get("points") or 0)
    except (TypeError, ValueError) as exc:
        raise NormalizationError("invalid points") from exc
    return SessionCommand(
        action=action,
        ts_ms=ts_ms,
        session_id=session_id,
        preset_name=str(raw.get("preset") or ""),
        points=points,
        team_id=str(raw["team_id"]) if raw.get("team_id") else None,
        user_id=str(raw["user_id"]) if raw.get("user_id") else None,
        event_id=event_id,
    )


def _normalize_type(raw: Dict[str, Any], strict: bool) -> str:
    value = raw.get("type")
    if value in (None, ""):
        if strict:
            raise NormalizationError("missing type")
        return EVENT_APP_USAGE if "millis" in raw or "minutes" in raw else EVENT_APP_STATE
    event_type = str(value).strip().lower()
    if event_type not in VALID_EVENT_TYPES:
        raise NormalizationError(f"unknown event type: {value!r}")
    return event_type


def _normalize_ts(value: Any, strict: bool, now_ms: Optional[int]) -> int:
    if value in (None, ""):
        if strict or now_ms is None:
            raise NormalizationError("missing ts")
        return int(now_ms)
    if isinstance(value, bool):
        raise NormalizationError("invalid ts")
    if isinstance(value, (int, float)):
        return int(value)
    parsed = parse_ts(value)
    if parsed is None:
        if strict or now_ms is None:
            raise NormalizationError("invalid ts")
        return int(now_ms)
    return to_epoch_ms(parsed)


def _normalize_event_id(value: Any, strict: bool) -> str:
    if not value:
        if strict:
            raise NormalizationError("missing event_id")
        return str(uuid.uuid4())
    return str(value)


def _normalize_millis(raw: Dict[str, Any], strict: bool) -> int:
    amount, factor = raw.get("millis"), 1
    if amount is None:
        amount, factor = raw.get("minutes"), 60_000
    if amount is None:
        raise NormalizationError("usage event requires millis or minutes")
    try:
        millis = int(float(amount) * factor)
    except (TypeError, ValueError) as exc:
        raise NormalizationError("invalid usage amount") from exc
    if millis < 0 and strict:
        raise NormalizationError("usage amount must not be negative")
    return millis
