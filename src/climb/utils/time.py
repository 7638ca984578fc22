from __future__ import annotations

import datetime as dt
from typing import Any, Optional

try:
    from zoneinfo import ZoneInfo
except Exception:  # pragma: no cover - fallback for environments without zoneinfo
    ZoneInfo = None  # type: ignore


def parse_ts(value: Any) -> Optional[dt.datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return dt.datetime.fromtimestamp(value / 1000.0, tz=dt.timezone.utc)
    if isinstance(value, str):
        try:
            parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=dt.timezone.utc)
            return parsed
        except ValueError:
            return None
    return None


def to_epoch_ms(value: dt.datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return int(round(value.timestamp() * 1000))


def format_ts(epoch_ms: int) -> str:
    value = dt.datetime.fromtimestamp(epoch_ms / 1000.0, tz=dt.timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def resolve_tz(name: str) -> Optional[dt.tzinfo]:
    """Map a config timezone name to a tzinfo; ``None`` means system local."""
    if not name:
        return None
    key = str(name).strip()
    if key.lower() in {"local", "system", "default"}:
        return None
    if key.upper() == "UTC":
        return dt.timezone.utc
    if ZoneInfo is None:
        return None
    try:
        return ZoneInfo(key)
    except Exception:
        return None


def format_duration_ms(millis: int) -> str:
    seconds = max(0, int(millis)) // 1000
    minutes = seconds // 60
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"
