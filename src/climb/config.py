from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]

MEMBER_ACTIVITY_MODES = {"lifetime", "daily"}


@dataclass
class ClockConfig:
    timezone: str = "local"


@dataclass
class FocusConfig:
    enabled: bool = True
    default_preset: str = "Classic"


@dataclass
class UsageConfig:
    limits_minutes: Dict[str, int] = field(default_factory=lambda: {"instagram": 10})
    penalty_points: int = 25


@dataclass
class StreakConfig:
    max_multiplier: float = 3.0
    multiplier_step: float = 0.1
    level_points: int = 5000
    level_reward_points: int = 500
    member_activity: str = "lifetime"


@dataclass
class BlockerConfig:
    enabled: bool = True
    block_on_pomodoro_start: bool = True


@dataclass
class QueueConfig:
    max_size: int = 1000
    shutdown_drain_seconds: int = 3


@dataclass
class StoreConfig:
    busy_timeout_ms: int = 5000
    write_retry_attempts: int = 3
    write_retry_backoff_ms: int = 50


@dataclass
class EncryptionConfig:
    enabled: bool = False
    key_env: str = "CLIMB_SESSION_KEY"
    key_path: str = ""


@dataclass
class RetentionConfig:
    enabled: bool = True
    usage_days: int = 30
    sessions_days: int = 365
    max_db_mb: int = 200


@dataclass
class ObservabilityConfig:
    log_interval_sec: int = 60


@dataclass
class LoggingConfig:
    dir: Path = PROJECT_ROOT / "logs"
    file_name: str = "climb.log"
    max_mb: int = 20
    backup_count: int = 10
    json: bool = True
    to_console: bool = True
    timezone: str = "local"
    events_file: str = "focus_events.log"
    prune_days: int = 0


@dataclass
class Config:
    db_path: Path
    migrations_path: Path
    validation_level: str = "lenient"
    wal_mode: bool = True
    log_level: str = "INFO"
    clock: ClockConfig = field(default_factory=ClockConfig)
    focus: FocusConfig = field(default_factory=FocusConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)
    streak: StreakConfig = field(default_factory=StreakConfig)
    blocker: BlockerConfig = field(default_factory=BlockerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    encryption: EncryptionConfig = field(default_factory=EncryptionConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path) -> Config:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    raw = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError("config root must be a mapping")
    return config_from_dict(raw)


def config_from_dict(raw: Dict[str, Any]) -> Config:
    db_path = _resolve_path(raw.get("db_path", "data/climb.db"))
    migrations_path = _resolve_path(raw.get("migrations_path", "migrations"))

    clock_raw = _as_dict(raw.get("clock"))
    clock = ClockConfig(timezone=str(clock_raw.get("timezone", "local")))

    focus_raw = _as_dict(raw.get("focus"))
    focus = FocusConfig(
        enabled=bool(focus_raw.get("enabled", True)),
        default_preset=str(focus_raw.get("default_preset", "Classic")),
    )

    usage_raw = _as_dict(raw.get("usage"))
    limits_raw = _as_dict(usage_raw.get("limits_minutes", {"instagram": 10}))
    usage = UsageConfig(
        limits_minutes={
            str(app).strip().lower(): max(0, int(minutes))
            for app, minutes in limits_raw.items()
            if str(app).strip()
        },
        penalty_points=max(0, int(usage_raw.get("penalty_points", 25))),
    )

    streak_raw = _as_dict(raw.get("streak"))
    member_activity = str(streak_raw.get("member_activity", "lifetime")).strip().lower()
    if member_activity not in MEMBER_ACTIVITY_MODES:
        raise ValueError(
            f"streak.member_activity must be one of {sorted(MEMBER_ACTIVITY_MODES)}"
        )
    streak = StreakConfig(
        max_multiplier=float(streak_raw.get("max_multiplier", 3.0)),
        multiplier_step=float(streak_raw.get("multiplier_step", 0.1)),
        level_points=max(1, int(streak_raw.get("level_points", 5000))),
        level_reward_points=int(streak_raw.get("level_reward_points", 500)),
        member_activity=member_activity,
    )

    blocker_raw = _as_dict(raw.get("blocker"))
    blocker = BlockerConfig(
        enabled=bool(blocker_raw.get("enabled", True)),
        block_on_pomodoro_start=bool(blocker_raw.get("block_on_pomodoro_start", True)),
    )

    queue_raw = _as_dict(raw.get("queue"))
    queue = QueueConfig(
        max_size=int(queue_raw.get("max_size", 1000)),
        shutdown_drain_seconds=int(queue_raw.get("shutdown_drain_seconds", 3)),
    )

    store_raw = _as_dict(raw.get("store"))
    store = StoreConfig(
        busy_timeout_ms=int(store_raw.get("busy_timeout_ms", 5000)),
        write_retry_attempts=int(store_raw.get("write_retry_attempts", 3)),
        write_retry_backoff_ms=int(store_raw.get("write_retry_backoff_ms", 50)),
    )

    encryption_raw = _as_dict(raw.get("encryption"))
    encryption = EncryptionConfig(
        enabled=bool(encryption_raw.get("enabled", False)),
        key_env=str(encryption_raw.get("key_env", "CLIMB_SESSION_KEY")),
        key_path=str(encryption_raw.get("key_path", "") or ""),
    )

    retention_raw = _as_dict(raw.get("retention"))
    retention = RetentionConfig(
        enabled=bool(retention_raw.get("enabled", True)),
        usage_days=int(retention_raw.get("usage_days", 30)),
        sessions_days=int(retention_raw.get("sessions_days", 365)),
        max_db_mb=int(retention_raw.get("max_db_mb", 200)),
    )

    observability_raw = _as_dict(raw.get("observability"))
    observability = ObservabilityConfig(
        log_interval_sec=int(observability_raw.get("log_interval_sec", 60)),
    )

    logging_raw = _as_dict(raw.get("logging"))
    logging_config = LoggingConfig(
        dir=_resolve_path(logging_raw.get("dir", "logs")),
        file_name=str(logging_raw.get("file_name", "climb.log")),
        max_mb=int(logging_raw.get("max_mb", 20)),
        backup_count=int(logging_raw.get("backup_count", 10)),
        json=bool(logging_raw.get("json", True)),
        to_console=bool(logging_raw.get("to_console", True)),
        timezone=str(logging_raw.get("timezone", clock.timezone)),
        events_file=str(logging_raw.get("events_file", "focus_events.log") or ""),
        prune_days=max(0, int(logging_raw.get("prune_days", 0))),
    )

    return Config(
        db_path=db_path,
        migrations_path=migrations_path,
        validation_level=str(raw.get("validation_level", "lenient")),
        wal_mode=bool(raw.get("wal_mode", True)),
        log_level=str(raw.get("log_level", "INFO")),
        clock=clock,
        focus=focus,
        usage=usage,
        streak=streak,
        blocker=blocker,
        queue=queue,
        store=store,
        encryption=encryption,
        retention=retention,
        observability=observability,
        logging=logging_config,
    )


def _resolve_path(value: str) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return PROJECT_ROOT / path


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}
