import json
import logging
import uuid
from datetime import datetime, timezone, tzinfo
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .utils.time import resolve_tz

# Loggers whose structured events are user-facing (warnings, nudges, penalties).
FOCUS_EVENT_LOGGERS = ("climb.notifier",)


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Messages that are themselves JSON objects (see :func:`log_event`) are
    nested under ``meta`` and their ``event`` key is lifted to the top level.
    """

    def __init__(
        self,
        run_id: str,
        tz: Optional[tzinfo] = None,
        include_run_id: bool = True,
    ) -> None:
        super().__init__()
        self._run_id = run_id
        self._tz = tz
        self._include_run_id = include_run_id

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _format_ts(record.created, self._tz),
            "level": record.levelname,
            "component": record.name.replace("climb.", "", 1),
        }
        if self._include_run_id:
            payload["run_id"] = self._run_id

        parsed = _parse_json(record.getMessage())
        if parsed is None:
            payload["event"] = "log"
            payload["msg"] = record.getMessage()
        else:
            payload["event"] = parsed.pop("event", "log")
            if parsed:
                payload["meta"] = parsed

        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class FocusEventFormatter(logging.Formatter):
    """``<ts> <event> key=value ...`` lines for the focus event log."""

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        super().__init__()
        self._tz = tz

    def format(self, record: logging.LogRecord) -> str:
        ts = _format_ts(record.created, self._tz)
        parsed = _parse_json(record.getMessage())
        if parsed is None:
            return f"{ts} {record.getMessage()}"
        event = parsed.pop("event", "event")
        fields = " ".join(f"{key}={_text_value(value)}" for key, value in parsed.items())
        return f"{ts} {event} {fields}".rstrip()


def setup_logging(
    level: str = "INFO",
    *,
    log_dir: Optional[Path] = None,
    log_file: str = "climb.log",
    max_mb: int = 20,
    backup_count: int = 10,
    use_json: bool = True,
    to_console: bool = True,
    timezone_name: str = "local",
    include_run_id: bool = True,
    events_file: Optional[str] = None,
    prune_days: int = 0,
    run_id: Optional[str] = None,
) -> str:
    run_id = run_id or uuid.uuid4().hex
    tz = resolve_tz(timezone_name)
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if use_json:
        formatter: logging.Formatter = JsonFormatter(
            run_id, tz=tz, include_run_id=include_run_id
        )
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        if prune_days > 0:
            _prune_logs(log_dir, prune_days)
        root.addHandler(
            _rotating_handler(log_dir / log_file, max_mb, backup_count, formatter)
        )
        if events_file:
            events_handler = _rotating_handler(
                log_dir / events_file, max_mb, backup_count, FocusEventFormatter(tz)
            )
            for name in FOCUS_EVENT_LOGGERS:
                focus_logger = logging.getLogger(name)
                for handler in list(focus_logger.handlers):
                    focus_logger.removeHandler(handler)
                focus_logger.addHandler(events_handler)

    if to_console or not log_dir:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    return run_id


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **meta: Any) -> None:
    """Emit a structured line; ``JsonFormatter`` lifts ``event`` to the top level."""
    payload: Dict[str, Any] = {"event": event}
    payload.update(meta)
    logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))


def _rotating_handler(
    path: Path, max_mb: int, backup_count: int, formatter: logging.Formatter
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=max(1, int(max_mb)) * 1024 * 1024,
        backupCount=max(1, int(backup_count)),
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def _parse_json(message: str) -> Optional[Dict[str, Any]]:
    if not message or not message.startswith("{"):
        return None
    try:
        parsed = json.loads(message)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _text_value(value: Any) -> str:
    if isinstance(value, str):
        return f'"{value}"' if " " in value else value
    return json.dumps(value, separators=(",", ":"), default=str)


def _format_ts(epoch_seconds: float, tz: Optional[tzinfo]) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    local = moment.astimezone(tz) if tz is not None else moment.astimezone()
    return local.strftime("%Y-%m-%d %H:%M:%S")


def _prune_logs(log_dir: Path, prune_days: int) -> None:
    cutoff = datetime.now().timestamp() - prune_days * 86400
    for path in log_dir.glob("*.log*"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
        except OSError:
            continue
