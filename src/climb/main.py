from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import threading
import time
from typing import IO, Any, Dict, Iterator, Optional

from .bus import EventBus
from .clock import Clock, ManualClock, SystemClock
from .config import Config, load_config
from .engine import FocusEngine
from .logging_ import log_event, setup_logging
from .normalize import Event
from .notifier import LogNotifier
from .observability import Observability
from .retention import retention_result_json, run_retention
from .stats import build_session_stats
from .store import SQLiteStore

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Climb focus session engine")
    parser.add_argument(
        "--config", default="configs/config.yaml", help="path to config file"
    )
    parser.add_argument(
        "--events",
        default="-",
        help="JSONL file of app-state/usage/session events ('-' for stdin)",
    )
    parser.add_argument(
        "--replay",
        action="store_true",
        help="drive the clock from event timestamps instead of wall time",
    )
    return parser.parse_args(argv)


def iter_jsonl(stream: IO[str]) -> Iterator[Dict[str, Any]]:
    for line_no, line in enumerate(stream, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("skipping invalid json on line %s", line_no)
            continue
        if not isinstance(payload, dict):
            logger.warning("skipping non-object event on line %s", line_no)
            continue
        yield payload


def build_store(config: Config) -> SQLiteStore:
    store = SQLiteStore(
        config.db_path,
        wal_mode=config.wal_mode,
        busy_timeout_ms=config.store.busy_timeout_ms,
        encryption=config.encryption,
        retry_attempts=config.store.write_retry_attempts,
        retry_backoff_ms=config.store.write_retry_backoff_ms,
    )
    store.connect()
    store.migrate(config.migrations_path)
    return store


def run(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    setup_logging(
        config.log_level,
        log_dir=config.logging.dir,
        log_file=config.logging.file_name,
        max_mb=config.logging.max_mb,
        backup_count=config.logging.backup_count,
        use_json=config.logging.json,
        to_console=config.logging.to_console,
        timezone_name=config.logging.timezone,
        events_file=config.logging.events_file or None,
        prune_days=config.logging.prune_days,
    )

    logger.info("starting climb engine")

    clock: Clock
    if args.replay:
        clock = ManualClock(timezone_name=config.clock.timezone)
    else:
        clock = SystemClock(config.clock.timezone)

    store = build_store(config)
    metrics = Observability(log_interval_sec=config.observability.log_interval_sec)
    engine = FocusEngine(config, store, clock, notifier=LogNotifier(), metrics=metrics)

    if config.retention.enabled and not args.replay:
        try:
            result = run_retention(store, config.retention, clock)
            logger.info(retention_result_json(result))
        except Exception:
            logger.exception("retention failed")

    def _dispatch(event: Event) -> None:
        if isinstance(clock, ManualClock) and event.ts_ms > clock.now_ms():
            clock.set(event.ts_ms)
        engine.handle(event)

    bus = EventBus(
        _dispatch,
        clock,
        validation_level=config.validation_level,
        queue_size=config.queue.max_size,
        metrics=metrics,
        db_size=store.get_db_size,
    )
    bus.start()

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown requested")
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    stream: IO[str] = sys.stdin if args.events == "-" else open(args.events, encoding="utf-8")
    queued = 0
    try:
        for raw in iter_jsonl(stream):
            # Single producer: once backlog is below capacity enqueue cannot fail.
            while bus.backlog >= bus.capacity and not stop_event.is_set():
                time.sleep(0.05)
            if stop_event.is_set():
                break
            if bus.enqueue(raw):
                queued += 1
        if not stop_event.is_set():
            bus.join()
    finally:
        if stream is not sys.stdin:
            stream.close()
        bus.stop(drain_seconds=config.queue.shutdown_drain_seconds)
        log_event(
            logger,
            "run_summary",
            queued=queued,
            sessions=build_session_stats(engine.tracker.all_sessions()),
            usage={app: entry.to_dict() for app, entry in engine.ledger.snapshot().items()},
            metrics=metrics.snapshot(store.get_db_size()),
        )
        store.close()
        logger.info("climb engine stopped")
    return 0


if __name__ == "__main__":
    sys.exit(run())
