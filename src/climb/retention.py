from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional

from .clock import Clock, DayKey, MS_PER_DAY
from .config import RetentionConfig
from .store import BaseStore, SQLiteStore
from .usage_ledger import DAY_KEY_PREFIXES

logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    deleted_day_keys: int = 0
    deleted_sessions: int = 0
    db_size_before: int = 0
    db_size_after: int = 0
    vacuumed: bool = False


def run_retention(
    store: BaseStore,
    policy: RetentionConfig,
    clock: Clock,
    *,
    force_vacuum: bool = False,
) -> RetentionResult:
    """Drop day-scoped ledger keys and focus sessions past their retention window."""
    sqlite = store if isinstance(store, SQLiteStore) else None
    result = RetentionResult(db_size_before=sqlite.get_db_size() if sqlite else 0)
    now_ms = clock.now_ms()

    if policy.usage_days > 0:
        cutoff = clock.today().shift(-policy.usage_days)
        result.deleted_day_keys = _delete_day_keys_before(store, cutoff)

    if policy.sessions_days > 0:
        cutoff_ms = now_ms - policy.sessions_days * MS_PER_DAY
        result.deleted_sessions = store.delete_old_focus_sessions(cutoff_ms)

    if sqlite is None:
        return result

    sqlite.checkpoint_wal()
    result.db_size_after = sqlite.get_db_size()
    if force_vacuum or _should_vacuum(policy, result.db_size_after):
        sqlite.vacuum()
        result.vacuumed = True
        result.db_size_after = sqlite.get_db_size()
    return result


def retention_result_json(result: RetentionResult) -> str:
    payload = {
        "event": "retention",
        "deleted_day_keys": result.deleted_day_keys,
        "deleted_sessions": result.deleted_sessions,
        "db_size_before": result.db_size_before,
        "db_size_after": result.db_size_after,
        "vacuumed": result.vacuumed,
    }
    return json.dumps(payload, separators=(",", ":"))


def _delete_day_keys_before(store: BaseStore, cutoff: DayKey) -> int:
    deleted = 0
    for prefix in DAY_KEY_PREFIXES:
        for key in store.keys(prefix):
            day = DayKey.parse(key[len(prefix):])
            if day is None:
                logger.warning("retention skipped malformed key %s", key)
                continue
            if day < cutoff:
                store.delete(key)
                deleted += 1
    return deleted


def _should_vacuum(policy: RetentionConfig, db_size_bytes: int) -> bool:
    if policy.max_db_mb <= 0:
        return False
    return db_size_bytes >= policy.max_db_mb * 1024 * 1024
