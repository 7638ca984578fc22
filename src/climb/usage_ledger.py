from __future__ import annotations

import logging
import threading
from typing import Dict, Mapping, Optional

from .clock import Clock, DayKey
from .logging_ import log_event
from .models import LimitCheck, PenaltyResult, UsageLedgerEntry, normalize_app_id
from .store import BaseStore, StoreError

logger = logging.getLogger(__name__)

USAGE_KEY_PREFIX = "usage:"
NUDGE_KEY_PREFIX = "nudge:"
PENALTY_KEY_PREFIX = "penalty:"
DAY_KEY_PREFIXES = (USAGE_KEY_PREFIX, NUDGE_KEY_PREFIX, PENALTY_KEY_PREFIX)

MS_PER_MINUTE = 60_000


class UsageLedger:
    """Per-day, per-app external usage with once-per-day nudge/penalty flags.

    State lives in the key/value store under ``usage:<date>``,
    ``nudge:<date>`` and ``penalty:<date>``, each a JSON map keyed by the
    normalised app id. A new calendar day reads fresh keys; older days are
    never written again. Every read-modify-write of one key runs under that
    key's lock.
    """

    def __init__(
        self,
        store: BaseStore,
        clock: Clock,
        limits_minutes: Optional[Mapping[str, int]] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._limits = {
            normalize_app_id(app): int(minutes)
            for app, minutes in (limits_minutes or {}).items()
        }
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def record_usage(self, app_id: str, millis: int, day: Optional[DayKey] = None) -> None:
        if millis <= 0:
            return
        app = normalize_app_id(app_id)
        if not app:
            return
        key = self._key(USAGE_KEY_PREFIX, day)
        with self._key_lock(key):
            try:
                usage = self._read_map(key, strict=True)
            except StoreError:
                logger.exception("usage not recorded for %s: %s unreadable", app, key)
                return
            usage[app] = int(usage.get(app, 0)) + int(millis)
            self._write_map(key, usage)

    def day_of(self, epoch_ms: int) -> DayKey:
        return self._clock.day_of(epoch_ms)

    def usage_millis(self, app_id: str, day: Optional[DayKey] = None) -> int:
        usage = self._read_map(self._key(USAGE_KEY_PREFIX, day))
        return int(usage.get(normalize_app_id(app_id), 0))

    def usage_minutes(self, app_id: str, day: Optional[DayKey] = None) -> int:
        return self.usage_millis(app_id, day) // MS_PER_MINUTE

    def limit_minutes(self, app_id: str) -> int:
        return self._limits.get(normalize_app_id(app_id), 0)

    def is_limit_exceeded(self, app_id: str) -> bool:
        limit = self.limit_minutes(app_id)
        if limit <= 0:
            return False
        return self.usage_minutes(app_id) >= limit

    def was_nudge_shown(self, app_id: str) -> bool:
        flags = self._read_map(self._key(NUDGE_KEY_PREFIX))
        return bool(flags.get(normalize_app_id(app_id)))

    def mark_nudge_shown(self, app_id: str) -> None:
        self._test_and_set(NUDGE_KEY_PREFIX, normalize_app_id(app_id))

    def apply_penalty_if_needed(self, app_id: str, points: int) -> PenaltyResult:
        app = normalize_app_id(app_id)
        if not self._test_and_set(PENALTY_KEY_PREFIX, app):
            return PenaltyResult(applied=False, points_lost=0)
        log_event(logger, "usage_penalty_applied", app=app, points_lost=int(points))
        return PenaltyResult(applied=True, points_lost=int(points))

    def check_limit(self, app_id: str, penalty_points: int) -> LimitCheck:
        """Run the limit-check path once: nudge and penalty are each gated per day."""
        app = normalize_app_id(app_id)
        limit = self.limit_minutes(app)
        minutes = self.usage_minutes(app)
        exceeded = limit > 0 and minutes >= limit
        result = LimitCheck(
            app_id=app, usage_minutes=minutes, limit_minutes=limit, exceeded=exceeded
        )
        if not exceeded:
            return result
        result.show_nudge = self._test_and_set(NUDGE_KEY_PREFIX, app)
        result.penalty = self.apply_penalty_if_needed(app, penalty_points)
        return result

    def entry(self, app_id: str, day: Optional[DayKey] = None) -> UsageLedgerEntry:
        app = normalize_app_id(app_id)
        day = day or self._clock.today()
        return UsageLedgerEntry(
            date_key=str(day),
            app_id=app,
            accumulated_millis=int(self._read_map(self._key(USAGE_KEY_PREFIX, day)).get(app, 0)),
            nudge_shown=bool(self._read_map(self._key(NUDGE_KEY_PREFIX, day)).get(app)),
            penalty_applied=bool(self._read_map(self._key(PENALTY_KEY_PREFIX, day)).get(app)),
        )

    def snapshot(self, day: Optional[DayKey] = None) -> Dict[str, UsageLedgerEntry]:
        day = day or self._clock.today()
        apps = set(self._read_map(self._key(USAGE_KEY_PREFIX, day)))
        apps.update(self._read_map(self._key(NUDGE_KEY_PREFIX, day)))
        apps.update(self._read_map(self._key(PENALTY_KEY_PREFIX, day)))
        return {app: self.entry(app, day) for app in sorted(apps)}

    def _test_and_set(self, prefix: str, app: str) -> bool:
        """Set today's flag for ``app``; ``True`` only for the call that set it."""
        key = self._key(prefix)
        with self._key_lock(key):
            try:
                flags = self._read_map(key, strict=True)
            except StoreError:
                logger.exception("flag not set for %s: %s unreadable", app, key)
                return False
            if flags.get(app):
                return False
            flags[app] = True
            self._write_map(key, flags)
        return True

    def _key(self, prefix: str, day: Optional[DayKey] = None) -> str:
        return f"{prefix}{day or self._clock.today()}"

    def _key_lock(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def _read_map(self, key: str, strict: bool = False) -> Dict[str, object]:
        """Strict reads re-raise ``StoreError`` so a failed read is never written back."""
        try:
            value = self._store.get_json(key, {})
        except StoreError:
            if strict:
                raise
            logger.exception("usage ledger read failed for %s", key)
            return {}
        return value if isinstance(value, dict) else {}

    def _write_map(self, key: str, value: Dict[str, object]) -> None:
        try:
            self._store.set_json(key, value)
        except StoreError:
            logger.exception("usage ledger write failed for %s", key)
