from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from .config import EncryptionConfig
from .models import FocusSession
from .utils.crypto import RecordCipher, envelope_token

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    pass


class BaseStore:
    """Key/value state plus an append-only focus session log.

    ``get``/``set`` are the persistence contract the engine relies on: each
    read-modify-write is a separate round trip with no transactions.
    """

    def __init__(self, encryption: EncryptionConfig | None = None) -> None:
        self._encryption = encryption or EncryptionConfig()
        self._cipher = (
            RecordCipher.from_env(self._encryption.key_env, self._encryption.key_path)
            if self._encryption.enabled
            else None
        )

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def insert_focus_session(self, session: FocusSession) -> None:
        raise NotImplementedError

    def fetch_focus_sessions(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> List[FocusSession]:
        raise NotImplementedError

    def clear_focus_sessions(self) -> int:
        raise NotImplementedError

    def delete_old_focus_sessions(self, cutoff_ms: int) -> int:
        raise NotImplementedError

    def close(self) -> None:
        return None

    def get_json(self, key: str, default=None):
        raw = self.get(key)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("discarding unreadable value for key %s", key)
            return default

    def set_json(self, key: str, value) -> None:
        self.set(key, json.dumps(value, separators=(",", ":")))

    def _encode_record(self, session: FocusSession) -> str:
        record_json = json.dumps(session.to_dict(), separators=(",", ":"))
        if not self._encryption.enabled:
            return record_json
        if self._cipher is None:
            raise StoreError(
                f"encryption enabled but key missing: set {self._encryption.key_env}"
            )
        return self._cipher.seal(record_json)

    def _decode_record(self, value: str) -> Optional[FocusSession]:
        try:
            if envelope_token(value) is not None:
                if self._cipher is None:
                    logger.warning("encrypted focus session skipped: no key configured")
                    return None
                value = self._cipher.open(value)
            raw = json.loads(value)
        except (TypeError, ValueError):
            logger.warning("discarding unreadable focus session record")
            return None
        if not isinstance(raw, dict):
            return None
        return FocusSession.from_dict(raw)


class MemoryStore(BaseStore):
    """In-process store; state is lost when the object goes away."""

    def __init__(self, encryption: EncryptionConfig | None = None) -> None:
        super().__init__(encryption)
        self._lock = threading.Lock()
        self._state: Dict[str, str] = {}
        self._sessions: List[tuple[int, str]] = []

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._state.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._state[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._state.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(key for key in self._state if key.startswith(prefix))

    def insert_focus_session(self, session: FocusSession) -> None:
        record = self._encode_record(session)
        with self._lock:
            self._sessions.append((session.start_time, record))

    def fetch_focus_sessions(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> List[FocusSession]:
        with self._lock:
            rows = sorted(self._sessions, key=lambda item: item[0])
        sessions: List[FocusSession] = []
        for start_time, record in rows:
            if start_ms is not None and start_time < start_ms:
                continue
            if end_ms is not None and start_time > end_ms:
                continue
            session = self._decode_record(record)
            if session is not None:
                sessions.append(session)
        return sessions

    def clear_focus_sessions(self) -> int:
        with self._lock:
            removed = len(self._sessions)
            self._sessions = []
        return removed

    def delete_old_focus_sessions(self, cutoff_ms: int) -> int:
        with self._lock:
            kept = [item for item in self._sessions if item[0] >= cutoff_ms]
            removed = len(self._sessions) - len(kept)
            self._sessions = kept
        return removed


class SQLiteStore(BaseStore):
    def __init__(
        self,
        db_path: Path,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
        encryption: EncryptionConfig | None = None,
        retry_attempts: int = 3,
        retry_backoff_ms: int = 50,
    ) -> None:
        super().__init__(encryption)
        self.db_path = Path(db_path)
        self.wal_mode = wal_mode
        self.busy_timeout_ms = max(0, int(busy_timeout_ms))
        self._retry_attempts = max(0, int(retry_attempts))
        self._retry_backoff_ms = max(0, int(retry_backoff_ms))
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.execute("PRAGMA foreign_keys = ON;")
        if self.busy_timeout_ms:
            self._conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms};")
        if self.wal_mode:
            self._conn.execute("PRAGMA journal_mode = WAL;")

    def migrate(self, migrations_path: Path) -> None:
        conn = self._require_conn()
        migrations_path = Path(migrations_path)
        sql_files = sorted(migrations_path.glob("*.sql"))
        if not sql_files:
            raise FileNotFoundError(f"no migrations found in {migrations_path}")
        with self._lock:
            for sql_path in sql_files:
                conn.executescript(sql_path.read_text())
            conn.commit()

    def table_names(self) -> List[str]:
        conn = self._require_conn()
        with self._lock:
            rows = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            ).fetchall()
        return [row[0] for row in rows]

    def get(self, key: str) -> Optional[str]:
        conn = self._require_conn()
        try:
            with self._lock:
                row = conn.execute(
                    "SELECT value FROM state WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreError(f"state read failed for {key}: {exc}") from exc
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._write(
            """
            INSERT INTO state (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                updated_at = excluded.updated_at
            """,
            (key, value, _now_iso()),
        )

    def delete(self, key: str) -> None:
        self._write("DELETE FROM state WHERE key = ?", (key,))

    def keys(self, prefix: str = "") -> List[str]:
        conn = self._require_conn()
        try:
            with self._lock:
                rows = conn.execute(
                    "SELECT key FROM state WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                ).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"state scan failed: {exc}") from exc
        return [row[0] for row in rows]

    def insert_focus_session(self, session: FocusSession) -> None:
        self._write(
            """
            INSERT INTO focus_sessions (id, session_id, start_time, end_time, record_json)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                end_time = excluded.end_time,
                record_json = excluded.record_json
            """,
            (
                session.id,
                session.session_id,
                session.start_time,
                session.end_time,
                self._encode_record(session),
            ),
        )

    def fetch_focus_sessions(
        self,
        start_ms: Optional[int] = None,
        end_ms: Optional[int] = None,
    ) -> List[FocusSession]:
        conn = self._require_conn()
        query = "SELECT record_json FROM focus_sessions"
        params: list[int] = []
        clauses: list[str] = []
        if start_ms is not None:
            clauses.append("start_time >= ?")
            params.append(int(start_ms))
        if end_ms is not None:
            clauses.append("start_time <= ?")
            params.append(int(end_ms))
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY start_time ASC"
        try:
            with self._lock:
                rows = list(conn.execute(query, params))
        except sqlite3.Error as exc:
            raise StoreError(f"focus session read failed: {exc}") from exc
        sessions: List[FocusSession] = []
        for (record_json,) in rows:
            session = self._decode_record(record_json)
            if session is not None:
                sessions.append(session)
        return sessions

    def clear_focus_sessions(self) -> int:
        return self._write("DELETE FROM focus_sessions", ())

    def delete_old_focus_sessions(self, cutoff_ms: int) -> int:
        return self._write(
            "DELETE FROM focus_sessions WHERE start_time < ?", (int(cutoff_ms),)
        )

    def close(self) -> None:
        if self._conn is None:
            return
        with self._lock:
            self._conn.close()
        self._conn = None

    def get_db_size(self) -> int:
        return int(self.db_path.stat().st_size) if self.db_path.exists() else 0

    def checkpoint_wal(self) -> None:
        conn = self._require_conn()
        with self._lock:
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")

    def vacuum(self) -> None:
        conn = self._require_conn()
        with self._lock:
            conn.execute("VACUUM;")

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("database is not connected")
        return self._conn

    def _write(self, sql: str, params: tuple) -> int:
        conn = self._require_conn()
        attempts = self._retry_attempts
        for attempt in range(attempts + 1):
            try:
                with self._lock:
                    cursor = conn.execute(sql, params)
                    conn.commit()
                    return cursor.rowcount
            except sqlite3.OperationalError as exc:
                if "database is locked" not in str(exc).lower() or attempt >= attempts:
                    raise StoreError(f"write failed: {exc}") from exc
                time.sleep((self._retry_backoff_ms / 1000.0) * (2**attempt))
            except sqlite3.Error as exc:
                raise StoreError(f"write failed: {exc}") from exc
        return 0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
