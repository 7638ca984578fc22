from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

ENVELOPE_KEY = "__enc__"
ENVELOPE_ALG = "fernet"
ENVELOPE_VERSION = 1


class RecordCipher:
    """Seals focus session JSON in a ``{"__enc__": <token>}`` envelope."""

    def __init__(self, key: bytes) -> None:
        self._fernet = Fernet(key)

    @classmethod
    def from_env(cls, key_env: str, key_path: str = "") -> Optional["RecordCipher"]:
        key = read_key(key_env, key_path)
        return cls(key) if key else None

    def seal(self, record_json: str) -> str:
        token = self._fernet.encrypt(record_json.encode("utf-8")).decode("ascii")
        return json.dumps(
            {ENVELOPE_KEY: token, "__alg__": ENVELOPE_ALG, "__v__": ENVELOPE_VERSION},
            separators=(",", ":"),
        )

    def open(self, stored: str) -> str:
        token = envelope_token(stored)
        if token is None:
            return stored
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken as exc:
            raise ValueError("record could not be decrypted with the configured key") from exc


def read_key(key_env: str, key_path: str = "") -> Optional[bytes]:
    """Key from the environment first, then from ``key_path``."""
    candidates = [os.getenv(key_env, "") if key_env else ""]
    if key_path:
        try:
            candidates.append(Path(key_path).read_text(encoding="utf-8"))
        except OSError:
            pass
    for candidate in candidates:
        if candidate.strip():
            return candidate.strip().encode("utf-8")
    return None


def generate_key() -> str:
    return Fernet.generate_key().decode("ascii")


def envelope_token(stored: str) -> Optional[str]:
    if not stored or not stored.startswith("{" + json.dumps(ENVELOPE_KEY)):
        return None
    try:
        parsed = json.loads(stored)
    except ValueError:
        return None
    if not isinstance(parsed, dict) or parsed.get("__alg__") != ENVELOPE_ALG:
        return None
    token = parsed.get(ENVELOPE_KEY)
    return str(token) if token else None
