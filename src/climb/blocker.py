from __future__ import annotations

import json
import logging
from typing import Dict, List, Optional

from .clock import Clock
from .config import BlockerConfig
from .models import BlockedApp, BlockerSettings
from .store import BaseStore, StoreError
from .utils.time import format_ts

logger = logging.getLogger(__name__)

BLOCKER_CONFIG_KEY = "app_blocker_config"

DEFAULT_BLOCKED_APPS: List[BlockedApp] = [
    BlockedApp("instagram", "com.instagram.android", "Instagram", "social", True),
    BlockedApp("tiktok", "com.zhiliaoapp.musically", "TikTok", "entertainment", True),
    BlockedApp("youtube", "com.google.android.youtube", "YouTube", "entertainment", False),
]


def active_blocked_apps(settings: BlockerSettings, session_active: bool = True) -> List[BlockedApp]:
    if not session_active:
        return []
    if not settings.enabled or not settings.block_on_pomodoro_start:
        return []
    return [app for app in settings.blocked_apps if app.is_blocked]


def merge_blocked_apps(
    defaults: List[BlockedApp], stored: List[Dict[str, object]]
) -> List[BlockedApp]:
    merged: Dict[str, Dict[str, object]] = {app.id: app.to_dict() for app in defaults}
    for raw in stored:
        if not isinstance(raw, dict) or not raw.get("id"):
            continue
        app_id = str(raw["id"])
        merged[app_id] = {**merged.get(app_id, {}), **raw}
    return [BlockedApp.from_dict(raw) for raw in merged.values()]


class BlockerConfigStore:
    """Persisted blocker settings; stored apps are merged over the defaults."""

    def __init__(
        self,
        store: BaseStore,
        clock: Clock,
        defaults: Optional[BlockerConfig] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._defaults = defaults or BlockerConfig()

    def default_settings(self) -> BlockerSettings:
        return BlockerSettings(
            enabled=self._defaults.enabled,
            block_on_pomodoro_start=self._defaults.block_on_pomodoro_start,
            blocked_apps=[BlockedApp.from_dict(app.to_dict()) for app in DEFAULT_BLOCKED_APPS],
        )

    def load(self) -> BlockerSettings:
        try:
            raw = self._store.get(BLOCKER_CONFIG_KEY)
        except StoreError:
            logger.exception("failed to read blocker config")
            return self.default_settings()
        if not raw:
            return self._persist(self.default_settings())

        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            parsed = None
        if not isinstance(parsed, dict):
            logger.warning("blocker config unreadable, resetting to defaults")
            return self._persist(self.default_settings())

        stored_apps = parsed.get("blockedApps")
        settings = BlockerSettings(
            enabled=bool(parsed.get("enabled", self._defaults.enabled)),
            block_on_pomodoro_start=bool(
                parsed.get("blockOnPomodoroStart", self._defaults.block_on_pomodoro_start)
            ),
            blocked_apps=merge_blocked_apps(
                DEFAULT_BLOCKED_APPS, stored_apps if isinstance(stored_apps, list) else []
            ),
        )
        return self._persist(settings)

    def toggle_blocker(self, enabled: bool) -> BlockerSettings:
        settings = self.load()
        settings.enabled = bool(enabled)
        return self._persist(settings)

    def toggle_block_on_start(self, block: bool) -> BlockerSettings:
        settings = self.load()
        settings.block_on_pomodoro_start = bool(block)
        return self._persist(settings)

    def toggle_app(self, app_id: str, is_blocked: bool) -> BlockerSettings:
        settings = self.load()
        for app in settings.blocked_apps:
            if app.id == app_id:
                app.is_blocked = bool(is_blocked)
        return self._persist(settings)

    def add_custom_app(
        self, package_name: str, name: str, category: str = "other"
    ) -> BlockerSettings:
        settings = self.load()
        now = self._clock.now_ms()
        app = BlockedApp(
            id=f"custom-{now}",
            package_name=package_name,
            name=name,
            category=category,
            is_blocked=True,
            added_at=format_ts(now),
        )
        settings.blocked_apps.insert(0, app)
        return self._persist(settings)

    def remove_app(self, app_id: str) -> BlockerSettings:
        settings = self.load()
        settings.blocked_apps = [app for app in settings.blocked_apps if app.id != app_id]
        return self._persist(settings)

    def _persist(self, settings: BlockerSettings) -> BlockerSettings:
        try:
            self._store.set_json(BLOCKER_CONFIG_KEY, settings.to_dict())
        except StoreError:
            logger.exception("failed to save blocker config")
        return settings
