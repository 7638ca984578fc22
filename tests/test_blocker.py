from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.blocker import BLOCKER_CONFIG_KEY, BlockerConfigStore, active_blocked_apps
from climb.clock import ManualClock
from climb.models import BlockedApp, BlockerSettings
from climb.store import MemoryStore


def _settings(enabled: bool = True, on_start: bool = True) -> BlockerSettings:
    return BlockerSettings(
        enabled=enabled,
        block_on_pomodoro_start=on_start,
        blocked_apps=[
            BlockedApp("instagram", "com.instagram.android", "Instagram", "social", True),
            BlockedApp("youtube", "com.google.android.youtube", "YouTube", "entertainment", False),
        ],
    )


def test_active_blocked_apps_filters_unblocked() -> None:
    apps = active_blocked_apps(_settings())
    assert [app.id for app in apps] == ["instagram"]


def test_active_blocked_apps_empty_when_disabled() -> None:
    assert active_blocked_apps(_settings(enabled=False)) == []
    assert active_blocked_apps(_settings(on_start=False)) == []
    assert active_blocked_apps(_settings(), session_active=False) == []


def test_defaults_are_persisted_on_first_load() -> None:
    store = MemoryStore()
    blocker = BlockerConfigStore(store, ManualClock(0))

    settings = blocker.load()

    assert settings.enabled is True
    assert [(app.id, app.is_blocked) for app in settings.blocked_apps] == [
        ("instagram", True),
        ("tiktok", True),
        ("youtube", False),
    ]
    assert store.get_json(BLOCKER_CONFIG_KEY)["blockOnPomodoroStart"] is True


def test_toggles_survive_reload() -> None:
    store = MemoryStore()
    clock = ManualClock(0)
    BlockerConfigStore(store, clock).toggle_app("youtube", True)
    BlockerConfigStore(store, clock).toggle_blocker(False)

    settings = BlockerConfigStore(store, clock).load()

    assert settings.enabled is False
    assert next(app for app in settings.blocked_apps if app.id == "youtube").is_blocked is True
    assert active_blocked_apps(settings) == []


def test_custom_app_added_first_and_removable() -> None:
    store = MemoryStore()
    blocker = BlockerConfigStore(store, ManualClock(1_700_000_000_000))

    settings = blocker.add_custom_app("com.reddit.frontpage", "Reddit", "social")
    custom = settings.blocked_apps[0]
    assert custom.id == "custom-1700000000000"
    assert custom.is_blocked is True
    assert custom.added_at == "2023-11-14T22:13:20.000Z"

    settings = blocker.remove_app(custom.id)
    assert all(app.id != custom.id for app in settings.blocked_apps)
    assert all(app.id != custom.id for app in blocker.load().blocked_apps)


def test_corrupt_config_resets_to_defaults() -> None:
    store = MemoryStore()
    store.set(BLOCKER_CONFIG_KEY, "[1, 2")

    settings = BlockerConfigStore(store, ManualClock(0)).load()

    assert len(settings.blocked_apps) == 3
    assert store.get_json(BLOCKER_CONFIG_KEY)["enabled"] is True
