from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.config import config_from_dict, load_config


def test_repo_config_loads() -> None:
    config = load_config(PROJECT_ROOT / "configs" / "config.yaml")

    assert config.db_path == PROJECT_ROOT / "data" / "climb.db"
    assert config.usage.limits_minutes == {"instagram": 10}
    assert config.usage.penalty_points == 25
    assert config.streak.max_multiplier == 3.0
    assert config.streak.member_activity == "lifetime"
    assert config.blocker.block_on_pomodoro_start is True
    assert config.encryption.enabled is False
    assert config.logging.events_file == "focus_events.log"
    assert config.logging.prune_days == 30


def test_defaults_and_overrides() -> None:
    config = config_from_dict(
        {
            "db_path": "/tmp/elsewhere.db",
            "usage": {"limits_minutes": {"TikTok": 30, "Instagram": 5}},
            "streak": {"member_activity": "Daily", "level_points": 0},
        }
    )

    assert config.db_path == Path("/tmp/elsewhere.db")
    assert config.usage.limits_minutes == {"tiktok": 30, "instagram": 5}
    assert config.streak.member_activity == "daily"
    assert config.streak.level_points == 1
    assert config.focus.default_preset == "Classic"
    assert config.logging.timezone == "local"


def test_invalid_member_activity_rejected() -> None:
    with pytest.raises(ValueError):
        config_from_dict({"streak": {"member_activity": "weekly"}})


def test_missing_or_malformed_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")

    bad = tmp_path / "bad.yaml"
    bad.write_text("- just\n- a list\n")
    with pytest.raises(ValueError):
        load_config(bad)
