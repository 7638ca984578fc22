from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.clock import DayKey, SystemClock
from climb.config import load_config
from climb.main import build_store
from climb.stats import build_session_stats
from climb.streak import StreakEngine
from climb.teams import TeamRepository
from climb.usage_ledger import UsageLedger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print focus, usage and team streak stats")
    parser.add_argument(
        "--config", default="configs/config.yaml", help="path to config file"
    )
    parser.add_argument("--date", default="", help="ledger day YYYY-MM-DD (default today)")
    parser.add_argument("--team", default="", help="only show this team id")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    config = load_config(args.config)
    store = build_store(config)

    clock = SystemClock(config.clock.timezone)
    day = DayKey.parse(args.date) if args.date else clock.today()
    if day is None:
        print(f"invalid date: {args.date}")
        store.close()
        return

    ledger = UsageLedger(store, clock, config.usage.limits_minutes)
    teams = TeamRepository(store, clock)
    streaks = StreakEngine(teams, clock, config.streak)

    team_ids = [args.team] if args.team else [team.id for team in teams.list_teams()]
    payload = {
        "sessions": build_session_stats(store.fetch_focus_sessions()),
        "usage": {
            "date": str(day),
            "apps": {app: entry.to_dict() for app, entry in ledger.snapshot(day).items()},
        },
        "teams": {team_id: streaks.streak_status(team_id) for team_id in team_ids},
    }
    store.close()
    print(json.dumps(payload, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
