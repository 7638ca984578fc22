from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.clock import SystemClock
from climb.config import load_config
from climb.main import build_store
from climb.retention import retention_result_json, run_retention


def main() -> None:
    parser = argparse.ArgumentParser(description="Prune old usage days and focus sessions")
    parser.add_argument("--config", default="configs/config.yaml")
    parser.add_argument("--usage-days", type=int, help="override retention.usage_days")
    parser.add_argument("--sessions-days", type=int, help="override retention.sessions_days")
    parser.add_argument("--force-vacuum", action="store_true")
    args = parser.parse_args()

    config = load_config(args.config)
    policy = config.retention
    if args.usage_days is not None:
        policy = replace(policy, usage_days=args.usage_days)
    if args.sessions_days is not None:
        policy = replace(policy, sessions_days=args.sessions_days)

    store = build_store(config)
    try:
        result = run_retention(
            store, policy, SystemClock(config.clock.timezone), force_vacuum=args.force_vacuum
        )
    finally:
        store.close()
    print(retention_result_json(result))


if __name__ == "__main__":
    main()
