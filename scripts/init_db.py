from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from climb.config import load_config
from climb.main import build_store
from climb.utils.crypto import generate_key


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the focus engine schema")
    parser.add_argument("--config", default="configs/config.yaml")
    parser.add_argument(
        "--print-key",
        action="store_true",
        help="also print a new session encryption key as ENV=VALUE",
    )
    args = parser.parse_args()

    config = load_config(args.config)
    if args.print_key:
        print(f"{config.encryption.key_env}={generate_key()}")
    store = build_store(config)
    try:
        tables = store.table_names()
    finally:
        store.close()
    print(f"db={config.db_path} tables={','.join(tables)}")


if __name__ == "__main__":
    main()
