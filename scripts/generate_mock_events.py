from __future__ import annotations

import argparse
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate mock focus session events")
    parser.add_argument("--days", type=int, default=3)
    parser.add_argument("--start-date", default="", help="YYYY-MM-DD (UTC)")
    parser.add_argument("--output", default="data/mock_focus_events.jsonl")
    parser.add_argument("--team", default="", help="team id attached to session_end")
    parser.add_argument("--user", default="", help="user id attached to session_end")
    return parser.parse_args()


def _parse_start_date(value: str) -> datetime:
    if value:
        dt = datetime.strptime(value, "%Y-%m-%d")
        return dt.replace(tzinfo=timezone.utc)
    now = datetime.now(timezone.utc)
    return datetime(now.year, now.month, now.day, tzinfo=timezone.utc)


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def main() -> None:
    args = parse_args()
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    start_date = _parse_start_date(args.start_date)

    # (start hour, preset, focus minutes, [(leave minute, away seconds, app)])
    pattern = [
        (9, "Classic", 25, [(7, 40, "instagram")]),
        (11, "Deep Work", 50, [(12, 90, "youtube"), (30, 20, "")]),
        (20, "Short", 15, [(3, 420, "instagram"), (10, 240, "instagram")]),
    ]

    lines = []
    for day in range(max(1, args.days)):
        base = start_date + timedelta(days=day)
        for hour, preset, minutes, leaves in pattern:
            start = base.replace(hour=hour)
            session_id = f"mock-{day}-{hour}"
            lines.append(
                {
                    "type": "session_start",
                    "ts": _ts(start),
                    "session_id": session_id,
                    "preset": preset,
                }
            )
            for leave_minute, away_sec, app in leaves:
                left = start + timedelta(minutes=leave_minute)
                event = {"type": "app_state", "state": "background", "ts": _ts(left)}
                if app:
                    event["app"] = app
                lines.append(event)
                lines.append(
                    {
                        "type": "app_state",
                        "state": "active",
                        "ts": _ts(left + timedelta(seconds=away_sec)),
                    }
                )
            end = {
                "type": "session_end",
                "ts": _ts(start + timedelta(minutes=minutes)),
                "points": minutes,
            }
            if args.team and args.user:
                end["team_id"] = args.team
                end["user_id"] = args.user
            lines.append(end)

    out_path.write_text(
        "\n".join(json.dumps(line, ensure_ascii=False) for line in lines) + "\n",
        encoding="utf-8",
    )
    print(f"mock_events_saved={out_path} count={len(lines)}")


if __name__ == "__main__":
    main()
