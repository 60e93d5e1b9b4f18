#!/usr/bin/env python3
"""
Check live sync health by reading app_meta.last_poll_time from Supabase.
Shows when a cycle last claimed the run lock and whether that is recent.
Run from repo root or backend/ with .env in backend/ or repo root.
Usage:
  python backend/scripts/check_poll_health.py [--max-age-minutes 5]
Exit code: 0 if last poll within --max-age-minutes, 1 if stale or missing, 2 on error.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

# Load .env from backend or repo root
backend_dir = Path(__file__).resolve().parent.parent
for env_path in [backend_dir / ".env", backend_dir.parent / ".env"]:
    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)
        break

sys.path.insert(0, str(backend_dir / "src"))


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Check live sync health from app_meta.last_poll_time")
    parser.add_argument("--max-age-minutes", type=int, default=5,
                        help="Consider live sync healthy if last poll within this many minutes (default 5)")
    args = parser.parse_args()

    try:
        from database.supabase_client import SupabaseClient
        from config import Config
    except Exception as e:
        print("Error loading config/database:", e, file=sys.stderr)
        sys.exit(2)

    try:
        db = SupabaseClient(Config())
        last_poll = db.get_last_poll_time()
        current_gw = db.get_current_gameweek()
    except Exception as e:
        print("Error reading app_meta:", e, file=sys.stderr)
        sys.exit(2)

    print(f"Current gameweek: {current_gw if current_gw is not None else 'unknown'}")
    if last_poll is None:
        print("No last_poll_time recorded. Live sync has never claimed the run lock on this DB.")
        sys.exit(1)

    age = datetime.now(timezone.utc) - last_poll
    age_minutes = age.total_seconds() / 60
    print(f"Last poll: {last_poll.isoformat()} ({age_minutes:.1f} min ago)")

    if age_minutes > args.max_age_minutes:
        print(f"STALE: no poll in the last {args.max_age_minutes} minutes. Check the scheduler / service.")
        sys.exit(1)
    print("OK")


if __name__ == "__main__":
    main()
