#!/usr/bin/env python3
"""
Run a single live sync cycle and print the report.

Respects the run lock: prints the skip reason when another run happened less
than LOCK_MIN_INTERVAL_SECONDS ago.

Usage:
  python backend/scripts/poll_once.py [--json]
Exit code: 0 on success (including a lock skip), 1 on failure.
"""

import asyncio
import json
import sys
from pathlib import Path

# Load .env from backend or repo root
backend_dir = Path(__file__).resolve().parent.parent
for env_path in [backend_dir / ".env", backend_dir.parent / ".env"]:
    if env_path.exists():
        from dotenv import load_dotenv
        load_dotenv(env_path)
        break

sys.path.insert(0, str(backend_dir / "src"))


async def _run():
    from config import Config
    from live_sync.orchestrator import run_once
    from utils.logger import setup_logging

    config = Config()
    setup_logging(config)
    report = await run_once(config)
    return report


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Run one live score sync cycle")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args()

    try:
        report = asyncio.run(_run())
    except Exception as e:
        print("Live sync cycle failed:", e, file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    if report.skipped:
        print(f"Skipped: {report.message}")
        return
    print(f"Gameweek {report.gameweek}: {report.message}")
    print(f"  polled={report.polled} transient_skips={report.transient_skips} failed={report.failed} "
          f"orphaned={report.orphaned_scores}")
    for kind, count in sorted(report.events.items()):
        print(f"  event {kind}: {count}")
    for result, count in sorted(report.notifications.items()):
        print(f"  notifications {result}: {count}")
    if report.gameweek_complete:
        print("  gameweek summary sent")


if __name__ == "__main__":
    main()
