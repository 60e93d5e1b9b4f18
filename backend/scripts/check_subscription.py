#!/usr/bin/env python3
"""
Run the push subscription health check for one device token (OneSignal player id).
Bypasses the 1-hour cache, prints the provider record and writes the result
back to push_subscriptions like a normal cycle would.
Usage:
  python backend/scripts/check_subscription.py <player_id> [--dry-run]
Exit code: 0 if subscribed, 1 if not, 2 on error.
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


async def _check(player_id: str, dry_run: bool):
    from config import Config
    from database.supabase_client import SupabaseClient
    from live_sync.subscriptions import SubscriptionHealthChecker
    from push.onesignal import OneSignalClient

    config = Config()
    if not config.push_enabled:
        raise ValueError("ONESIGNAL_APP_ID and ONESIGNAL_REST_API_KEY are required")

    async with OneSignalClient(config) as push_client:
        if dry_run:
            player = await push_client.get_player(player_id)
            return SubscriptionHealthChecker.classify_player(player), player
        checker = SubscriptionHealthChecker(SupabaseClient(config), push_client, cache_ttl_seconds=0)
        result = await checker.verify(player_id)
        return result.subscribed, result.raw


def main():
    import argparse
    parser = argparse.ArgumentParser(description="Check one push subscription")
    parser.add_argument("player_id", help="OneSignal player id (push_subscriptions.player_id)")
    parser.add_argument("--dry-run", action="store_true", help="Do not write the result to Supabase")
    args = parser.parse_args()

    try:
        subscribed, player = asyncio.run(_check(args.player_id, args.dry_run))
    except Exception as e:
        print("Subscription check failed:", e, file=sys.stderr)
        sys.exit(2)

    if player:
        print(json.dumps({
            "identifier": player.get("identifier"),
            "invalid_identifier": player.get("invalid_identifier"),
            "notification_types": player.get("notification_types"),
            "last_active": player.get("last_active"),
        }, indent=2))
    print("SUBSCRIBED" if subscribed else "NOT SUBSCRIBED")
    sys.exit(0 if subscribed else 1)


if __name__ == "__main__":
    main()
