"""
Supabase client for database operations.

Every table the live sync touches is reached through a named method here, with
explicit column selection so the rest of the pipeline never builds queries.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from supabase import create_client, Client

from config import Config
from live_sync.models import parse_timestamp

logger = logging.getLogger(__name__)

APP_META_ID = 1

LIVE_SCORE_COLUMNS = [
    "api_match_id", "gw", "fixture_index", "home_score", "away_score", "status",
    "minute", "home_team", "away_team", "kickoff_time", "goals", "red_cards", "updated_at",
]
FIXTURE_COLUMNS = ["api_match_id", "fixture_index", "home_team", "away_team", "kickoff_time"]
NOTIFICATION_STATE_COLUMNS = [
    "api_match_id", "last_notified_home_score", "last_notified_away_score",
    "last_notified_status", "last_notified_at",
]
SUBSCRIPTION_COLUMNS = ["user_id", "player_id", "is_active", "subscribed", "invalid", "last_checked_at"]

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class SupabaseClient:
    """Client for interacting with Supabase database."""

    def __init__(self, config: Config):
        self.config = config
        self.client: Optional[Client] = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client."""
        if not self.config.supabase_url or not self.config.supabase_key:
            raise ValueError("Supabase URL and key are required")

        # Service key bypasses RLS on notification_state / send log writes
        key = self.config.supabase_service_key or self.config.supabase_key

        self.client = create_client(
            self.config.supabase_url,
            key
        )

        logger.info("Initialized Supabase client", extra={
            "url": self.config.supabase_url,
            "using_service_key": bool(self.config.supabase_service_key)
        })

    def _select_columns(self, columns: List[str]) -> str:
        """Format column list for SELECT statement."""
        return ", ".join(columns)

    # app_meta (current gameweek + run lock)

    def get_current_gameweek(self) -> Optional[int]:
        """Current gameweek from app_meta, or None when the row is missing."""
        result = (
            self.client.table("app_meta")
            .select("current_gw")
            .eq("id", APP_META_ID)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        value = result.data[0].get("current_gw")
        return int(value) if value is not None else None

    def get_last_poll_time(self) -> Optional[datetime]:
        """Timestamp of the last claimed poll run."""
        result = (
            self.client.table("app_meta")
            .select("last_poll_time")
            .eq("id", APP_META_ID)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        raw = result.data[0].get("last_poll_time")
        if not raw:
            return None
        parsed = parse_timestamp(raw)
        if parsed is None:
            logger.warning("Unparseable last_poll_time", extra={"value": raw})
        return parsed

    def set_last_poll_time(self, value: datetime) -> None:
        """Unconditionally write last_poll_time."""
        self.client.table("app_meta").update(
            {"last_poll_time": value.isoformat()}
        ).eq("id", APP_META_ID).execute()

    def compare_and_set_last_poll_time(
        self,
        expected: Optional[datetime],
        value: datetime
    ) -> bool:
        """
        Write last_poll_time only if it still equals `expected`.

        PostgREST applies the filter and the update in one statement, so two
        runs racing on the same expected value cannot both win.

        Returns:
            True when this call changed the row
        """
        query = self.client.table("app_meta").update(
            {"last_poll_time": value.isoformat()}
        ).eq("id", APP_META_ID)
        if expected is None:
            query = query.is_("last_poll_time", "null")
        else:
            query = query.eq("last_poll_time", expected.isoformat())
        result = query.execute()
        return bool(result.data)

    # Fixtures (one table per source)

    def get_fixture_rows(
        self,
        table: str,
        gameweek_column: str,
        gameweek_from: int,
        gameweek_to: int
    ) -> List[Dict[str, Any]]:
        """
        Fixtures with a known api_match_id inside a gameweek window.

        Args:
            table: Source table (e.g. app_fixtures, fixtures)
            gameweek_column: Column holding the gameweek in that table
            gameweek_from: First gameweek (inclusive)
            gameweek_to: Last gameweek (inclusive)
        """
        result = (
            self.client.table(table)
            .select(self._select_columns(FIXTURE_COLUMNS + [gameweek_column]))
            .gte(gameweek_column, gameweek_from)
            .lte(gameweek_column, gameweek_to)
            .not_.is_("api_match_id", "null")
            .order(gameweek_column)
            .order("fixture_index")
            .execute()
        )
        return result.data or []

    # live_scores

    def get_live_scores(self, match_ids: List[int]) -> List[Dict[str, Any]]:
        """Live score rows for the given match ids."""
        if not match_ids:
            return []
        result = (
            self.client.table("live_scores")
            .select(self._select_columns(LIVE_SCORE_COLUMNS))
            .in_("api_match_id", match_ids)
            .execute()
        )
        return result.data or []

    def get_live_scores_for_gameweeks(
        self,
        gameweek_from: int,
        gameweek_to: int,
        statuses: List[str]
    ) -> List[Dict[str, Any]]:
        """Live score rows in a gameweek window restricted to the given statuses."""
        result = (
            self.client.table("live_scores")
            .select(self._select_columns(LIVE_SCORE_COLUMNS))
            .gte("gw", gameweek_from)
            .lte("gw", gameweek_to)
            .in_("status", statuses)
            .execute()
        )
        return result.data or []

    def upsert_live_score(self, row: Dict[str, Any]):
        """Full-record replace keyed by api_match_id (last writer wins)."""
        result = self.client.table("live_scores").upsert(
            row,
            on_conflict="api_match_id"
        ).execute()
        return result.data

    # notification_state

    def get_notification_states(self, match_ids: List[int]) -> List[Dict[str, Any]]:
        if not match_ids:
            return []
        result = (
            self.client.table("notification_state")
            .select(self._select_columns(NOTIFICATION_STATE_COLUMNS))
            .in_("api_match_id", match_ids)
            .execute()
        )
        return result.data or []

    def upsert_notification_state(self, row: Dict[str, Any]):
        result = self.client.table("notification_state").upsert(
            row,
            on_conflict="api_match_id"
        ).execute()
        return result.data

    # Predictions (one table per source)

    def get_prediction_rows(
        self,
        table: str,
        gameweek_column: str,
        gameweek: int
    ) -> List[Dict[str, Any]]:
        """All picks for a gameweek: user_id, fixture_index, pick."""
        result = (
            self.client.table(table)
            .select("user_id, fixture_index, pick")
            .eq(gameweek_column, gameweek)
            .execute()
        )
        return result.data or []

    # push_subscriptions

    def get_push_subscriptions(self, user_ids: List[str]) -> List[Dict[str, Any]]:
        """Active device subscriptions for users, most recently updated first."""
        if not user_ids:
            return []
        result = (
            self.client.table("push_subscriptions")
            .select(self._select_columns(SUBSCRIPTION_COLUMNS))
            .in_("user_id", user_ids)
            .eq("is_active", True)
            .order("updated_at", desc=True)
            .execute()
        )
        return result.data or []

    def update_push_subscription(self, device_token: str, fields: Dict[str, Any]) -> None:
        """Write health-check results back onto every row for a device token."""
        self.client.table("push_subscriptions").update(fields).eq(
            "player_id", device_token
        ).execute()

    # notification_send_log (per-user idempotency)

    def claim_send_log(
        self,
        environment: str,
        notification_key: str,
        event_id: str,
        user_id: Optional[str]
    ) -> Optional[str]:
        """
        Insert-first idempotency claim.

        Returns:
            The new log row id, or None when the (event, user) pair was
            already claimed by this or an earlier run.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            result = self.client.table("notification_send_log").insert({
                "environment": environment,
                "notification_key": notification_key,
                "event_id": event_id,
                "user_id": user_id,
                "result": "pending",
                "created_at": now,
                "updated_at": now,
            }).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                return None
            raise
        if not result.data:
            return None
        return result.data[0].get("id")

    def update_send_log(self, log_id: str, fields: Dict[str, Any]) -> None:
        update = dict(fields)
        update["updated_at"] = datetime.now(timezone.utc).isoformat()
        self.client.table("notification_send_log").update(update).eq("id", log_id).execute()

    def release_send_log(self, log_id: str) -> None:
        """Drop a claim whose notification was never sent, so it can be claimed again."""
        self.client.table("notification_send_log").delete().eq("id", log_id).execute()
