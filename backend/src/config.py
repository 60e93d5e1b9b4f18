"""
Configuration management for the Live Score Sync service.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


def parse_source_list(raw: Optional[str]) -> List[Tuple[str, str]]:
    """
    Parse a "table:gameweek_column" list (comma-separated) into pairs.

    Entries without a column default to "gw". Blank entries are ignored.
    """
    sources: List[Tuple[str, str]] = []
    if not raw:
        return sources
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        table, _, column = part.partition(":")
        table = table.strip()
        if not table:
            continue
        sources.append((table, column.strip() or "gw"))
    return sources


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")
    notification_env: str = os.getenv("NOTIFICATION_ENV", "prod")

    # Supabase Configuration
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    supabase_service_key: Optional[str] = os.getenv("SUPABASE_SERVICE_KEY", None)

    # Score provider (football-data.org v4)
    football_data_base_url: str = os.getenv("FOOTBALL_DATA_BASE_URL", "https://api.football-data.org/v4")
    football_data_api_key: str = os.getenv("FOOTBALL_DATA_API_KEY", "")

    # Push provider (OneSignal REST v1)
    onesignal_base_url: str = os.getenv("ONESIGNAL_BASE_URL", "https://onesignal.com/api/v1")
    onesignal_app_id: str = os.getenv("ONESIGNAL_APP_ID", "")
    onesignal_rest_api_key: str = os.getenv("ONESIGNAL_REST_API_KEY", "")

    # Rate Limiting (football-data free tier allows 10 req/min)
    max_requests_per_minute: int = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "10"))
    min_request_interval: float = float(os.getenv("MIN_REQUEST_INTERVAL", "1.0"))
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "15.0"))

    # Poll loop
    # Fixed pause between two match requests inside one cycle; polling stays serial
    poll_delay_seconds: float = float(os.getenv("POLL_DELAY_SECONDS", "2.0"))
    # Service loop cadence (main.py); the HTTP trigger ignores it
    poll_interval_seconds: int = int(os.getenv("POLL_INTERVAL_SECONDS", "60"))
    # Start polling a fixture this many seconds before its kickoff
    poll_lead_seconds: int = int(os.getenv("POLL_LEAD_SECONDS", "0"))
    # Fixture window is [current_gw, current_gw + lookahead]
    gameweek_lookahead: int = int(os.getenv("GAMEWEEK_LOOKAHEAD", "5"))

    # Run lock (app_meta.last_poll_time)
    lock_min_interval_seconds: float = float(os.getenv("LOCK_MIN_INTERVAL_SECONDS", "15"))
    lock_settle_seconds: float = float(os.getenv("LOCK_SETTLE_SECONDS", "0.1"))
    lock_tolerance_seconds: float = float(os.getenv("LOCK_TOLERANCE_SECONDS", "1.0"))
    lock_jitter_seconds: float = float(os.getenv("LOCK_JITTER_SECONDS", "2.0"))
    lock_use_compare_and_set: bool = os.getenv("LOCK_USE_COMPARE_AND_SET", "true").lower() in ("1", "true", "yes")

    # Notifications
    kickoff_bucket_minutes: int = int(os.getenv("KICKOFF_BUCKET_MINUTES", "15"))
    subscription_cache_ttl: int = int(os.getenv("SUBSCRIPTION_CACHE_TTL", "3600"))  # 1 hour
    dispatch_concurrency: int = int(os.getenv("DISPATCH_CONCURRENCY", "10"))

    # Parallel table sets (migration era): first listed source wins ties
    fixture_sources_spec: str = os.getenv("FIXTURE_SOURCES", "app_fixtures:gw,fixtures:gw")
    prediction_sources_spec: str = os.getenv("PREDICTION_SOURCES", "app_picks:gw,picks:gw")
    fixture_sources: List[Tuple[str, str]] = field(default_factory=list)
    prediction_sources: List[Tuple[str, str]] = field(default_factory=list)

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text
    log_file: Optional[str] = os.getenv("LOG_FILE") or None

    def validate(self):
        """Validate configuration."""
        errors = []

        if not self.supabase_url:
            errors.append("SUPABASE_URL is required")
        if not self.supabase_key:
            errors.append("SUPABASE_KEY is required")
        if not self.football_data_api_key:
            errors.append("FOOTBALL_DATA_API_KEY is required")
        if not self.fixture_sources:
            errors.append("FIXTURE_SOURCES must name at least one table")
        if not self.prediction_sources:
            errors.append("PREDICTION_SOURCES must name at least one table")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    @property
    def push_enabled(self) -> bool:
        return bool(self.onesignal_app_id and self.onesignal_rest_api_key)

    def __post_init__(self):
        """Parse source lists, then validate."""
        if not self.fixture_sources:
            self.fixture_sources = parse_source_list(self.fixture_sources_spec)
        if not self.prediction_sources:
            self.prediction_sources = parse_source_list(self.prediction_sources_spec)
        self.validate()
