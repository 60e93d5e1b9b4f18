"""
Push token health checks.

A device is asked about at most once per cache window: a stored
subscribed=true younger than the TTL is trusted, and every token checked in
this run is memoized.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from live_sync.models import PushSubscription
from utils.errors import NonRetryableProviderError, TransientProviderError

logger = logging.getLogger(__name__)

# OneSignal notification_types
SUBSCRIBED_TYPE = 1
UNSUBSCRIBED_TYPES = (0, -2)


@dataclass
class HealthResult:
    subscribed: bool
    raw: Dict[str, Any] = field(default_factory=dict)
    cached: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SubscriptionHealthChecker:
    """Verifies and caches whether a device token can receive pushes."""

    def __init__(
        self,
        db,
        push_client,
        cache_ttl_seconds: int = 3600,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.db = db
        self.push_client = push_client
        self.cache_ttl = timedelta(seconds=cache_ttl_seconds)
        self.clock = clock
        self._checked: Dict[str, HealthResult] = {}

    @staticmethod
    def classify_player(player: Dict[str, Any]) -> bool:
        """
        Lenient subscription check.

        Subscribed when notification_types is 1, or when it is unset but the
        device has a token that is not flagged invalid (SDK still warming up).
        0 and -2 are explicit opt-outs.
        """
        notification_types = player.get("notification_types")
        if notification_types == SUBSCRIBED_TYPE:
            return True
        if notification_types in UNSUBSCRIBED_TYPES:
            return False
        has_token = bool(player.get("identifier"))
        not_invalid = not player.get("invalid_identifier")
        return notification_types is None and has_token and not_invalid

    def _cache_fresh(self, subscription: Optional[PushSubscription]) -> bool:
        if subscription is None or subscription.subscribed is not True:
            return False
        if subscription.last_checked_at is None:
            return False
        return self.clock() - subscription.last_checked_at < self.cache_ttl

    async def verify(
        self,
        device_token: str,
        subscription: Optional[PushSubscription] = None
    ) -> HealthResult:
        """
        Check whether a device token is deliverable.

        Args:
            device_token: Push provider player id
            subscription: Stored subscription record, used for the cache and
                as a fallback when the provider is unavailable

        Returns:
            HealthResult; never raises for provider failures
        """
        if device_token in self._checked:
            return self._checked[device_token]

        if self._cache_fresh(subscription):
            result = HealthResult(subscribed=True, cached=True)
            self._checked[device_token] = result
            return result

        try:
            player = await self.push_client.get_player(device_token)
        except TransientProviderError as e:
            # Not persisted: the next run asks again
            fallback = bool(subscription.subscribed) if subscription and subscription.subscribed is not None else False
            logger.warning("Subscription check unavailable, using stored flag", extra={
                "device_token": device_token,
                "subscribed": fallback,
                "error": str(e),
            })
            return HealthResult(subscribed=fallback)
        except NonRetryableProviderError as e:
            logger.info("Device unknown to push provider", extra={
                "device_token": device_token,
                "status_code": e.status_code,
            })
            result = HealthResult(subscribed=False)
            self._persist(device_token, subscribed=False, invalid=True, player={})
            self._checked[device_token] = result
            return result

        subscribed = self.classify_player(player)
        self._persist(
            device_token,
            subscribed=subscribed,
            invalid=bool(player.get("invalid_identifier")),
            player=player,
        )
        result = HealthResult(subscribed=subscribed, raw=player)
        self._checked[device_token] = result
        return result

    def _persist(self, device_token: str, subscribed: bool, invalid: bool, player: Dict[str, Any]) -> None:
        fields: Dict[str, Any] = {
            "subscribed": subscribed,
            "invalid": invalid,
            "last_checked_at": self.clock().isoformat(),
        }
        last_active = player.get("last_active")
        if isinstance(last_active, (int, float)) and not isinstance(last_active, bool):
            fields["last_active_at"] = datetime.fromtimestamp(last_active, tz=timezone.utc).isoformat()
        try:
            self.db.update_push_subscription(device_token, fields)
        except Exception as e:
            logger.error("Failed to persist subscription health", extra={
                "device_token": device_token,
                "error": str(e),
            }, exc_info=True)

    def mark_unsubscribed(self, device_token: str) -> None:
        """Record a provider-side rejection for a token."""
        self._checked[device_token] = HealthResult(subscribed=False)
        self._persist(device_token, subscribed=False, invalid=False, player={})
