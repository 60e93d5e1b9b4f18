"""
Per-(event, user) delivery: idempotency claim, token health, send, audit.

Each composed notification is claimed in notification_send_log before any
provider call, so a retried cycle can re-derive the same events without
double-sending. A claim is released again when nothing was sent (push
provider unavailable, unexpected error), and the delivery reports "retry" so
the caller leaves its ledger where it was.
"""

import asyncio
import logging
from collections import Counter
from typing import Dict, List, Optional

from live_sync.composer import Notification
from live_sync.dispatcher import PushDispatcher
from live_sync.models import PushSubscription
from live_sync.subscriptions import SubscriptionHealthChecker

logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
FAILED = "failed"
RETRY = "retry"
SUPPRESSED_DUPLICATE = "suppressed_duplicate"
SUPPRESSED_UNSUBSCRIBED = "suppressed_unsubscribed"


class NotificationDelivery:
    """Delivers composed notifications to their users' devices."""

    def __init__(
        self,
        db,
        health_checker: SubscriptionHealthChecker,
        dispatcher: PushDispatcher,
        environment: str = "prod",
        concurrency: int = 10
    ):
        self.db = db
        self.health_checker = health_checker
        self.dispatcher = dispatcher
        self.environment = environment
        self.concurrency = max(1, concurrency)

    def _load_subscriptions(self, user_ids: List[str]) -> Dict[str, List[PushSubscription]]:
        by_user: Dict[str, List[PushSubscription]] = {}
        for row in self.db.get_push_subscriptions(user_ids):
            subscription = PushSubscription.from_row(row)
            if subscription is None or not subscription.is_active:
                continue
            by_user.setdefault(subscription.user_id, []).append(subscription)
        return by_user

    async def deliver(self, notifications: List[Notification]) -> Counter:
        """
        Deliver every notification concurrently (bounded) and wait for all.

        Returns:
            Counter of per-notification results (accepted, failed, retry,
            suppressed_duplicate, suppressed_unsubscribed)
        """
        results: Counter = Counter()
        targeted = [n for n in notifications if n.user_id]
        if not targeted:
            return results

        user_ids = sorted({n.user_id for n in targeted})
        try:
            subscriptions = self._load_subscriptions(user_ids)
        except Exception as e:
            logger.error("Failed to load push subscriptions, retry next cycle", extra={
                "users": len(user_ids),
                "error": str(e),
            }, exc_info=True)
            results[RETRY] += len(targeted)
            return results

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(notification: Notification) -> str:
            async with semaphore:
                return await self.deliver_one(notification, subscriptions.get(notification.user_id, []))

        outcomes = await asyncio.gather(*[bounded(n) for n in targeted], return_exceptions=True)
        for notification, outcome in zip(targeted, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Notification delivery failed, retry next cycle", extra={
                    "event_id": notification.event_id,
                    "user_id": notification.user_id,
                    "error": str(outcome),
                })
                results[RETRY] += 1
                continue
            results[outcome] += 1
        return results

    async def _deliverable_tokens(self, subscriptions: List[PushSubscription]) -> List[str]:
        tokens = []
        for subscription in subscriptions:
            if subscription.invalid:
                continue
            health = await self.health_checker.verify(subscription.device_token, subscription)
            if health.subscribed:
                tokens.append(subscription.device_token)
        return tokens

    def _release(self, log_id: str, notification: Notification) -> None:
        try:
            self.db.release_send_log(log_id)
        except Exception as e:
            # Claim stays; the next cycle will see it as already sent
            logger.error("Failed to release send log claim", extra={
                "log_id": log_id,
                "event_id": notification.event_id,
                "user_id": notification.user_id,
                "error": str(e),
            }, exc_info=True)

    async def deliver_one(
        self,
        notification: Notification,
        subscriptions: Optional[List[PushSubscription]] = None
    ) -> str:
        """Claim, verify, send and record one notification for one user."""
        log_id = self.db.claim_send_log(
            self.environment,
            notification.notification_key,
            notification.event_id,
            notification.user_id,
        )
        if log_id is None:
            logger.debug("Notification already sent", extra={
                "event_id": notification.event_id,
                "user_id": notification.user_id,
            })
            return SUPPRESSED_DUPLICATE

        try:
            tokens = await self._deliverable_tokens(subscriptions or [])
            if not tokens:
                self.db.update_send_log(log_id, {"result": SUPPRESSED_UNSUBSCRIBED})
                return SUPPRESSED_UNSUBSCRIBED

            outcome = await self.dispatcher.send(
                tokens,
                notification.title,
                notification.body,
                notification.data,
            )
        except Exception:
            self._release(log_id, notification)
            raise

        if outcome.retryable:
            self._release(log_id, notification)
            logger.info("Push provider unavailable, notification released for retry", extra={
                "event_id": notification.event_id,
                "user_id": notification.user_id,
                "errors": outcome.errors,
            })
            return RETRY

        result = ACCEPTED if outcome.accepted else FAILED
        self.db.update_send_log(log_id, {
            "result": result,
            "onesignal_notification_id": outcome.notification_id,
            "target_count": len(tokens),
            "provider_recipients": outcome.provider_recipient_count,
            "error": "; ".join(outcome.errors) if outcome.errors else None,
        })
        if not outcome.accepted:
            logger.warning("Push not accepted", extra={
                "event_id": notification.event_id,
                "user_id": notification.user_id,
                "errors": outcome.errors,
            })
        return result
