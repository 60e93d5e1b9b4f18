"""
Push dispatch and provider response interpretation.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from push.onesignal import MAX_RECIPIENTS_PER_REQUEST
from utils.errors import TransientProviderError

logger = logging.getLogger(__name__)

NOT_SUBSCRIBED_ERROR = "All included players are not subscribed"


@dataclass
class DispatchOutcome:
    accepted: bool = False
    provider_recipient_count: int = 0
    notification_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    rejected_tokens: List[str] = field(default_factory=list)
    transient: bool = False

    @property
    def notification_id(self) -> Optional[str]:
        return self.notification_ids[0] if self.notification_ids else None

    @property
    def retryable(self) -> bool:
        """Provider was unavailable and no batch was delivered, so a resend cannot duplicate."""
        return self.transient and not self.notification_ids


def _normalize_errors(raw: Any) -> List[str]:
    """OneSignal returns errors as a list of strings or as a dict of lists."""
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(e) for e in raw]
    if isinstance(raw, dict):
        return [f"{key}: {value}" for key, value in raw.items()]
    return [str(raw)]


def _invalid_tokens(raw: Any) -> List[str]:
    if isinstance(raw, dict) and isinstance(raw.get("invalid_player_ids"), list):
        return [str(t) for t in raw["invalid_player_ids"]]
    return []


class PushDispatcher:
    """
    Sends one notification to a set of device tokens.

    Provider failures are reported in the outcome, never raised.
    """

    def __init__(self, push_client, health_checker=None, batch_size: int = MAX_RECIPIENTS_PER_REQUEST):
        self.push_client = push_client
        self.health_checker = health_checker
        self.batch_size = batch_size

    async def send(
        self,
        device_tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None
    ) -> DispatchOutcome:
        """
        Send to every token, batching at the provider's recipient limit.

        Accepted only when every batch got a notification id back with no
        errors. The provider's recipient count is logged but not trusted: it
        under-reports for freshly registered devices.
        """
        outcome = DispatchOutcome()
        tokens = [t for t in dict.fromkeys(device_tokens) if t]
        if not tokens:
            outcome.errors.append("no device tokens")
            return outcome

        all_accepted = True
        for start in range(0, len(tokens), self.batch_size):
            batch = tokens[start:start + self.batch_size]
            try:
                response = await self.push_client.create_notification(batch, title, body, data)
            except TransientProviderError as e:
                logger.warning("Push provider unavailable", extra={
                    "recipients": len(batch),
                    "error": str(e),
                })
                outcome.errors.append(str(e))
                outcome.transient = True
                all_accepted = False
                continue

            raw_errors = response.get("errors")
            errors = _normalize_errors(raw_errors)
            notification_id = response.get("id") or None
            recipients = response.get("recipients") or 0
            if isinstance(recipients, int) and not isinstance(recipients, bool):
                outcome.provider_recipient_count += recipients

            if notification_id:
                outcome.notification_ids.append(notification_id)
            if errors:
                outcome.errors.extend(errors)
            batch_accepted = bool(notification_id) and not errors
            all_accepted = all_accepted and batch_accepted

            rejected = _invalid_tokens(raw_errors)
            if NOT_SUBSCRIBED_ERROR in errors:
                rejected = batch
            if rejected:
                outcome.rejected_tokens.extend(rejected)
                self._mark_unsubscribed(rejected)

            logger.info("Push dispatched", extra={
                "notification_id": notification_id,
                "accepted": batch_accepted,
                "targeted": len(batch),
                "provider_recipients": recipients,
                "errors": errors or None,
            })

        outcome.accepted = all_accepted
        return outcome

    def _mark_unsubscribed(self, tokens: List[str]) -> None:
        if self.health_checker is None:
            return
        for token in tokens:
            self.health_checker.mark_unsubscribed(token)
