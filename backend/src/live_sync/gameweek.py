"""
End-of-gameweek summary, sent once per gameweek.

Completion is tracked in notification_state under a reserved key
(999999 - gameweek), so a gameweek that finished in an earlier cycle is
never summarized again.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict

from live_sync.audience import AudienceResolver
from live_sync.composer import NotificationComposer
from live_sync.delivery import RETRY, NotificationDelivery
from live_sync.fixtures import FixtureResolver
from live_sync.models import (
    GAMEWEEK_COMPLETE_STATUS,
    MatchStatus,
    NotificationState,
    gameweek_sentinel_id,
)

logger = logging.getLogger(__name__)


@dataclass
class GameweekCheck:
    fired: bool
    reason: str
    users: int = 0
    total: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameweekCompletionDetector:
    """Fires one "gameweek complete: score/total" push per predicting user."""

    def __init__(
        self,
        db,
        fixture_resolver: FixtureResolver,
        audience: AudienceResolver,
        composer: NotificationComposer,
        delivery: NotificationDelivery,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.db = db
        self.fixture_resolver = fixture_resolver
        self.audience = audience
        self.composer = composer
        self.delivery = delivery
        self.clock = clock

    def already_sent(self, gameweek: int) -> bool:
        return bool(self.db.get_notification_states([gameweek_sentinel_id(gameweek)]))

    async def check(self, gameweek: int) -> GameweekCheck:
        """
        Send the gameweek summary if every fixture has finished.

        The sentinel is written after dispatch even when nobody predicted, so
        later cycles stop re-checking a finished gameweek. It is held back
        while any summary is pending retry; users already served are then
        suppressed by their send log claims on the next attempt.
        """
        if self.already_sent(gameweek):
            return GameweekCheck(fired=False, reason="already sent")

        window = self.fixture_resolver.load(gameweek)
        fixtures = window.for_gameweek(gameweek)
        if not fixtures:
            return GameweekCheck(fired=False, reason="no fixtures")

        unfinished = [
            f.external_match_id for f in fixtures
            if f.external_match_id not in window.previous_scores
            or window.previous_scores[f.external_match_id].status != MatchStatus.FINISHED
        ]
        if unfinished:
            return GameweekCheck(fired=False, reason=f"{len(unfinished)} fixtures not finished")

        results: Dict[int, str] = {}
        for fixture in fixtures:
            results[fixture.fixture_index] = window.previous_scores[fixture.external_match_id].result

        total = len(fixtures)
        picks = self.audience.for_gameweek(gameweek)
        notifications = []
        for user_id, user_picks in sorted(picks.items()):
            score = sum(
                1 for fixture_index, pick in user_picks.items()
                if results.get(fixture_index) == pick
            )
            notifications.append(
                self.composer.compose_gameweek_complete(gameweek, user_id, score, total)
            )

        logger.info("Gameweek complete, sending summaries", extra={
            "gameweek": gameweek,
            "fixtures": total,
            "users": len(notifications),
        })
        delivered = await self.delivery.deliver(notifications)
        if delivered[RETRY]:
            logger.warning("Gameweek summaries pending retry, sentinel not written", extra={
                "gameweek": gameweek,
                "results": dict(delivered),
            })
            return GameweekCheck(
                fired=False,
                reason=f"{delivered[RETRY]} summaries pending retry",
                users=len(notifications),
                total=total,
            )

        sentinel = NotificationState(
            external_match_id=gameweek_sentinel_id(gameweek),
            last_notified_home_score=0,
            last_notified_away_score=0,
            last_notified_status=GAMEWEEK_COMPLETE_STATUS,
            last_notified_at=self.clock(),
        )
        self.db.upsert_notification_state(sentinel.to_row())

        logger.info("Gameweek summaries dispatched", extra={
            "gameweek": gameweek,
            "results": dict(delivered),
        })
        return GameweekCheck(fired=True, reason="sent", users=len(notifications), total=total)
