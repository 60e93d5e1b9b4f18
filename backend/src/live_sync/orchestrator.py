"""
Live Sync Orchestrator - one poll-and-notify cycle.

lock -> fixture window -> serial poll/reconcile -> notification pass over the
persisted live scores -> gameweek completion. Notifications are always derived
from what is stored (live_scores vs notification_state), never from in-memory
state of the poll loop, so a cycle cut short is completed by the next one.
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from config import Config
from database.supabase_client import SupabaseClient
from football_data.client import ScoreProviderClient
from live_sync.audience import AudienceResolver, PredictionSource, correctness
from live_sync.composer import PERSONALIZED_KINDS, Notification, NotificationComposer
from live_sync.delivery import RETRY, NotificationDelivery
from live_sync.diff import classify, needs_ledger_write
from live_sync.dispatcher import PushDispatcher
from live_sync.fixtures import FixtureResolver, FixtureSource, FixtureWindow
from live_sync.gameweek import GameweekCompletionDetector
from live_sync.kickoff import KickoffAggregator, KickoffGroup
from live_sync.lock import RunLock
from live_sync.models import EventKind, Fixture, LiveScore, MatchStatus, NotificationState
from live_sync.reconciler import ScoreReconciler
from live_sync.subscriptions import SubscriptionHealthChecker
from push.onesignal import OneSignalClient

logger = logging.getLogger(__name__)

NOTIFIABLE_STATUSES = [
    MatchStatus.IN_PLAY.value,
    MatchStatus.PAUSED.value,
    MatchStatus.FINISHED.value,
]

# Send order when one match produces several events in a cycle
EVENT_ORDER = [
    EventKind.JUST_KICKED_OFF,
    EventKind.NEW_MATCH_WITH_SCORE,
    EventKind.SCORE_CHANGED,
    EventKind.HALF_TIME,
    EventKind.JUST_FINISHED,
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunContext:
    """Everything one run needs, built explicitly and passed down."""
    config: Config
    db: Any
    score_client: Any
    push_client: Optional[Any] = None
    clock: Callable[[], datetime] = _utcnow

    async def close(self):
        for client in (self.score_client, self.push_client):
            if client is not None and hasattr(client, "close"):
                await client.close()


def build_context(config: Config) -> RunContext:
    """Construct the Supabase and provider clients for one run."""
    push_client = OneSignalClient(config) if config.push_enabled else None
    if push_client is None:
        logger.warning("Push provider not configured, notifications disabled")
    return RunContext(
        config=config,
        db=SupabaseClient(config),
        score_client=ScoreProviderClient(config),
        push_client=push_client,
    )


@dataclass
class CycleReport:
    """Counts for one cycle; logged and returned by the trigger."""
    skipped: bool = False
    message: str = ""
    gameweek: Optional[int] = None
    fixtures: int = 0
    polled: int = 0
    transient_skips: int = 0
    failed: int = 0
    orphaned_scores: int = 0
    events: Counter = field(default_factory=Counter)
    notifications: Counter = field(default_factory=Counter)
    gameweek_complete: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skipped": self.skipped,
            "message": self.message,
            "gameweek": self.gameweek,
            "fixtures": self.fixtures,
            "polled": self.polled,
            "transient_skips": self.transient_skips,
            "failed": self.failed,
            "orphaned_scores": self.orphaned_scores,
            "events": dict(self.events),
            "notifications": dict(self.notifications),
            "gameweek_complete": self.gameweek_complete,
            "duration_seconds": round(self.duration_seconds, 3),
        }


@dataclass
class _PendingMatch:
    fixture: Fixture
    score: LiveScore
    previous: Optional[NotificationState]
    events: FrozenSet[EventKind]


class LiveSyncOrchestrator:
    """Runs live sync cycles against one RunContext."""

    def __init__(self, context: RunContext):
        self.context = context
        self.config = context.config
        self.db = context.db
        self.clock = context.clock

        self.lock = RunLock(
            self.db,
            min_interval_seconds=self.config.lock_min_interval_seconds,
            settle_seconds=self.config.lock_settle_seconds,
            tolerance_seconds=self.config.lock_tolerance_seconds,
            jitter_seconds=self.config.lock_jitter_seconds,
            use_compare_and_set=self.config.lock_use_compare_and_set,
            clock=self.clock,
        )
        self.fixture_resolver = FixtureResolver(
            self.db,
            [FixtureSource(table, column) for table, column in self.config.fixture_sources],
            lookahead=self.config.gameweek_lookahead,
        )
        self.prediction_sources = [
            PredictionSource(table, column) for table, column in self.config.prediction_sources
        ]
        self.reconciler = ScoreReconciler(self.db, clock=self.clock)
        self.kickoffs = KickoffAggregator(self.config.kickoff_bucket_minutes)
        self.composer = NotificationComposer()

    def _build_delivery(self) -> Optional[NotificationDelivery]:
        push_client = self.context.push_client
        if push_client is None:
            return None
        health_checker = SubscriptionHealthChecker(
            self.db,
            push_client,
            cache_ttl_seconds=self.config.subscription_cache_ttl,
            clock=self.clock,
        )
        return NotificationDelivery(
            self.db,
            health_checker,
            PushDispatcher(push_client, health_checker),
            environment=self.config.notification_env,
            concurrency=self.config.dispatch_concurrency,
        )

    async def run_cycle(self) -> CycleReport:
        """
        Run one full cycle.

        Returns:
            CycleReport. A lock skip is a normal report with skipped=True.
            Only unexpected errors outside the per-match boundaries raise.
        """
        started = time.monotonic()
        report = CycleReport()

        lock = await self.lock.acquire()
        if not lock.acquired:
            report.skipped = True
            report.message = lock.message
            return report

        gameweek = self.db.get_current_gameweek()
        if gameweek is None:
            report.message = "No current gameweek"
            logger.warning("No current gameweek in app_meta, nothing to poll")
            return report
        report.gameweek = gameweek

        window = self.fixture_resolver.resolve(gameweek)
        await self._poll(window, report)

        # Per-run caches: picks per gameweek, token health per device
        audience = AudienceResolver(self.db, self.prediction_sources)
        delivery = self._build_delivery()
        if delivery is None:
            logger.info("Notification pass skipped, push provider not configured")
        else:
            await self._notify(window, audience, delivery, report)
            detector = GameweekCompletionDetector(
                self.db,
                self.fixture_resolver,
                audience,
                self.composer,
                delivery,
                clock=self.clock,
            )
            try:
                check = await detector.check(gameweek)
                report.gameweek_complete = check.fired
            except Exception as e:
                report.failed += 1
                logger.error("Gameweek completion check failed", extra={
                    "gameweek": gameweek,
                    "error": str(e),
                }, exc_info=True)

        report.duration_seconds = time.monotonic() - started
        report.message = (
            f"Polled {report.polled} of {report.fixtures} fixtures, "
            f"{sum(report.notifications.values())} notifications processed"
        )
        logger.info("Live sync cycle complete", extra=report.to_dict())
        return report

    async def _poll(self, window: FixtureWindow, report: CycleReport):
        """Fetch and reconcile each due fixture, strictly one at a time."""
        fixtures = window.pollable(self.clock(), self.config.poll_lead_seconds)
        report.fixtures = len(fixtures)
        for i, fixture in enumerate(fixtures):
            if i > 0 and self.config.poll_delay_seconds > 0:
                await asyncio.sleep(self.config.poll_delay_seconds)
            match_id = fixture.external_match_id
            try:
                payload = await self.context.score_client.fetch_match(match_id)
                if payload is None:
                    report.transient_skips += 1
                    continue
                self.reconciler.reconcile_and_store(
                    fixture, payload, window.previous_scores.get(match_id)
                )
                report.polled += 1
            except Exception as e:
                report.failed += 1
                logger.error("Failed to poll match", extra={
                    "api_match_id": match_id,
                    "error": str(e),
                }, exc_info=True)

    def _load_pending(self, window: FixtureWindow, report: CycleReport) -> List[_PendingMatch]:
        rows = self.db.get_live_scores_for_gameweeks(
            window.first_gameweek, window.last_gameweek, NOTIFIABLE_STATUSES
        )
        scores: List[LiveScore] = []
        for row in rows:
            score = LiveScore.from_row(row)
            if score is None:
                continue
            if score.external_match_id not in window.fixtures:
                report.orphaned_scores += 1
                logger.debug("Live score has no fixture, dropped", extra={
                    "api_match_id": score.external_match_id,
                })
                continue
            scores.append(score)

        states: Dict[int, NotificationState] = {}
        for row in self.db.get_notification_states([s.external_match_id for s in scores]):
            state = NotificationState.from_row(row)
            if state is not None:
                states[state.external_match_id] = state

        pending = []
        for score in scores:
            previous = states.get(score.external_match_id)
            events = classify(previous, score)
            if events or needs_ledger_write(previous, score, events):
                pending.append(_PendingMatch(
                    fixture=window.fixtures[score.external_match_id],
                    score=score,
                    previous=previous,
                    events=events,
                ))
        return sorted(pending, key=lambda p: (p.fixture.gameweek, p.fixture.fixture_index))

    async def _notify(
        self,
        window: FixtureWindow,
        audience: AudienceResolver,
        delivery: NotificationDelivery,
        report: CycleReport
    ):
        """Diff every notifiable score against the ledger and fan out."""
        pending = self._load_pending(window, report)
        kickoff_groups = self.kickoffs.group([
            p.fixture for p in pending if EventKind.JUST_KICKED_OFF in p.events
        ])

        for match in pending:
            match_id = match.fixture.external_match_id
            try:
                notifications = self._compose(match, audience, kickoff_groups.get(match_id))
                for kind in match.events:
                    report.events[kind.value] += 1
                pending_retry = 0
                if notifications:
                    results = await delivery.deliver(notifications)
                    report.notifications.update(results)
                    pending_retry = results[RETRY]
                    logger.info("Match notifications processed", extra={
                        "api_match_id": match_id,
                        "events": sorted(k.value for k in match.events),
                        "results": dict(results),
                    })
                if pending_retry:
                    # Ledger stays put so the next cycle re-derives the same events
                    logger.warning("Notifications pending retry, ledger not advanced", extra={
                        "api_match_id": match_id,
                        "pending": pending_retry,
                    })
                    continue
                if needs_ledger_write(match.previous, match.score, match.events):
                    state = NotificationState.from_live_score(match.score, self.clock())
                    self.db.upsert_notification_state(state.to_row())
            except Exception as e:
                report.failed += 1
                logger.error("Failed to notify for match", extra={
                    "api_match_id": match_id,
                    "error": str(e),
                }, exc_info=True)

    def _compose(
        self,
        match: _PendingMatch,
        audience: AudienceResolver,
        kickoff_group: Optional[KickoffGroup]
    ) -> List[Notification]:
        if not match.events:
            return []
        fixture, score, previous = match.fixture, match.score, match.previous
        picks = audience.for_fixture(fixture.gameweek, fixture.fixture_index)
        goal_disallowed = previous is not None and (
            score.home_score + score.away_score
            < previous.last_notified_home_score + previous.last_notified_away_score
        )

        notifications = []
        for kind in EVENT_ORDER:
            if kind not in match.events:
                continue
            for user_id, pick in sorted(picks.items()):
                notifications.append(self.composer.compose(
                    kind,
                    fixture,
                    score,
                    user_id=user_id,
                    correctness=(
                        correctness(pick, score.home_score, score.away_score)
                        if kind in PERSONALIZED_KINDS else None
                    ),
                    kickoff_group=kickoff_group,
                    goal_disallowed=goal_disallowed and kind == EventKind.SCORE_CHANGED,
                ))
        return notifications


async def run_once(config: Config) -> CycleReport:
    """Build a context, run one cycle, release the clients."""
    context = build_context(config)
    try:
        return await LiveSyncOrchestrator(context).run_cycle()
    finally:
        await context.close()
