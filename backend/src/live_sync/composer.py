"""
Notification content and deterministic event ids.

Event ids depend only on what happened (event scope, match, user), never on
wording, so copy can change without breaking per-user dedup.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from live_sync.audience import CORRECT
from live_sync.kickoff import KickoffGroup
from live_sync.models import EventKind, Fixture, LiveScore, MatchStatus

NOTIFICATION_KEYS = {
    EventKind.SCORE_CHANGED: "goal-scored",
    EventKind.NEW_MATCH_WITH_SCORE: "goal-scored",
    EventKind.JUST_FINISHED: "final-whistle",
    EventKind.JUST_KICKED_OFF: "kickoff",
    EventKind.HALF_TIME: "half-time",
    EventKind.GAMEWEEK_COMPLETE: "gameweek-complete",
}

# Personalized by correctness; everything else is the same for every recipient
PERSONALIZED_KINDS = {
    EventKind.SCORE_CHANGED,
    EventKind.NEW_MATCH_WITH_SCORE,
    EventKind.JUST_FINISHED,
}


@dataclass
class Notification:
    kind: EventKind
    notification_key: str
    event_id: str
    title: str
    body: str
    user_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


def build_event_id(scope: str, key: Any, user_id: Optional[str] = None) -> str:
    """scope:key[:user_id]"""
    event_id = f"{scope}:{key}"
    if user_id:
        event_id = f"{event_id}:{user_id}"
    return event_id


def event_scope(kind: EventKind, score: Optional[LiveScore] = None) -> str:
    """
    Scope part of the event id.

    Goals are scoped by scoreline so every new score is its own event, while
    re-seeing the same scoreline dedups against the first send.
    """
    if kind in (EventKind.SCORE_CHANGED, EventKind.NEW_MATCH_WITH_SCORE):
        if score is None:
            raise ValueError("Score events need the live score for their scope")
        return f"goal:{score.home_score}-{score.away_score}"
    if kind == EventKind.JUST_FINISHED:
        return "ft"
    if kind == EventKind.JUST_KICKED_OFF:
        return "kickoff"
    if kind == EventKind.HALF_TIME:
        return "halftime"
    return "gw_complete"


def format_minute(status: MatchStatus, minute: Optional[int]) -> str:
    if status == MatchStatus.FINISHED:
        return "FT"
    if status == MatchStatus.PAUSED:
        return "HT"
    if minute is None:
        return "LIVE"
    if 1 <= minute <= 45:
        return "First Half"
    if 45 < minute <= 90:
        return "Second Half"
    return "LIVE"


def _scoreline(fixture: Fixture, score: LiveScore) -> str:
    home = score.home_team or fixture.home_team or "Home"
    away = score.away_team or fixture.away_team or "Away"
    return f"{home} {score.home_score}-{score.away_score} {away}"


class NotificationComposer:
    """Builds title/body/event id for each notifiable event."""

    def compose(
        self,
        kind: EventKind,
        fixture: Fixture,
        score: LiveScore,
        user_id: Optional[str] = None,
        correctness: Optional[str] = None,
        kickoff_group: Optional[KickoffGroup] = None,
        goal_disallowed: bool = False,
    ) -> Notification:
        """
        Compose one notification.

        Args:
            kind: Event being notified
            fixture: Fixture the event belongs to
            score: Current live score
            user_id: Recipient; included in the event id when given
            correctness: "correct"/"incorrect"; only used for score and
                full-time copy
            kickoff_group: Kickoff slot info; a shared slot gets the generic
                "N games starting" copy
            goal_disallowed: The score went down since the last notification
        """
        if kind == EventKind.GAMEWEEK_COMPLETE:
            raise ValueError("Use compose_gameweek_complete for gameweek summaries")

        match_id = fixture.external_match_id
        event_id = build_event_id(event_scope(kind, score), match_id, user_id)
        scoreline = _scoreline(fixture, score)
        is_correct = correctness == CORRECT

        if kind in (EventKind.SCORE_CHANGED, EventKind.NEW_MATCH_WITH_SCORE):
            title = f"Goal disallowed: {scoreline}" if goal_disallowed else f"GOAL! {scoreline}"
            body = format_minute(score.status, score.minute)
            if correctness is not None:
                body += " - your pick is on track" if is_correct else " - your pick is off track"
        elif kind == EventKind.JUST_FINISHED:
            title = f"FT: {scoreline}"
            if correctness is None:
                body = "Full time"
            else:
                body = "Got it right!" if is_correct else "Wrong pick"
        elif kind == EventKind.JUST_KICKED_OFF:
            if kickoff_group is not None and kickoff_group.is_shared:
                title = "Kickoff!"
                body = f"{kickoff_group.size} games starting now"
            else:
                home = score.home_team or fixture.home_team or "Home"
                away = score.away_team or fixture.away_team or "Away"
                title = f"Kickoff: {home} v {away}"
                body = "The match is underway"
        else:
            title = "Half-Time"
            body = scoreline

        data: Dict[str, Any] = {
            "type": kind.value,
            "api_match_id": match_id,
            "fixture_index": fixture.fixture_index,
            "gw": fixture.gameweek,
            "event_id": event_id,
        }
        if kind in PERSONALIZED_KINDS and correctness is not None:
            data["is_correct"] = is_correct

        return Notification(
            kind=kind,
            notification_key=NOTIFICATION_KEYS[kind],
            event_id=event_id,
            title=title,
            body=body,
            user_id=user_id,
            data=data,
        )

    def compose_gameweek_complete(
        self,
        gameweek: int,
        user_id: str,
        score: int,
        total: int
    ) -> Notification:
        """One gameweek summary for one user."""
        event_id = build_event_id(event_scope(EventKind.GAMEWEEK_COMPLETE), gameweek, user_id)
        return Notification(
            kind=EventKind.GAMEWEEK_COMPLETE,
            notification_key=NOTIFICATION_KEYS[EventKind.GAMEWEEK_COMPLETE],
            event_id=event_id,
            title=f"Gameweek {gameweek} complete!",
            body=f"You scored {score}/{total}. Check out how you did!",
            user_id=user_id,
            data={
                "type": EventKind.GAMEWEEK_COMPLETE.value,
                "gw": gameweek,
                "score": score,
                "total": total,
                "event_id": event_id,
            },
        )
