"""
Score reconciliation: raw provider payload -> canonical LiveScore.
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from live_sync.models import (
    Fixture,
    Goal,
    LiveScore,
    MatchStatus,
    RedCard,
    parse_non_negative_int,
)

logger = logging.getLogger(__name__)

# Derived minutes outside (0, 130) mean the kickoff time is wrong or the match stalled
MAX_DERIVED_MINUTE = 130

RED_CARD_CODES = {"RED", "RED_CARD"}

# Lowercased, "FC"-stripped provider names -> the app's canonical names
TEAM_NAME_ALIASES = {
    "manchester city": "Man City",
    "manchester united": "Man United",
    "newcastle united": "Newcastle",
    "west ham united": "West Ham",
    "tottenham hotspur": "Spurs",
    "wolverhampton wanderers": "Wolves",
    "brighton and hove albion": "Brighton",
    "brighton hove albion": "Brighton",
    "leeds united": "Leeds",
    "nottingham forest": "Forest",
    "crystal palace": "Palace",
    "aston villa": "Villa",
}


def normalize_team_name(name: Optional[str]) -> Optional[str]:
    """
    Canonical team name.

    "Manchester City FC" -> "Man City"; names without an alias are
    title-cased with the "FC" suffix removed.
    """
    if not name or not isinstance(name, str):
        return None

    key = name.lower().replace("&amp;", " ").replace("&", " ")
    key = re.sub(r"^(afc|fc)\s+", "", key.strip())
    key = re.sub(r"\s+(afc|fc)$", "", key)
    key = re.sub(r"\s+", " ", key).strip()
    if not key:
        return None

    alias = TEAM_NAME_ALIASES.get(key)
    if alias:
        return alias
    return " ".join(word.capitalize() for word in key.split(" "))


def _score_side(score: Dict[str, Any], side: str) -> int:
    """fullTime > halfTime > current > 0 for one side."""
    for period in ("fullTime", "halfTime", "current"):
        block = score.get(period)
        if isinstance(block, dict):
            value = parse_non_negative_int(block.get(side))
            if value is not None:
                return value
    return 0


def _team_name(payload: Dict[str, Any], key: str) -> Optional[str]:
    team = payload.get(key)
    return team.get("name") if isinstance(team, dict) else None


def _payload_minute(payload: Dict[str, Any]) -> Optional[int]:
    score = payload.get("score") if isinstance(payload.get("score"), dict) else {}
    for value in (payload.get("minute"), payload.get("currentMinute"), score.get("minute")):
        minute = parse_non_negative_int(value)
        if minute is not None:
            return minute
    return None


def derive_minute(kickoff_time: Optional[datetime], now: datetime) -> Optional[int]:
    """
    Elapsed whole minutes since kickoff, accepted only inside (0, 130).

    Ignores stoppage time and the half-time break, so it can run ahead of the
    provider's own clock during the second half.
    """
    if kickoff_time is None:
        return None
    minute = math.floor((now - kickoff_time).total_seconds() / 60)
    if 0 < minute < MAX_DERIVED_MINUTE:
        return minute
    return None


def _parse_goals(payload: Dict[str, Any]) -> List[Goal]:
    goals = []
    for goal in payload.get("goals") or []:
        if not isinstance(goal, dict):
            continue
        scorer = goal.get("scorer") if isinstance(goal.get("scorer"), dict) else {}
        team = goal.get("team") if isinstance(goal.get("team"), dict) else {}
        goals.append(Goal(
            minute=parse_non_negative_int(goal.get("minute")),
            scorer=scorer.get("name"),
            scorer_id=scorer.get("id"),
            team=normalize_team_name(team.get("name")),
            team_id=team.get("id"),
        ))
    return goals


def _parse_red_cards(payload: Dict[str, Any]) -> List[RedCard]:
    cards = []
    for booking in payload.get("bookings") or []:
        if not isinstance(booking, dict) or booking.get("card") not in RED_CARD_CODES:
            continue
        player = booking.get("player") if isinstance(booking.get("player"), dict) else {}
        team = booking.get("team") if isinstance(booking.get("team"), dict) else {}
        cards.append(RedCard(
            minute=parse_non_negative_int(booking.get("minute")),
            player=player.get("name"),
            player_id=player.get("id"),
            team=normalize_team_name(team.get("name")),
            team_id=team.get("id"),
        ))
    return cards


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoreReconciler:
    """Normalizes provider payloads and upserts live_scores."""

    def __init__(self, db, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.clock = clock

    def reconcile(
        self,
        fixture: Fixture,
        payload: Dict[str, Any],
        previous: Optional[LiveScore] = None
    ) -> LiveScore:
        """
        Build the canonical LiveScore for a fixture from a provider payload.

        Args:
            fixture: Resolved fixture the payload belongs to
            payload: Raw match payload
            previous: Persisted LiveScore for the match, if any

        Returns:
            The new LiveScore. A match already FINISHED keeps its previous
            record; status never regresses.
        """
        now = self.clock()
        status = MatchStatus.parse(payload.get("status"))

        if previous is not None and previous.status == MatchStatus.FINISHED and status != MatchStatus.FINISHED:
            logger.warning("Provider reported non-final status for finished match, keeping FINISHED", extra={
                "api_match_id": fixture.external_match_id,
                "provider_status": payload.get("status"),
            })
            return previous

        score = payload.get("score") if isinstance(payload.get("score"), dict) else {}
        home_score = _score_side(score, "home")
        away_score = _score_side(score, "away")

        minute: Optional[int] = None
        if status != MatchStatus.FINISHED:
            minute = _payload_minute(payload)
            if minute is None and status.is_live:
                kickoff = fixture.kickoff_time
                minute = derive_minute(kickoff, now)

        home_team = normalize_team_name(fixture.home_team or _team_name(payload, "homeTeam"))
        away_team = normalize_team_name(fixture.away_team or _team_name(payload, "awayTeam"))

        return LiveScore(
            external_match_id=fixture.external_match_id,
            gameweek=fixture.gameweek,
            fixture_index=fixture.fixture_index,
            home_score=home_score,
            away_score=away_score,
            status=status,
            minute=minute,
            home_team=home_team,
            away_team=away_team,
            kickoff_time=fixture.kickoff_time,
            goals=_parse_goals(payload),
            red_cards=_parse_red_cards(payload),
            updated_at=now,
        )

    def store(self, live_score: LiveScore) -> None:
        """Last-writer-wins full-record upsert keyed by api_match_id."""
        self.db.upsert_live_score(live_score.to_row())

    def reconcile_and_store(
        self,
        fixture: Fixture,
        payload: Dict[str, Any],
        previous: Optional[LiveScore] = None
    ) -> LiveScore:
        live_score = self.reconcile(fixture, payload, previous)
        if live_score is previous:
            return live_score
        self.store(live_score)
        logger.info("Updated live score", extra={
            "api_match_id": live_score.external_match_id,
            "score": f"{live_score.home_score}-{live_score.away_score}",
            "status": live_score.status.value,
            "minute": live_score.minute,
            "goals": len(live_score.goals),
            "red_cards": len(live_score.red_cards),
        })
        return live_score
