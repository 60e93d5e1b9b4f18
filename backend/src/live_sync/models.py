"""
Domain records for live score sync.

Rows come out of Supabase as plain dicts; these dataclasses are the parsed,
validated form the pipeline works with. Malformed values fall back to safe
defaults instead of propagating.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# notification_state rows for gameweek summaries use 999999 - gw as their key
GAMEWEEK_SENTINEL_BASE = 999999
GAMEWEEK_COMPLETE_STATUS = "GW_COMPLETE"

VALID_PICKS = ("H", "D", "A")


class MatchStatus(str, Enum):
    """Canonical match status."""
    SCHEDULED = "SCHEDULED"
    IN_PLAY = "IN_PLAY"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"

    @classmethod
    def parse(cls, raw: Any) -> "MatchStatus":
        """Map a provider status string onto the canonical set (unknown -> SCHEDULED)."""
        if isinstance(raw, MatchStatus):
            return raw
        if not isinstance(raw, str):
            return cls.SCHEDULED
        return _STATUS_ALIASES.get(raw.strip().upper(), cls.SCHEDULED)

    @property
    def is_live(self) -> bool:
        return self in (MatchStatus.IN_PLAY, MatchStatus.PAUSED)


_STATUS_ALIASES = {
    "SCHEDULED": MatchStatus.SCHEDULED,
    "TIMED": MatchStatus.SCHEDULED,
    "POSTPONED": MatchStatus.SCHEDULED,
    "SUSPENDED": MatchStatus.SCHEDULED,
    "CANCELLED": MatchStatus.SCHEDULED,
    "IN_PLAY": MatchStatus.IN_PLAY,
    "LIVE": MatchStatus.IN_PLAY,
    "PAUSED": MatchStatus.PAUSED,
    "HALF_TIME": MatchStatus.PAUSED,
    "FINISHED": MatchStatus.FINISHED,
    "AWARDED": MatchStatus.FINISHED,
}


class EventKind(str, Enum):
    """Notifiable transitions between the ledger and the current score."""
    SCORE_CHANGED = "score_changed"
    NEW_MATCH_WITH_SCORE = "new_match_with_score"
    JUST_FINISHED = "just_finished"
    JUST_KICKED_OFF = "just_kicked_off"
    HALF_TIME = "half_time"
    GAMEWEEK_COMPLETE = "gameweek_complete"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO timestamp (Z or offset) into an aware UTC datetime; None if invalid."""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_non_negative_int(value: Any) -> Optional[int]:
    """Return value as int when it is a non-negative integer, else None (bools rejected)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 0 else None


def derive_result(home_score: int, away_score: int) -> str:
    """H/D/A from a scoreline."""
    if home_score > away_score:
        return "H"
    if away_score > home_score:
        return "A"
    return "D"


def gameweek_sentinel_id(gameweek: int) -> int:
    """Reserved notification_state key marking a gameweek summary as sent."""
    return GAMEWEEK_SENTINEL_BASE - gameweek


@dataclass(frozen=True)
class Fixture:
    """A scheduled match. Read-only here; created upstream."""
    external_match_id: int
    gameweek: int
    fixture_index: int
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    kickoff_time: Optional[datetime] = None
    source: str = ""

    @property
    def completeness(self) -> int:
        """Number of descriptive fields populated; used to pick between sources."""
        return sum(1 for v in (self.home_team, self.away_team, self.kickoff_time) if v)

    @classmethod
    def from_row(cls, row: Dict[str, Any], source: str = "", gameweek_column: str = "gw") -> Optional["Fixture"]:
        match_id = parse_non_negative_int(row.get("api_match_id"))
        gameweek = parse_non_negative_int(row.get(gameweek_column))
        fixture_index = parse_non_negative_int(row.get("fixture_index"))
        if match_id is None or gameweek is None or fixture_index is None:
            return None
        return cls(
            external_match_id=match_id,
            gameweek=gameweek,
            fixture_index=fixture_index,
            home_team=(row.get("home_team") or None),
            away_team=(row.get("away_team") or None),
            kickoff_time=parse_timestamp(row.get("kickoff_time")),
            source=source,
        )


@dataclass
class Goal:
    minute: Optional[int] = None
    scorer: Optional[str] = None
    scorer_id: Optional[int] = None
    team: Optional[str] = None
    team_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minute": self.minute,
            "scorer": self.scorer,
            "scorerId": self.scorer_id,
            "team": self.team,
            "teamId": self.team_id,
        }


@dataclass
class RedCard:
    minute: Optional[int] = None
    player: Optional[str] = None
    player_id: Optional[int] = None
    team: Optional[str] = None
    team_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "minute": self.minute,
            "player": self.player,
            "playerId": self.player_id,
            "team": self.team,
            "teamId": self.team_id,
        }


@dataclass
class LiveScore:
    """Canonical current state of one match, keyed by external_match_id."""
    external_match_id: int
    gameweek: int
    fixture_index: int
    home_score: int = 0
    away_score: int = 0
    status: MatchStatus = MatchStatus.SCHEDULED
    minute: Optional[int] = None
    home_team: Optional[str] = None
    away_team: Optional[str] = None
    kickoff_time: Optional[datetime] = None
    goals: List[Goal] = field(default_factory=list)
    red_cards: List[RedCard] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    @property
    def result(self) -> str:
        return derive_result(self.home_score, self.away_score)

    def to_row(self) -> Dict[str, Any]:
        return {
            "api_match_id": self.external_match_id,
            "gw": self.gameweek,
            "fixture_index": self.fixture_index,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status.value,
            "minute": self.minute,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "kickoff_time": self.kickoff_time.isoformat() if self.kickoff_time else None,
            "goals": [g.to_dict() for g in self.goals] or None,
            "red_cards": [c.to_dict() for c in self.red_cards] or None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["LiveScore"]:
        match_id = parse_non_negative_int(row.get("api_match_id"))
        if match_id is None:
            return None
        return cls(
            external_match_id=match_id,
            gameweek=parse_non_negative_int(row.get("gw")) or 0,
            fixture_index=parse_non_negative_int(row.get("fixture_index")) or 0,
            home_score=parse_non_negative_int(row.get("home_score")) or 0,
            away_score=parse_non_negative_int(row.get("away_score")) or 0,
            status=MatchStatus.parse(row.get("status")),
            minute=parse_non_negative_int(row.get("minute")),
            home_team=row.get("home_team"),
            away_team=row.get("away_team"),
            kickoff_time=parse_timestamp(row.get("kickoff_time")),
            goals=[
                Goal(
                    minute=g.get("minute"),
                    scorer=g.get("scorer"),
                    scorer_id=g.get("scorerId"),
                    team=g.get("team"),
                    team_id=g.get("teamId"),
                )
                for g in (row.get("goals") or []) if isinstance(g, dict)
            ],
            red_cards=[
                RedCard(
                    minute=c.get("minute"),
                    player=c.get("player"),
                    player_id=c.get("playerId"),
                    team=c.get("team"),
                    team_id=c.get("teamId"),
                )
                for c in (row.get("red_cards") or []) if isinstance(c, dict)
            ],
            updated_at=parse_timestamp(row.get("updated_at")),
        )


@dataclass
class NotificationState:
    """Dedup ledger entry: what was last notified for a match (or gameweek sentinel)."""
    external_match_id: int
    last_notified_home_score: int = 0
    last_notified_away_score: int = 0
    last_notified_status: str = MatchStatus.SCHEDULED.value
    last_notified_at: Optional[datetime] = None

    @classmethod
    def from_live_score(cls, score: LiveScore, now: datetime) -> "NotificationState":
        return cls(
            external_match_id=score.external_match_id,
            last_notified_home_score=score.home_score,
            last_notified_away_score=score.away_score,
            last_notified_status=score.status.value,
            last_notified_at=now,
        )

    def matches(self, score: LiveScore) -> bool:
        """True when the ledger already reflects this score and status."""
        return (
            self.last_notified_home_score == score.home_score
            and self.last_notified_away_score == score.away_score
            and self.last_notified_status == score.status.value
        )

    def to_row(self) -> Dict[str, Any]:
        return {
            "api_match_id": self.external_match_id,
            "last_notified_home_score": self.last_notified_home_score,
            "last_notified_away_score": self.last_notified_away_score,
            "last_notified_status": self.last_notified_status,
            "last_notified_at": self.last_notified_at.isoformat() if self.last_notified_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["NotificationState"]:
        match_id = parse_non_negative_int(row.get("api_match_id"))
        if match_id is None:
            return None
        return cls(
            external_match_id=match_id,
            last_notified_home_score=parse_non_negative_int(row.get("last_notified_home_score")) or 0,
            last_notified_away_score=parse_non_negative_int(row.get("last_notified_away_score")) or 0,
            last_notified_status=str(row.get("last_notified_status") or MatchStatus.SCHEDULED.value),
            last_notified_at=parse_timestamp(row.get("last_notified_at")),
        )


@dataclass
class PushSubscription:
    user_id: str
    device_token: str
    is_active: bool = True
    subscribed: Optional[bool] = None
    invalid: bool = False
    last_checked_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["PushSubscription"]:
        token = row.get("player_id")
        user_id = row.get("user_id")
        if not token or not user_id:
            return None
        return cls(
            user_id=str(user_id),
            device_token=str(token),
            is_active=bool(row.get("is_active", True)),
            subscribed=row.get("subscribed"),
            invalid=bool(row.get("invalid") or False),
            last_checked_at=parse_timestamp(row.get("last_checked_at")),
        )
