"""
Fixture resolution across parallel table sets.

The app keeps fixtures in more than one table while data migrates between
them. Each table is registered as a FixtureSource; the resolver unions them
by api_match_id so nothing downstream needs to know how many exist.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from live_sync.models import Fixture, LiveScore, MatchStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FixtureSource:
    """One fixture table and the column that holds its gameweek."""
    table: str
    gameweek_column: str = "gw"


@dataclass
class FixtureWindow:
    """Canonical fixtures for [first_gameweek, last_gameweek]."""
    first_gameweek: int
    last_gameweek: int
    fixtures: Dict[int, Fixture] = field(default_factory=dict)
    finished_ids: Set[int] = field(default_factory=set)
    previous_scores: Dict[int, LiveScore] = field(default_factory=dict)

    def pollable(self, now: datetime, lead_seconds: int = 0) -> List[Fixture]:
        """
        Non-terminal fixtures due for polling, ordered by gameweek and index.

        A fixture is due once its kickoff (minus the lead) has passed; fixtures
        without a kickoff time are always due.
        """
        horizon = now + timedelta(seconds=lead_seconds)
        due = [
            f for f in self.fixtures.values()
            if f.external_match_id not in self.finished_ids
            and (f.kickoff_time is None or f.kickoff_time <= horizon)
        ]
        return sorted(due, key=lambda f: (f.gameweek, f.fixture_index, f.external_match_id))

    def for_gameweek(self, gameweek: int) -> List[Fixture]:
        return sorted(
            (f for f in self.fixtures.values() if f.gameweek == gameweek),
            key=lambda f: f.fixture_index,
        )


class FixtureResolver:
    """Merges fixture candidates from N sources into one canonical set."""

    def __init__(self, db, sources: List[FixtureSource], lookahead: int = 5):
        if not sources:
            raise ValueError("At least one fixture source is required")
        self.db = db
        self.sources = sources
        self.lookahead = lookahead

    def _merge(self, first_gameweek: int, last_gameweek: int) -> Dict[int, Fixture]:
        merged: Dict[int, Fixture] = {}
        for source in self.sources:
            rows = self.db.get_fixture_rows(
                source.table, source.gameweek_column, first_gameweek, last_gameweek
            )
            accepted = 0
            for row in rows:
                fixture = Fixture.from_row(row, source=source.table, gameweek_column=source.gameweek_column)
                if fixture is None:
                    continue
                accepted += 1
                existing = merged.get(fixture.external_match_id)
                if existing is None:
                    merged[fixture.external_match_id] = fixture
                    continue
                # Earlier sources win ties; a later source only replaces a less complete row
                if fixture.completeness > existing.completeness:
                    merged[fixture.external_match_id] = fixture
                if (existing.home_team, existing.away_team) != (fixture.home_team, fixture.away_team):
                    logger.debug("Fixture sources disagree on teams", extra={
                        "api_match_id": fixture.external_match_id,
                        "kept_source": merged[fixture.external_match_id].source,
                        "sources": [existing.source, fixture.source],
                    })
            logger.debug("Loaded fixture source", extra={
                "table": source.table,
                "rows": len(rows),
                "accepted": accepted,
            })
        return merged

    def load(self, first_gameweek: int, last_gameweek: Optional[int] = None) -> FixtureWindow:
        """
        Merge every source for a gameweek range and attach the persisted live
        scores for those matches.
        """
        if last_gameweek is None:
            last_gameweek = first_gameweek
        fixtures = self._merge(first_gameweek, last_gameweek)

        previous_scores: Dict[int, LiveScore] = {}
        for row in self.db.get_live_scores(list(fixtures.keys())):
            score = LiveScore.from_row(row)
            if score is not None:
                previous_scores[score.external_match_id] = score
        finished_ids = {
            match_id for match_id, score in previous_scores.items()
            if score.status == MatchStatus.FINISHED
        }

        return FixtureWindow(
            first_gameweek=first_gameweek,
            last_gameweek=last_gameweek,
            fixtures=fixtures,
            finished_ids=finished_ids,
            previous_scores=previous_scores,
        )

    def resolve(self, current_gameweek: int) -> FixtureWindow:
        """Canonical fixtures for [current_gameweek, current_gameweek + lookahead]."""
        window = self.load(current_gameweek, current_gameweek + self.lookahead)
        logger.info("Resolved fixture window", extra={
            "first_gameweek": window.first_gameweek,
            "last_gameweek": window.last_gameweek,
            "fixtures": len(window.fixtures),
            "finished": len(window.finished_ids),
            "sources": [s.table for s in self.sources],
        })
        return window
