"""
Audience resolution: who predicted a fixture, and did they get it right.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

from live_sync.models import VALID_PICKS, derive_result

logger = logging.getLogger(__name__)

CORRECT = "correct"
INCORRECT = "incorrect"


@dataclass(frozen=True)
class PredictionSource:
    """One picks table and the column that holds its gameweek."""
    table: str
    gameweek_column: str = "gw"


def correctness(predicted_outcome: str, home_score: int, away_score: int) -> str:
    """'correct' when the pick matches the result the score implies."""
    return CORRECT if predicted_outcome == derive_result(home_score, away_score) else INCORRECT


class AudienceResolver:
    """
    Merges predictions across sources.

    Picks are cached per gameweek for the lifetime of the resolver, which is
    one run.
    """

    def __init__(self, db, sources: List[PredictionSource]):
        if not sources:
            raise ValueError("At least one prediction source is required")
        self.db = db
        self.sources = sources
        self._by_gameweek: Dict[int, Dict[str, Dict[int, str]]] = {}

    def for_gameweek(self, gameweek: int) -> Dict[str, Dict[int, str]]:
        """
        All picks for a gameweek as user_id -> {fixture_index: outcome}.

        When two sources hold a pick for the same user and fixture, the first
        registered source wins.
        """
        if gameweek in self._by_gameweek:
            return self._by_gameweek[gameweek]

        picks: Dict[str, Dict[int, str]] = {}
        skipped = 0
        for source in self.sources:
            for row in self.db.get_prediction_rows(source.table, source.gameweek_column, gameweek):
                user_id = row.get("user_id")
                pick = row.get("pick")
                fixture_index = row.get("fixture_index")
                if not user_id or pick not in VALID_PICKS or fixture_index is None:
                    skipped += 1
                    continue
                picks.setdefault(str(user_id), {}).setdefault(int(fixture_index), pick)

        if skipped:
            logger.debug("Skipped malformed prediction rows", extra={
                "gameweek": gameweek,
                "skipped": skipped,
            })
        self._by_gameweek[gameweek] = picks
        return picks

    def for_fixture(self, gameweek: int, fixture_index: int) -> Dict[str, str]:
        """user_id -> predicted outcome for one fixture."""
        return {
            user_id: user_picks[fixture_index]
            for user_id, user_picks in self.for_gameweek(gameweek).items()
            if fixture_index in user_picks
        }
