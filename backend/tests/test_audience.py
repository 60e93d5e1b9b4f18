"""AudienceResolver merges prediction sources; correctness follows the derived result."""

import pytest

from fakes import FakeDatabase
from live_sync.audience import CORRECT, INCORRECT, AudienceResolver, PredictionSource, correctness


@pytest.mark.parametrize("pick,home,away,expected", [
    ("H", 2, 1, CORRECT),
    ("H", 1, 2, INCORRECT),
    ("H", 1, 1, INCORRECT),
    ("D", 1, 1, CORRECT),
    ("A", 0, 3, CORRECT),
])
def test_correctness(pick, home, away, expected):
    assert correctness(pick, home, away) == expected


def _db():
    db = FakeDatabase()
    db.prediction_tables = {
        "app_picks": [
            {"user_id": "u1", "gw": 1, "fixture_index": 0, "pick": "H"},
            {"user_id": "u2", "gw": 1, "fixture_index": 0, "pick": "X"},
            {"user_id": "u3", "gw": 2, "fixture_index": 0, "pick": "A"},
        ],
        "picks": [
            {"user_id": "u1", "gw": 1, "fixture_index": 0, "pick": "A"},
            {"user_id": "u4", "gw": 1, "fixture_index": 0, "pick": "D"},
            {"user_id": "u4", "gw": 1, "fixture_index": 1, "pick": "H"},
        ],
    }
    return db


def test_for_fixture_merges_sources_first_wins():
    resolver = AudienceResolver(_db(), [PredictionSource("app_picks"), PredictionSource("picks")])
    assert resolver.for_fixture(1, 0) == {"u1": "H", "u4": "D"}
    assert resolver.for_fixture(1, 1) == {"u4": "H"}


def test_for_gameweek_is_cached_per_resolver():
    db = _db()
    resolver = AudienceResolver(db, [PredictionSource("app_picks")])
    first = resolver.for_gameweek(1)
    db.prediction_tables["app_picks"].append({"user_id": "u9", "gw": 1, "fixture_index": 0, "pick": "H"})
    assert resolver.for_gameweek(1) is first
    assert "u9" not in resolver.for_fixture(1, 0)


def test_requires_a_source():
    with pytest.raises(ValueError):
        AudienceResolver(FakeDatabase(), [])
