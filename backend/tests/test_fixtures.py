"""FixtureResolver: union of fixture sources and poll gating."""

from datetime import timedelta

import pytest

from fakes import START, FakeDatabase, fixture_row
from live_sync.fixtures import FixtureResolver, FixtureSource


def _db():
    db = FakeDatabase()
    db.fixture_tables = {
        "app_fixtures": [
            fixture_row(100, gw=1, index=0, home="Arsenal", away=None),
            fixture_row(101, gw=1, index=1, home="Spurs", away="Wolves"),
            fixture_row(None, gw=1, index=2),
            fixture_row(300, gw=9, index=0),
        ],
        "fixtures": [
            fixture_row(100, gw=1, index=0, home="Arsenal FC", away="Chelsea FC"),
            fixture_row(101, gw=1, index=1, home="Tottenham", away="Wolverhampton"),
            fixture_row(102, gw=2, index=0, kickoff=START + timedelta(days=7)),
        ],
    }
    return db


def _resolver(db, lookahead=5):
    return FixtureResolver(db, [FixtureSource("app_fixtures"), FixtureSource("fixtures")], lookahead=lookahead)


def test_resolve_unions_sources_within_window():
    window = _resolver(_db()).resolve(1)
    assert (window.first_gameweek, window.last_gameweek) == (1, 6)
    assert sorted(window.fixtures) == [100, 101, 102]


def test_more_complete_source_wins_otherwise_first():
    window = _resolver(_db()).resolve(1)
    assert window.fixtures[100].source == "fixtures"
    assert window.fixtures[100].away_team == "Chelsea FC"
    assert window.fixtures[101].source == "app_fixtures"
    assert window.fixtures[101].home_team == "Spurs"


def test_finished_matches_and_future_kickoffs_not_pollable():
    db = _db()
    db.live_scores[101] = {"api_match_id": 101, "gw": 1, "fixture_index": 1, "status": "FINISHED",
                           "home_score": 1, "away_score": 0}
    window = _resolver(db).resolve(1)
    assert window.finished_ids == {101}
    assert [f.external_match_id for f in window.pollable(START)] == [100]
    assert 101 in window.previous_scores


def test_lead_time_brings_kickoff_forward():
    window = _resolver(_db()).resolve(1)
    due = window.pollable(START, lead_seconds=7 * 24 * 3600)
    assert [f.external_match_id for f in due] == [100, 101, 102]


def test_load_single_gameweek():
    window = _resolver(_db()).load(1)
    assert [f.external_match_id for f in window.for_gameweek(1)] == [100, 101]


def test_requires_a_source():
    with pytest.raises(ValueError):
        FixtureResolver(FakeDatabase(), [])
