"""Notification copy and deterministic event ids."""

import pytest

from live_sync.audience import CORRECT, INCORRECT
from live_sync.composer import NotificationComposer, format_minute
from live_sync.kickoff import KickoffGroup
from live_sync.models import EventKind, Fixture, LiveScore, MatchStatus


FIXTURE = Fixture(external_match_id=100, gameweek=7, fixture_index=2, home_team="Arsenal", away_team="Chelsea")


def _score(status=MatchStatus.IN_PLAY, home=1, away=0, minute=None):
    return LiveScore(
        external_match_id=100, gameweek=7, fixture_index=2,
        home_score=home, away_score=away, status=status, minute=minute,
        home_team="Arsenal", away_team="Chelsea",
    )


def test_event_ids_are_deterministic_and_copy_independent():
    composer = NotificationComposer()
    right = composer.compose(EventKind.SCORE_CHANGED, FIXTURE, _score(), "u1", CORRECT)
    wrong = composer.compose(EventKind.SCORE_CHANGED, FIXTURE, _score(), "u1", INCORRECT)
    assert right.event_id == wrong.event_id == "goal:1-0:100:u1"
    assert right.body != wrong.body


def test_event_id_scopes():
    composer = NotificationComposer()
    assert composer.compose(EventKind.JUST_KICKED_OFF, FIXTURE, _score(home=0), "u1").event_id == "kickoff:100:u1"
    assert composer.compose(EventKind.HALF_TIME, FIXTURE, _score(MatchStatus.PAUSED), "u1").event_id == "halftime:100:u1"
    assert composer.compose(EventKind.JUST_FINISHED, FIXTURE, _score(MatchStatus.FINISHED), "u1").event_id == "ft:100:u1"
    assert composer.compose(EventKind.NEW_MATCH_WITH_SCORE, FIXTURE, _score(home=2)).event_id == "goal:2-0:100"


def test_full_time_copy_personalized():
    composer = NotificationComposer()
    final = _score(MatchStatus.FINISHED)
    right = composer.compose(EventKind.JUST_FINISHED, FIXTURE, final, "u1", CORRECT)
    wrong = composer.compose(EventKind.JUST_FINISHED, FIXTURE, final, "u2", INCORRECT)
    assert right.title == wrong.title == "FT: Arsenal 1-0 Chelsea"
    assert right.body == "Got it right!"
    assert wrong.body == "Wrong pick"
    assert right.data["is_correct"] is True
    assert wrong.data["is_correct"] is False


def test_kickoff_copy_ignores_correctness():
    composer = NotificationComposer()
    score = _score(home=0)
    a = composer.compose(EventKind.JUST_KICKED_OFF, FIXTURE, score, "u1", CORRECT)
    b = composer.compose(EventKind.JUST_KICKED_OFF, FIXTURE, score, "u2", INCORRECT)
    assert (a.title, a.body) == (b.title, b.body) == ("Kickoff: Arsenal v Chelsea", "The match is underway")
    assert "is_correct" not in a.data


def test_shared_kickoff_slot_uses_identical_generic_copy():
    composer = NotificationComposer()
    group = KickoffGroup(slot=None, size=3)
    other = Fixture(external_match_id=101, gameweek=7, fixture_index=3, home_team="Spurs", away_team="Wolves")
    a = composer.compose(EventKind.JUST_KICKED_OFF, FIXTURE, _score(home=0), "u1", kickoff_group=group)
    b = composer.compose(EventKind.JUST_KICKED_OFF, other, _score(home=0), "u1", kickoff_group=group)
    assert (a.title, a.body) == (b.title, b.body) == ("Kickoff!", "3 games starting now")
    assert a.event_id != b.event_id


def test_goal_disallowed_copy():
    composer = NotificationComposer()
    n = composer.compose(EventKind.SCORE_CHANGED, FIXTURE, _score(home=0), "u1", INCORRECT, goal_disallowed=True)
    assert n.title.startswith("Goal disallowed")
    assert n.notification_key == "goal-scored"


def test_data_payload():
    n = NotificationComposer().compose(EventKind.SCORE_CHANGED, FIXTURE, _score(minute=30), "u1", CORRECT)
    assert n.data == {
        "type": "score_changed",
        "api_match_id": 100,
        "fixture_index": 2,
        "gw": 7,
        "event_id": "goal:1-0:100:u1",
        "is_correct": True,
    }
    assert n.body == "First Half - your pick is on track"


def test_gameweek_complete():
    n = NotificationComposer().compose_gameweek_complete(7, "u1", 6, 10)
    assert n.event_id == "gw_complete:7:u1"
    assert "6/10" in n.body
    assert n.data == {"type": "gameweek_complete", "gw": 7, "score": 6, "total": 10, "event_id": "gw_complete:7:u1"}


def test_gameweek_complete_rejected_by_compose():
    with pytest.raises(ValueError):
        NotificationComposer().compose(EventKind.GAMEWEEK_COMPLETE, FIXTURE, _score())


@pytest.mark.parametrize("status,minute,expected", [
    (MatchStatus.FINISHED, 90, "FT"),
    (MatchStatus.PAUSED, 45, "HT"),
    (MatchStatus.IN_PLAY, None, "LIVE"),
    (MatchStatus.IN_PLAY, 12, "First Half"),
    (MatchStatus.IN_PLAY, 67, "Second Half"),
    (MatchStatus.IN_PLAY, 94, "LIVE"),
])
def test_format_minute(status, minute, expected):
    assert format_minute(status, minute) == expected
