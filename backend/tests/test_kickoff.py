from datetime import datetime, timezone

from live_sync.kickoff import KickoffAggregator, round_to_slot
from live_sync.models import Fixture


def _fixture(match_id, kickoff):
    return Fixture(external_match_id=match_id, gameweek=1, fixture_index=match_id, kickoff_time=kickoff)


def _at(hour, minute, second=0):
    return datetime(2025, 1, 11, hour, minute, second, tzinfo=timezone.utc)


def test_round_to_nearest_slot():
    assert round_to_slot(_at(15, 7)) == _at(15, 0)
    assert round_to_slot(_at(15, 8)) == _at(15, 15)
    assert round_to_slot(_at(14, 59, 30)) == _at(15, 0)


def test_single_kickoff_is_not_shared():
    groups = KickoffAggregator().group([_fixture(1, _at(12, 30))])
    assert groups[1].size == 1
    assert not groups[1].is_shared


def test_simultaneous_kickoffs_share_a_group():
    fixtures = [
        _fixture(1, _at(15, 0)),
        _fixture(2, _at(15, 2)),
        _fixture(3, _at(14, 58)),
        _fixture(4, _at(17, 30)),
    ]
    groups = KickoffAggregator(15).group(fixtures)
    assert [groups[i].size for i in (1, 2, 3)] == [3, 3, 3]
    assert groups[4].size == 1
    assert groups[1].slot == _at(15, 0)


def test_fixtures_without_kickoff_are_never_grouped():
    groups = KickoffAggregator().group([_fixture(1, None), _fixture(2, None)])
    assert groups[1].size == 1 and groups[2].size == 1
