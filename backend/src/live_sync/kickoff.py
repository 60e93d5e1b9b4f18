"""
Kickoff aggregation.

Matches that kick off together (same 15-minute slot) share one generic
"N games starting" message instead of a burst of near-identical pushes.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from live_sync.models import Fixture

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class KickoffGroup:
    """The slot a kickoff fell into and how many matches share it."""
    slot: Optional[datetime]
    size: int

    @property
    def is_shared(self) -> bool:
        return self.size > 1


def round_to_slot(moment: datetime, slot_minutes: int = 15) -> datetime:
    """Round to the nearest slot boundary (ties round up)."""
    slot_seconds = slot_minutes * 60
    elapsed = (moment - _EPOCH).total_seconds()
    slots = int((elapsed + slot_seconds / 2) // slot_seconds)
    return _EPOCH + timedelta(seconds=slots * slot_seconds)


class KickoffAggregator:
    """Buckets just-kicked-off fixtures by rounded kickoff time."""

    def __init__(self, slot_minutes: int = 15):
        self.slot_minutes = slot_minutes

    def bucket(self, fixtures: List[Fixture]) -> Dict[Optional[datetime], List[Fixture]]:
        buckets: Dict[Optional[datetime], List[Fixture]] = defaultdict(list)
        for fixture in fixtures:
            slot = round_to_slot(fixture.kickoff_time, self.slot_minutes) if fixture.kickoff_time else None
            buckets[slot].append(fixture)
        return dict(buckets)

    def group(self, fixtures: List[Fixture]) -> Dict[int, KickoffGroup]:
        """
        Map each fixture's match id to its kickoff group.

        Fixtures with no kickoff time cannot be grouped and always get a
        group of one.
        """
        groups: Dict[int, KickoffGroup] = {}
        for slot, members in self.bucket(fixtures).items():
            if slot is None:
                for fixture in members:
                    groups[fixture.external_match_id] = KickoffGroup(slot=None, size=1)
                continue
            for fixture in members:
                groups[fixture.external_match_id] = KickoffGroup(slot=slot, size=len(members))
        return groups
