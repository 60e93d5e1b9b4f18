"""
Transition classification between the notification ledger and the live score.

Pure functions: the same (previous, current) pair always yields the same
event set. Nothing here reads the clock or the database.
"""

from typing import FrozenSet, Optional

from live_sync.models import EventKind, LiveScore, MatchStatus, NotificationState

_STARTED_STATUSES = {
    MatchStatus.IN_PLAY.value,
    MatchStatus.PAUSED.value,
    MatchStatus.FINISHED.value,
}


def classify(prev: Optional[NotificationState], curr: LiveScore) -> FrozenSet[EventKind]:
    """
    Classify the transition from the last-notified state to the current score.

    Args:
        prev: Ledger entry for the match, or None if nothing was ever notified
        curr: Current canonical live score

    Returns:
        Event kinds to notify. JUST_FINISHED suppresses SCORE_CHANGED and
        NEW_MATCH_WITH_SCORE for the same cycle; a kickoff seen with a
        nonzero score is reported as a score event, not a kickoff.
    """
    events = set()
    is_finished = curr.status == MatchStatus.FINISHED
    is_nil_nil = curr.home_score == 0 and curr.away_score == 0

    if prev is not None:
        if (prev.last_notified_home_score != curr.home_score
                or prev.last_notified_away_score != curr.away_score):
            events.add(EventKind.SCORE_CHANGED)
        if prev.last_notified_status != MatchStatus.FINISHED.value and is_finished:
            events.add(EventKind.JUST_FINISHED)
        if prev.last_notified_status == MatchStatus.IN_PLAY.value and curr.status == MatchStatus.PAUSED:
            events.add(EventKind.HALF_TIME)
    else:
        if not is_nil_nil or is_finished:
            events.add(EventKind.NEW_MATCH_WITH_SCORE)
        if is_finished:
            events.add(EventKind.JUST_FINISHED)

    prev_status = prev.last_notified_status if prev is not None else None
    if prev_status not in _STARTED_STATUSES and curr.status.is_live and is_nil_nil:
        events.add(EventKind.JUST_KICKED_OFF)

    if EventKind.JUST_FINISHED in events:
        events.discard(EventKind.SCORE_CHANGED)
        events.discard(EventKind.NEW_MATCH_WITH_SCORE)
        events.discard(EventKind.HALF_TIME)

    return frozenset(events)


def needs_ledger_write(prev: Optional[NotificationState], curr: LiveScore, events: FrozenSet[EventKind]) -> bool:
    """
    Whether the ledger should be written after this cycle.

    The ledger is created on the first notifiable event and, once it exists,
    kept in step with every score/status change so the next diff starts from
    what is now true.
    """
    if prev is None:
        return bool(events)
    return bool(events) or not prev.matches(curr)
