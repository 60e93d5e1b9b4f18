"""
Run lock: at most one live sync cycle at a time.

The lock is a single timestamp (app_meta.last_poll_time). A run claims it by
writing its own start time, waits briefly, and reads it back; if another run's
write landed in between, the later reader backs off. When the datastore
supports a conditional update the claim is made with compare-and-set instead,
which closes the read/write gap. Without it a small race window remains: two
runs that read the same stale value and write within the tolerance of each
other can both proceed. That is accepted; every write downstream is an
idempotent upsert keyed by a natural id.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class LockOutcome(Enum):
    ACQUIRED = "acquired"
    TOO_SOON = "too_soon"
    CONTENDED = "contended"


@dataclass
class LockResult:
    outcome: LockOutcome
    message: str
    claimed_at: Optional[datetime] = None

    @property
    def acquired(self) -> bool:
        return self.outcome == LockOutcome.ACQUIRED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunLock:
    """Best-effort mutual exclusion around one full cycle."""

    def __init__(
        self,
        db,
        min_interval_seconds: float = 15.0,
        settle_seconds: float = 0.1,
        tolerance_seconds: float = 1.0,
        jitter_seconds: float = 0.0,
        use_compare_and_set: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.min_interval_seconds = min_interval_seconds
        self.settle_seconds = settle_seconds
        self.tolerance_seconds = tolerance_seconds
        self.jitter_seconds = jitter_seconds
        self.use_compare_and_set = use_compare_and_set and hasattr(db, "compare_and_set_last_poll_time")
        self.clock = clock

    async def acquire(self) -> LockResult:
        """
        Try to claim the run.

        Returns:
            LockResult; `acquired` is False when a run happened less than
            min_interval ago or another invocation won the claim.
        """
        # Spread simultaneous scheduler invocations apart
        if self.jitter_seconds > 0:
            await asyncio.sleep(random.uniform(0, self.jitter_seconds))

        last_poll = self.db.get_last_poll_time()
        now = self.clock()
        if last_poll is not None:
            elapsed = (now - last_poll).total_seconds()
            if elapsed < self.min_interval_seconds:
                logger.info("Run lock held by recent run, skipping", extra={
                    "seconds_since_last_run": round(elapsed, 1),
                    "min_interval_seconds": self.min_interval_seconds,
                })
                return LockResult(
                    LockOutcome.TOO_SOON,
                    f"Ran {int(elapsed)}s ago, skipped (minimum interval {int(self.min_interval_seconds)}s)",
                )

        if self.use_compare_and_set:
            if not self.db.compare_and_set_last_poll_time(last_poll, now):
                logger.info("Run lock claimed by another invocation (compare-and-set)")
                return LockResult(LockOutcome.CONTENDED, "Lock acquired by another invocation")
        else:
            self.db.set_last_poll_time(now)

        if self.settle_seconds > 0:
            await asyncio.sleep(self.settle_seconds)

        stored = self.db.get_last_poll_time()
        if stored is None or abs((stored - now).total_seconds()) > self.tolerance_seconds:
            logger.info("Run lock overwritten by another invocation, skipping", extra={
                "claimed_at": now.isoformat(),
                "stored": stored.isoformat() if stored else None,
            })
            return LockResult(LockOutcome.CONTENDED, "Lock acquired by another invocation")

        logger.debug("Run lock acquired", extra={"claimed_at": now.isoformat()})
        return LockResult(LockOutcome.ACQUIRED, "Lock acquired", claimed_at=now)
