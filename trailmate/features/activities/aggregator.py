"""
Activity metrics aggregation.

Rolls a user's activity records up into one ActivityMetrics row. The
computation always starts from the full current record set, never from the
previous metrics, so two syncs finishing in either order give the same
result.

Activity level score (0-100) over the recent window:
- weekly training minutes, full marks at 300 min/week   (60 pts)
- weekly sessions, full marks at 5 sessions/week        (30 pts)
- daily steps, full marks at 10,000 steps/day           (10 pts)
Users whose providers report no steps are scored on minutes and sessions
alone, scaled to 100.
"""

import asyncio
import logging
import weakref
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from trailmate.shared.clock import Clock, utcnow
from trailmate.shared.constants import FitnessLevel
from .repository import ActivityRecordRepository, ActivityMetricsRepository
from .schemas import ActivityRecordData, ActivityMetricsData

logger = logging.getLogger(__name__)

TARGET_WEEKLY_MINUTES = 300
TARGET_WEEKLY_SESSIONS = 5
TARGET_DAILY_STEPS = 10_000

DURATION_POINTS = 60
FREQUENCY_POINTS = 30
STEPS_POINTS = 10

MAX_PREFERRED_TYPES = 5
MAX_PREFERRED_HOURS = 6
# An hour counts as preferred if at least this share of sessions start in it
PREFERRED_HOUR_MIN_SHARE = 0.10

# Upper bounds (exclusive) of activity level score for each tier
FITNESS_THRESHOLDS: list[tuple[float, FitnessLevel]] = [
    (25, FitnessLevel.BEGINNER),
    (50, FitnessLevel.INTERMEDIATE),
    (75, FitnessLevel.ADVANCED),
]


def activity_level_score(
    records: Sequence[ActivityRecordData],
    window_days: int
) -> float:
    """Score recent training volume on a 0-100 scale."""
    if not records or window_days <= 0:
        return 0.0

    weeks = window_days / 7
    weekly_minutes = sum(r.duration_seconds for r in records) / 60 / weeks
    weekly_sessions = len(records) / weeks

    duration_pts = min(weekly_minutes / TARGET_WEEKLY_MINUTES, 1.0) * DURATION_POINTS
    frequency_pts = min(weekly_sessions / TARGET_WEEKLY_SESSIONS, 1.0) * FREQUENCY_POINTS

    step_records = [r for r in records if r.steps]
    if step_records:
        daily_steps = sum(r.steps for r in step_records) / window_days
        steps_pts = min(daily_steps / TARGET_DAILY_STEPS, 1.0) * STEPS_POINTS
        score = duration_pts + frequency_pts + steps_pts
    else:
        score = (duration_pts + frequency_pts) * 100 / (DURATION_POINTS + FREQUENCY_POINTS)

    return round(min(max(score, 0.0), 100.0), 1)


def fitness_level_for(score: float) -> FitnessLevel:
    for upper, level in FITNESS_THRESHOLDS:
        if score < upper:
            return level
    return FitnessLevel.ELITE


def preferred_activity_types(records: Sequence[ActivityRecordData]) -> list[str]:
    """Most frequent activity types first; ties in alphabetical order."""
    counts = Counter(r.activity_type for r in records if r.activity_type)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [activity_type for activity_type, _ in ranked[:MAX_PREFERRED_TYPES]]


def preferred_workout_times(records: Sequence[ActivityRecordData]) -> list[int]:
    """Hours of day (ascending) in which the user regularly starts workouts."""
    if not records:
        return []

    counts = Counter(r.start_time.hour for r in records)
    min_count = max(1, PREFERRED_HOUR_MIN_SHARE * len(records))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    hours = [hour for hour, count in ranked if count >= min_count]
    return sorted(hours[:MAX_PREFERRED_HOURS])


def compute_metrics(
    user_id: str,
    records: Sequence[ActivityRecordData],
    now: datetime,
    window_days: int = 28
) -> Optional[ActivityMetricsData]:
    """
    Build metrics from a user's complete record set.

    Returns None when the user has no records.
    """
    if not records:
        return None

    window_start = now - timedelta(days=window_days)
    recent = [r for r in records if r.start_time >= window_start]
    score = activity_level_score(recent, window_days)

    return ActivityMetricsData(
        user_id=user_id,
        activity_level_score=score,
        preferred_activity_types=preferred_activity_types(records),
        preferred_workout_times=preferred_workout_times(records),
        fitness_level=fitness_level_for(score),
        total_activities=len(records),
        last_calculated_at=now,
    )


class MetricsAggregator:
    """
    Recomputes and persists ActivityMetrics.

    Recomputes for the same user are serialized and commit before the lock
    is released, so a later recompute always sees an earlier one's writes.

    Usage:
        aggregator = MetricsAggregator()
        metrics = await aggregator.recompute(db, user_id)
    """

    def __init__(self, window_days: int = 28, clock: Clock = utcnow):
        self.window_days = window_days
        self.clock = clock
        # Entries disappear once no recompute holds or awaits the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def recompute(self, db: AsyncSession, user_id: str) -> Optional[ActivityMetricsData]:
        async with self._lock_for(user_id):
            records = await ActivityRecordRepository(db).get_for_metrics(user_id)
            metrics = compute_metrics(user_id, records, self.clock(), self.window_days)

            metrics_repo = ActivityMetricsRepository(db)
            if metrics is None:
                if await metrics_repo.delete_for_user(user_id):
                    logger.info(f"Removed metrics for user {user_id}: no activity records left")
            else:
                await metrics_repo.save(metrics)
                logger.info(
                    f"Recalculated metrics for user {user_id}: "
                    f"level={metrics.activity_level_score} fitness={metrics.fitness_level.value} "
                    f"from {metrics.total_activities} activities"
                )
            await db.commit()
            return metrics
