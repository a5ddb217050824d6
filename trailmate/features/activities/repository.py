"""
Activity repositories.

Data access layer for provider connections, activity records and metrics.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from trailmate.shared.clock import utcnow
from trailmate.shared.repository import BaseRepository
from .models import ActivityRecord, ActivityMetrics, ProviderConnection
from .schemas import ActivityRecordData, ActivityMetricsData


class ProviderConnectionRepository(BaseRepository[ProviderConnection]):
    """Repository for provider connections."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ProviderConnection)

    async def get_for_provider(self, user_id: str, provider: str) -> ProviderConnection | None:
        return await self.get_by(user_id=user_id, provider=provider)

    async def get_active(self, user_id: str) -> list[ProviderConnection]:
        """Active connections for a user."""
        return await self.get_all(user_id=user_id, is_active=True)

    async def mark_synced(self, user_id: str, provider: str, synced_at: datetime) -> None:
        connection = await self.get_for_provider(user_id, provider)
        if connection:
            await self.update(connection, last_sync_at=synced_at)

    async def save_tokens(
        self,
        user_id: str,
        provider: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int]
    ) -> Optional[ProviderConnection]:
        """Store refreshed OAuth tokens on an existing connection."""
        connection = await self.get_for_provider(user_id, provider)
        if not connection:
            return None
        return await self.update(
            connection,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    async def deactivate(self, user_id: str, provider: str) -> bool:
        """
        Soft-delete a connection.

        Returns:
            True if an active connection was deactivated
        """
        connection = await self.get_for_provider(user_id, provider)
        if not connection or not connection.is_active:
            return False
        await self.update(connection, is_active=False)
        return True

    async def latest_sync_at(self, user_id: str) -> Optional[datetime]:
        """Most recent successful sync across the user's active connections."""
        result = await self.db.execute(
            select(func.max(ProviderConnection.last_sync_at))
            .where(ProviderConnection.user_id == user_id)
            .where(ProviderConnection.is_active.is_(True))
        )
        return result.scalar()


class ActivityRecordRepository(BaseRepository[ActivityRecord]):
    """Repository for normalized activity records."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ActivityRecord)

    async def upsert_many(self, records: Iterable[ActivityRecordData]) -> int:
        """
        Insert new records and overwrite existing ones with the same
        (user_id, provider, provider_activity_id).

        Returns:
            Number of records written
        """
        written = 0
        for data in records:
            existing = await self.get_by(
                user_id=data.user_id,
                provider=data.provider,
                provider_activity_id=data.provider_activity_id,
            )
            values = data.column_values()
            if existing:
                for key, value in values.items():
                    setattr(existing, key, value)
            else:
                self.db.add(ActivityRecord(**values))
            written += 1

        await self.db.flush()
        return written

    async def get_for_metrics(
        self,
        user_id: str,
        since: Optional[datetime] = None
    ) -> list[ActivityRecordData]:
        """
        Records that count towards a user's metrics.

        Excludes records from providers the user has disconnected.
        """
        disconnected = (
            select(ProviderConnection.provider)
            .where(ProviderConnection.user_id == user_id)
            .where(ProviderConnection.is_active.is_(False))
        )
        query = (
            select(ActivityRecord)
            .where(ActivityRecord.user_id == user_id)
            .where(ActivityRecord.provider.not_in(disconnected))
            .order_by(ActivityRecord.start_time)
        )
        if since is not None:
            query = query.where(ActivityRecord.start_time >= since)

        result = await self.db.execute(query)
        return [ActivityRecordData.from_model(row) for row in result.scalars().all()]

    async def count_for_user(self, user_id: str, provider: Optional[str] = None) -> int:
        if provider:
            return await self.count(user_id=user_id, provider=provider)
        return await self.count(user_id=user_id)


class ActivityMetricsRepository(BaseRepository[ActivityMetrics]):
    """Repository for per-user activity metrics."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ActivityMetrics)

    async def get_for_user(self, user_id: str) -> Optional[ActivityMetricsData]:
        row = await self.get_by_id(user_id)
        return ActivityMetricsData.from_model(row) if row else None

    async def save(self, metrics: ActivityMetricsData) -> None:
        """Replace the user's metrics row."""
        row = await self.get_by_id(metrics.user_id)
        values = {
            "activity_level_score": metrics.activity_level_score,
            "preferred_activity_types": list(metrics.preferred_activity_types),
            "preferred_workout_times": list(metrics.preferred_workout_times),
            "fitness_level": metrics.fitness_level.value,
            "total_activities": metrics.total_activities,
            "last_calculated_at": metrics.last_calculated_at or utcnow(),
        }
        if row:
            await self.update(row, **values)
        else:
            self.db.add(ActivityMetrics(user_id=metrics.user_id, **values))
            await self.db.flush()

    async def delete_for_user(self, user_id: str) -> bool:
        row = await self.get_by_id(user_id)
        if not row:
            return False
        await self.delete(row)
        return True

    async def get_candidates(
        self,
        exclude_user_ids: Iterable[str],
        active_since: Optional[datetime] = None
    ) -> list[ActivityMetricsData]:
        """
        Metrics for potential partners.

        Args:
            exclude_user_ids: Users to leave out (the target, blocked users)
            active_since: Only metrics recalculated after this moment

        Returns:
            Metrics ordered by user_id
        """
        conditions = []
        excluded = list(exclude_user_ids)
        if excluded:
            conditions.append(ActivityMetrics.user_id.not_in(excluded))
        if active_since is not None:
            conditions.append(ActivityMetrics.last_calculated_at > active_since)

        query = select(ActivityMetrics).order_by(ActivityMetrics.user_id)
        if conditions:
            query = query.where(and_(*conditions))

        result = await self.db.execute(query)
        return [ActivityMetricsData.from_model(row) for row in result.scalars().all()]
