"""
Sync orchestration.

Syncs every connected provider for a user concurrently:

    fetch (gateway) -> normalize -> upsert records -> recompute metrics

Provider syncs are independent tasks, each with its own database session.
A failure in one provider never stops the others; the run always resolves
to a per-provider outcome report.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trailmate.config import settings
from trailmate.features.activities import (
    ActivityNormalizer,
    ActivityRecordRepository,
    MetricsAggregator,
    ProviderConnection,
    ProviderConnectionRepository,
    normalize_batch,
)
from trailmate.features.quota import RateLimited, UpstreamError
from trailmate.shared.clock import Clock, utcnow

logger = logging.getLogger(__name__)


class ProviderAdapter(Protocol):
    """A provider data source: raw fetch plus its normalizer."""
    provider: str
    normalizer: ActivityNormalizer

    async def fetch_activities(
        self,
        user_id: str,
        connection: ProviderConnection,
        after: Optional[datetime] = None
    ) -> list[dict[str, Any]]:
        ...


class UnsupportedProvider(Exception):
    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"No sync adapter for provider {provider}")


# =============================================================================
# Results
# =============================================================================

class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    RATE_LIMITED = "rate_limited"
    SKIPPED = "skipped"


@dataclass
class ProviderSyncOutcome:
    """Settled result of one provider's sync."""
    provider: str
    status: SyncStatus
    activities_synced: int = 0
    error: Optional[str] = None
    retry_after_seconds: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.SUCCESS

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "status": self.status.value,
            "activities_synced": self.activities_synced,
            "error": self.error,
            "retry_after_seconds": self.retry_after_seconds,
        }


@dataclass
class SyncReport:
    """Per-provider outcomes for one sync_all run."""
    user_id: str
    outcomes: dict[str, ProviderSyncOutcome] = field(default_factory=dict)
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> list[str]:
        return [p for p, o in self.outcomes.items() if o.succeeded]

    @property
    def failed(self) -> list[str]:
        return [
            p for p, o in self.outcomes.items()
            if o.status in (SyncStatus.FAILED, SyncStatus.RATE_LIMITED)
        ]

    def messages(self) -> list[str]:
        """User-facing status lines."""
        lines = []
        for provider, outcome in self.outcomes.items():
            if outcome.status == SyncStatus.RATE_LIMITED:
                lines.append(
                    f"{provider}: rate limited. Try again in "
                    f"{outcome.retry_after_seconds} seconds"
                )
            elif outcome.status == SyncStatus.FAILED:
                if self.succeeded:
                    lines.append(f"Sync failed for {provider}, other providers succeeded")
                else:
                    lines.append(f"Sync failed for {provider}")
            elif outcome.status == SyncStatus.SUCCESS:
                lines.append(f"{provider}: {outcome.activities_synced} activities synced")
        return lines

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "outcomes": {p: o.to_dict() for p, o in self.outcomes.items()},
            "messages": self.messages(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


# =============================================================================
# Orchestrator
# =============================================================================

class SyncOrchestrator:
    """
    Settle-all sync across a user's providers.

    Usage:
        orchestrator = SyncOrchestrator(AsyncSessionLocal, {"strava": StravaAdapter(gateway)})
        report = await orchestrator.sync_user(user_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        adapters: Mapping[str, ProviderAdapter],
        aggregator: Optional[MetricsAggregator] = None,
        history_days: int = settings.sync_history_days,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.adapters = dict(adapters)
        self.aggregator = aggregator or MetricsAggregator(settings.metrics_window_days, clock)
        self.history_days = history_days
        self.clock = clock

    async def sync_user(self, user_id: str, force_refresh: bool = False) -> SyncReport:
        """Sync all of the user's active connections from the database."""
        async with self.session_factory() as db:
            connections = await ProviderConnectionRepository(db).get_active(user_id)
        return await self.sync_all(user_id, connections, force_refresh)

    async def sync_all(
        self,
        user_id: str,
        connections: Iterable[ProviderConnection],
        force_refresh: bool = False
    ) -> SyncReport:
        """Sync each connection concurrently; never raises for provider failures."""
        report = SyncReport(user_id=user_id)

        active = []
        for connection in connections:
            if connection.is_active is False:
                report.outcomes[connection.provider] = ProviderSyncOutcome(
                    connection.provider, SyncStatus.SKIPPED
                )
            else:
                active.append(connection)

        results = await asyncio.gather(
            *(self.sync_provider(user_id, c, force_refresh) for c in active),
            return_exceptions=True,
        )

        for connection, result in zip(active, results):
            report.outcomes[connection.provider] = self._settle(user_id, connection.provider, result)

        report.finished_at = self.clock()
        logger.info(
            f"Sync for user {user_id} finished: "
            f"ok={report.succeeded} failed={report.failed}"
        )
        return report

    async def sync_provider(
        self,
        user_id: str,
        connection: ProviderConnection,
        force_refresh: bool = False
    ) -> ProviderSyncOutcome:
        """
        Sync one provider.

        Raises:
            UnsupportedProvider, RateLimited, UpstreamError
        """
        provider = connection.provider
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise UnsupportedProvider(provider)

        started_at = self.clock()
        after = self._fetch_after(connection, started_at, force_refresh)

        raw = await adapter.fetch_activities(user_id, connection, after)
        records = normalize_batch(adapter.normalizer, user_id, raw)

        async with self.session_factory() as db:
            written = await ActivityRecordRepository(db).upsert_many(records)
            await ProviderConnectionRepository(db).mark_synced(user_id, provider, started_at)
            await db.commit()

            await self.aggregator.recompute(db, user_id)

        logger.info(f"Synced {written} {provider} activities for user {user_id}")
        return ProviderSyncOutcome(provider, SyncStatus.SUCCESS, activities_synced=written)

    async def disconnect(self, user_id: str, provider: str) -> bool:
        """Deactivate a connection and recompute metrics without its records."""
        async with self.session_factory() as db:
            deactivated = await ProviderConnectionRepository(db).deactivate(user_id, provider)
            await db.commit()
            if deactivated:
                await self.aggregator.recompute(db, user_id)
        return deactivated

    def _fetch_after(
        self,
        connection: ProviderConnection,
        now: datetime,
        force_refresh: bool
    ) -> datetime:
        history_start = now - timedelta(days=self.history_days)
        if force_refresh or connection.last_sync_at is None:
            return history_start
        return max(connection.last_sync_at, history_start)

    def _settle(self, user_id: str, provider: str, result: object) -> ProviderSyncOutcome:
        if isinstance(result, ProviderSyncOutcome):
            return result

        if isinstance(result, RateLimited):
            logger.warning(f"{provider} sync for user {user_id} rate limited: {result}")
            return ProviderSyncOutcome(
                provider,
                SyncStatus.RATE_LIMITED,
                error=str(result),
                retry_after_seconds=result.retry_after_seconds,
            )

        if isinstance(result, (UpstreamError, UnsupportedProvider)):
            logger.error(f"{provider} sync for user {user_id} failed: {result}")
        else:
            logger.error(
                f"{provider} sync for user {user_id} failed unexpectedly",
                exc_info=result if isinstance(result, BaseException) else None,
            )
        return ProviderSyncOutcome(provider, SyncStatus.FAILED, error=str(result))
