"""
Quota stores.

A QuotaStore owns every QuotaState and is the only place counters change.
Read-check-increment-write for one credential runs under a per-credential
asyncio.Lock, so concurrent syncs sharing a pooled credential cannot race
past the limit. Different credentials never contend.

Implementations:
- InMemoryQuotaStore: process-local, for tests and single-worker setups
- SqlQuotaStore: persisted in quota_states; the row is also locked with
  SELECT ... FOR UPDATE so separate processes on PostgreSQL serialize too
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trailmate.shared.clock import Clock, utcnow
from .models import QuotaStateRow
from .state import CredentialConfig, QuotaDecision, QuotaState, QuotaUsage

logger = logging.getLogger(__name__)


class QuotaStore(ABC):
    """
    Serialized access to per-credential quota state.

    Subclasses provide `_locked_state`, an async context manager that yields
    the mutable state for one credential and persists it on clean exit.
    """

    def __init__(self, window: timedelta, clock: Clock = utcnow):
        self.window = window
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @abstractmethod
    def _locked_state(self, credential_id: str) -> "AsyncIterator[QuotaState]":
        ...

    @asynccontextmanager
    async def _guard(self, credential_id: str) -> AsyncIterator[QuotaState]:
        async with self._locks[credential_id]:
            async with self._locked_state(credential_id) as state:
                yield state

    async def consume(self, config: CredentialConfig) -> QuotaDecision:
        """
        Take one request slot for `config`, or refuse with a retry delay.

        Refusals caused by a full window or day persist the throttled state.
        """
        async with self._guard(config.id) as state:
            decision = state.try_consume(config, self.clock(), self.window)
            snapshot = state.copy()

        if not decision.allowed:
            logger.warning(
                f"Quota exhausted for credential {config.id}: "
                f"{snapshot.window_requests}/{config.window_limit} in window, "
                f"{snapshot.daily_requests}/{config.daily_limit} today, "
                f"retry in {decision.retry_after_seconds}s"
            )
        return QuotaDecision(decision.allowed, snapshot, decision.retry_after_seconds)

    async def mark_throttled(self, credential_id: str, retry_after_seconds: float) -> QuotaState:
        """Record a provider-signalled throttle lasting `retry_after_seconds`."""
        async with self._guard(credential_id) as state:
            now = self.clock()
            state.roll(now, self.window)
            state.throttle_until(now + timedelta(seconds=retry_after_seconds))
            snapshot = state.copy()

        logger.warning(
            f"Credential {credential_id} throttled by provider until {snapshot.retry_after}"
        )
        return snapshot

    async def get_state(self, credential_id: str) -> QuotaState:
        """Current state (rolled to now) without consuming anything."""
        async with self._guard(credential_id) as state:
            state.roll(self.clock(), self.window)
            return state.copy()

    async def get_usage(self, config: CredentialConfig) -> QuotaUsage:
        state = await self.get_state(config.id)
        return state.usage(config, self.clock(), self.window)


class InMemoryQuotaStore(QuotaStore):
    """Quota state kept in process memory."""

    def __init__(self, window: timedelta, clock: Clock = utcnow):
        super().__init__(window, clock)
        self._states: dict[str, QuotaState] = {}

    @asynccontextmanager
    async def _locked_state(self, credential_id: str) -> AsyncIterator[QuotaState]:
        state = self._states.get(credential_id)
        if state is None:
            state = QuotaState.fresh(credential_id, self.clock())
        # Work on a copy so a failure mid-update leaves stored state untouched
        working = state.copy()
        yield working
        self._states[credential_id] = working


class SqlQuotaStore(QuotaStore):
    """Quota state persisted in the quota_states table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        window: timedelta,
        clock: Clock = utcnow
    ):
        super().__init__(window, clock)
        self.session_factory = session_factory

    @staticmethod
    def _to_state(row: QuotaStateRow) -> QuotaState:
        return QuotaState(
            credential_id=row.credential_id,
            window_start=row.window_start,
            daily_window_start=row.daily_window_start,
            window_requests=row.window_requests,
            daily_requests=row.daily_requests,
            is_throttled=bool(row.is_throttled),
            retry_after=row.retry_after,
            last_request_at=row.last_request_at,
        )

    @staticmethod
    def _apply(row: QuotaStateRow, state: QuotaState) -> None:
        row.window_start = state.window_start
        row.daily_window_start = state.daily_window_start
        row.window_requests = state.window_requests
        row.daily_requests = state.daily_requests
        row.is_throttled = state.is_throttled
        row.retry_after = state.retry_after
        row.last_request_at = state.last_request_at

    @asynccontextmanager
    async def _locked_state(self, credential_id: str) -> AsyncIterator[QuotaState]:
        async with self.session_factory() as db:
            async with db.begin():
                row = await self._lock_row(db, credential_id)
                state = self._to_state(row)
                yield state
                self._apply(row, state)

    async def _lock_row(self, db: AsyncSession, credential_id: str) -> QuotaStateRow:
        result = await db.execute(
            select(QuotaStateRow)
            .where(QuotaStateRow.credential_id == credential_id)
            .with_for_update()
        )
        row: Optional[QuotaStateRow] = result.scalar_one_or_none()
        if row is None:
            now = self.clock()
            row = QuotaStateRow(
                credential_id=credential_id,
                window_requests=0,
                window_start=now,
                daily_requests=0,
                daily_window_start=now,
                is_throttled=False,
            )
            db.add(row)
            logger.info(f"Initialized quota state for credential {credential_id}")
        return row
