"""
Shared fixtures: temporary database, fake clock and sleeper, metrics builders.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trailmate.features.activities import ActivityMetricsData
from trailmate.models import Base, import_all_models
from trailmate.shared.constants import FitnessLevel


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 3, 2, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return RecordingSleep()


@pytest.fixture
async def session_factory(tmp_path):
    """File-backed SQLite so concurrent sessions get separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    import_all_models()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def make_metrics(
    user_id: str,
    level: float = 50.0,
    types: list[str] | None = None,
    hours: list[int] | None = None,
    fitness: FitnessLevel | str = FitnessLevel.INTERMEDIATE,
    calculated_at: datetime | None = None,
) -> ActivityMetricsData:
    return ActivityMetricsData(
        user_id=user_id,
        activity_level_score=level,
        preferred_activity_types=list(types) if types is not None else ["running", "hiking"],
        preferred_workout_times=list(hours) if hours is not None else [7, 18],
        fitness_level=FitnessLevel.parse(fitness),
        total_activities=10,
        last_calculated_at=calculated_at,
    )


@pytest.fixture
def metrics_factory():
    return make_metrics
