"""
Credential repositories.

Data access for credential configs and user assignments.
"""

from typing import Callable, Awaitable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trailmate.shared.repository import BaseRepository
from .models import ApiCredentialConfig, CredentialAssignment
from .state import CredentialConfig


class CredentialRepository(BaseRepository[ApiCredentialConfig]):
    """Repository for credential configs and their assignments."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ApiCredentialConfig)

    async def get_assigned_config(self, user_id: str) -> Optional[CredentialConfig]:
        """
        Get the config assigned to a user.

        Returns:
            CredentialConfig (possibly inactive) or None if the user has no
            assignment
        """
        result = await self.db.execute(
            select(ApiCredentialConfig)
            .join(CredentialAssignment, CredentialAssignment.config_id == ApiCredentialConfig.id)
            .where(CredentialAssignment.user_id == user_id)
        )
        row = result.scalars().first()
        return CredentialConfig.from_model(row) if row else None

    async def assign(self, user_id: str, config_id: str) -> CredentialAssignment:
        """Assign (or reassign) a user to a config."""
        result = await self.db.execute(
            select(CredentialAssignment).where(CredentialAssignment.user_id == user_id)
        )
        assignment = result.unique().scalar_one_or_none()
        if assignment:
            assignment.config_id = config_id
        else:
            assignment = CredentialAssignment(user_id=user_id, config_id=config_id)
            self.db.add(assignment)
        await self.db.flush()
        return assignment

    async def get_active_configs(self) -> list[CredentialConfig]:
        rows = await self.get_all(is_active=True)
        return [CredentialConfig.from_model(row) for row in rows]


AssignmentLookup = Callable[[str], Awaitable[Optional[CredentialConfig]]]


def make_assignment_lookup(session_factory: async_sessionmaker[AsyncSession]) -> AssignmentLookup:
    """Build a resolver lookup that opens its own short-lived session."""

    async def lookup(user_id: str) -> Optional[CredentialConfig]:
        async with session_factory() as db:
            return await CredentialRepository(db).get_assigned_config(user_id)

    return lookup
