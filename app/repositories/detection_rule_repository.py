"""Repository for company detection rules."""

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import CompanyDetectionRule
from app.repositories.base_repository import BaseRepository


class DetectionRuleRepository(BaseRepository[CompanyDetectionRule]):
    """Read access to administrator-maintained detection rules."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CompanyDetectionRule)

    async def list_active(self) -> Sequence[CompanyDetectionRule]:
        """Active rules, highest priority first."""
        query = (
            select(CompanyDetectionRule)
            .where(CompanyDetectionRule.is_active.is_(True))
            .order_by(CompanyDetectionRule.priority.desc(), CompanyDetectionRule.created_at)
        )
        result = await self.session.execute(query)
        return result.scalars().all()
