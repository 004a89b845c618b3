"""Repository for company detection audit history."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import CompanyDetectionHistory
from app.repositories.base_repository import BaseRepository


class DetectionHistoryRepository(BaseRepository[CompanyDetectionHistory]):
    """Repository for detection history records and their corrections."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, CompanyDetectionHistory)

    async def record_correction(
        self,
        history_id: uuid.UUID,
        corrected_company_id: str,
        reason: Optional[str] = None,
        corrected_by: Optional[str] = None,
    ) -> Optional[CompanyDetectionHistory]:
        """Attach a human correction to a detection record.

        Returns:
            The updated record, or None if it does not exist
        """
        return await self.update(
            history_id,
            corrected_company_id=corrected_company_id,
            correction_reason=reason,
            corrected_by=corrected_by,
            corrected_at=datetime.now(timezone.utc),
        )
