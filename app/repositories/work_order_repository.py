"""Repository for generated work orders."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import WorkOrder
from app.repositories.base_repository import BaseRepository


class WorkOrderRepository(BaseRepository[WorkOrder]):
    """Repository for managing work order records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WorkOrder)

    async def get_status(self, work_order_id: uuid.UUID) -> Optional[str]:
        query = select(WorkOrder.status).where(WorkOrder.id == work_order_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def update_status(
        self,
        work_order_id: uuid.UUID,
        status: str,
        error_message: Optional[str] = None,
    ) -> WorkOrder:
        """Update the status of a work order.

        Args:
            work_order_id: Work order record ID
            status: New status value
            error_message: Optional failure description

        Returns:
            Updated WorkOrder instance
        """
        work_order = await self.get_by_id(work_order_id)
        if not work_order:
            raise ValueError(f"Work order {work_order_id} not found")

        work_order.status = status
        if error_message is not None:
            work_order.error_message = error_message
        work_order.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return work_order
