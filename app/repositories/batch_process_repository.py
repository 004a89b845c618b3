"""Repository for batch runs and their per-file records."""

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import BatchProcess, BatchProcessFile
from app.repositories.base_repository import BaseRepository


class BatchProcessRepository(BaseRepository[BatchProcess]):
    """Repository for managing batch process records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, BatchProcess)

    async def create_batch_process(self, total_files: int, options: dict) -> BatchProcess:
        """Create a batch record in ``processing`` state.

        Args:
            total_files: Number of files submitted
            options: Batch options snapshot

        Returns:
            Created BatchProcess instance
        """
        now = datetime.now(timezone.utc)
        return await self.create(
            total_files=total_files,
            processed_files=0,
            failed_files=0,
            status="processing",
            options=options,
            start_time=now,
            created_at=now,
            updated_at=now,
        )

    async def add_files(
        self, batch_process_id: uuid.UUID, files: Sequence[tuple]
    ) -> None:
        """Register ``(file_name, file_size)`` pairs as pending files."""
        for file_name, file_size in files:
            self.session.add(
                BatchProcessFile(
                    batch_process_id=batch_process_id,
                    file_name=file_name,
                    file_size=file_size,
                    status="pending",
                    attempts=0,
                )
            )
        await self.session.flush()

    async def get_file(
        self, batch_process_id: uuid.UUID, file_name: str
    ) -> Optional[BatchProcessFile]:
        query = select(BatchProcessFile).where(
            BatchProcessFile.batch_process_id == batch_process_id,
            BatchProcessFile.file_name == file_name,
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def upsert_file(
        self, batch_process_id: uuid.UUID, file_name: str, **fields
    ) -> BatchProcessFile:
        """Update a file record, creating it if it was never registered."""
        record = await self.get_file(batch_process_id, file_name)
        if record is None:
            record = BatchProcessFile(batch_process_id=batch_process_id, file_name=file_name)
            self.session.add(record)
        for key, value in fields.items():
            setattr(record, key, value)
        await self.session.flush()
        return record

    async def update_final_status(
        self,
        batch_process_id: uuid.UUID,
        status: str,
        processed_files: int,
        failed_files: int,
        end_time: datetime,
    ) -> BatchProcess:
        batch = await self.get_by_id(batch_process_id)
        if not batch:
            raise ValueError(f"Batch process {batch_process_id} not found")

        batch.status = status
        batch.processed_files = processed_files
        batch.failed_files = failed_files
        batch.end_time = end_time
        batch.updated_at = datetime.now(timezone.utc)
        await self.session.flush()
        return batch
