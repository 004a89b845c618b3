"""SQLAlchemy-backed implementation of the pipeline store contracts.

Every operation opens its own session and transaction so concurrent file
tasks never share a session.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.exceptions import DatabaseError
from app.repositories.batch_process_repository import BatchProcessRepository
from app.repositories.detection_history_repository import DetectionHistoryRepository
from app.repositories.detection_rule_repository import DetectionRuleRepository
from app.repositories.work_order_repository import WorkOrderRepository
from app.services.batch.contracts import BatchOptions, FileTaskResult
from app.services.detection.contracts import DetectionHistoryEntry, DetectionRule, RuleType
from app.services.store import BatchFileEntry
from app.services.work_order.contracts import WorkOrderDraft
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _as_uuid(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise DatabaseError(f"Invalid record id: {value}", original_error=e)


class SqlStore:
    """Batch, work-order, rule and history persistence over one session factory."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            LOGGER.error(f"Database operation failed: {operation}", extra={"error": str(e)})
            raise DatabaseError(f"Database operation failed: {operation}", original_error=e)

    # Batch jobs

    async def create_batch_job(self, total_files: int, options: BatchOptions) -> str:
        async with self._transaction("create_batch_job") as session:
            batch = await BatchProcessRepository(session).create_batch_process(
                total_files, options.to_dict()
            )
            return str(batch.id)

    async def record_batch_files(self, batch_id: str, files: Sequence[BatchFileEntry]) -> None:
        async with self._transaction("record_batch_files") as session:
            await BatchProcessRepository(session).add_files(
                _as_uuid(batch_id), [(entry.file_name, entry.file_size) for entry in files]
            )

    async def update_file_result(self, batch_id: str, result: FileTaskResult) -> None:
        async with self._transaction("update_file_result") as session:
            await BatchProcessRepository(session).upsert_file(
                _as_uuid(batch_id),
                result.file_name,
                file_size=result.file_size,
                status=result.status.value,
                company_id=result.company_id,
                work_order_id=_as_uuid(result.work_order_id) if result.work_order_id else None,
                detection_result=result.detection_result.to_dict() if result.detection_result else None,
                error_message=result.error_message,
                attempts=result.attempts,
                processing_time_ms=result.processing_time_ms,
                started_at=result.started_at,
                completed_at=result.completed_at,
            )

    async def finalize_batch_job(
        self,
        batch_id: str,
        status: str,
        processed_files: int,
        failed_files: int,
        end_time: datetime,
    ) -> None:
        async with self._transaction("finalize_batch_job") as session:
            await BatchProcessRepository(session).update_final_status(
                _as_uuid(batch_id), status, processed_files, failed_files, end_time
            )

    # Work orders

    async def create_work_order(self, draft: WorkOrderDraft) -> str:
        detection = draft.detection_result
        async with self._transaction("create_work_order") as session:
            work_order = await WorkOrderRepository(session).create(
                file_name=draft.file_name,
                status=draft.status,
                generated_text=draft.generated_text,
                prompt_identifier=draft.prompt_identifier,
                company_name=draft.company_name,
                final_company_id=draft.company_id,
                detected_company_id=detection.detected_company_id if detection else None,
                detection_confidence=detection.confidence if detection else None,
                detection_method=detection.method.value if detection else "manual",
                detection_metadata=detection.details.to_dict() if detection else None,
                usage_metadata=draft.usage.to_dict() if draft.usage else None,
                gemini_processed_at=draft.processed_at,
                created_at=datetime.now(timezone.utc),
                updated_at=datetime.now(timezone.utc),
            )
            return str(work_order.id)

    async def get_work_order_status(self, work_order_id: str) -> Optional[str]:
        async with self._transaction("get_work_order_status") as session:
            return await WorkOrderRepository(session).get_status(_as_uuid(work_order_id))

    async def update_work_order_status(
        self,
        work_order_id: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._transaction("update_work_order_status") as session:
            await WorkOrderRepository(session).update_status(
                _as_uuid(work_order_id), status, error_message
            )

    # Detection rules and history

    async def list_active_rules(self) -> List[DetectionRule]:
        async with self._transaction("list_active_rules") as session:
            rows = await DetectionRuleRepository(session).list_active()
            return [
                DetectionRule(
                    id=str(row.id),
                    company_id=row.company_id,
                    rule_type=RuleType(row.rule_type),
                    rule_value=row.rule_value,
                    priority=row.priority,
                    is_active=row.is_active,
                )
                for row in rows
            ]

    async def record_detection(self, entry: DetectionHistoryEntry) -> str:
        result = entry.result
        async with self._transaction("record_detection") as session:
            history = await DetectionHistoryRepository(session).create(
                work_order_id=_as_uuid(entry.work_order_id) if entry.work_order_id else None,
                file_name=entry.file_name,
                detected_company_id=result.detected_company_id,
                detection_confidence=result.confidence,
                detection_method=result.method.value,
                detection_details=result.details.to_dict(),
                created_by=entry.created_by,
                created_at=datetime.now(timezone.utc),
            )
            return str(history.id)

    async def record_correction(
        self,
        history_id: str,
        corrected_company_id: str,
        reason: Optional[str] = None,
        corrected_by: Optional[str] = None,
    ) -> bool:
        async with self._transaction("record_correction") as session:
            record = await DetectionHistoryRepository(session).record_correction(
                _as_uuid(history_id), corrected_company_id, reason, corrected_by
            )
            return record is not None

    async def get_history(self, history_id: str) -> Optional[Dict[str, Any]]:
        async with self._transaction("get_history") as session:
            record = await DetectionHistoryRepository(session).get_by_id(_as_uuid(history_id))
            if record is None:
                return None
            return {
                "id": str(record.id),
                "file_name": record.file_name,
                "work_order_id": str(record.work_order_id) if record.work_order_id else None,
                "detected_company_id": record.detected_company_id,
                "detection_confidence": record.detection_confidence,
                "detection_method": record.detection_method,
                "detection_details": record.detection_details,
                "corrected_company_id": record.corrected_company_id,
                "correction_reason": record.correction_reason,
                "corrected_at": record.corrected_at.isoformat() if record.corrected_at else None,
            }
