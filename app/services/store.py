"""Persistence contracts consumed by the pipeline and orchestrator.

Concrete implementations live in ``app.repositories.sql_store``; tests use
in-memory fakes. Every method may fail independently of the pipeline.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, Sequence

from app.services.detection.contracts import DetectionHistoryEntry, DetectionRule

if TYPE_CHECKING:
    from app.services.batch.contracts import BatchOptions, FileTaskResult
    from app.services.work_order.contracts import WorkOrderDraft


@dataclass(frozen=True)
class BatchFileEntry:
    """File registered against a batch job before processing starts."""
    file_name: str
    file_size: int


class BatchJobStore(Protocol):
    """Job-level and per-file progress records for batch runs."""

    async def create_batch_job(self, total_files: int, options: "BatchOptions") -> str:
        ...

    async def record_batch_files(self, batch_id: str, files: Sequence[BatchFileEntry]) -> None:
        ...

    async def update_file_result(self, batch_id: str, result: "FileTaskResult") -> None:
        ...

    async def finalize_batch_job(
        self,
        batch_id: str,
        status: str,
        processed_files: int,
        failed_files: int,
        end_time: datetime,
    ) -> None:
        ...


class WorkOrderStore(Protocol):
    """Work-order records produced by Stage 2."""

    async def create_work_order(self, draft: "WorkOrderDraft") -> str:
        ...

    async def get_work_order_status(self, work_order_id: str) -> Optional[str]:
        """Return the raw stored status, or None when the record is not visible yet."""
        ...

    async def update_work_order_status(
        self,
        work_order_id: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> None:
        ...


class DetectionRuleSource(Protocol):
    """Read-only access to administrator-maintained detection rules."""

    async def list_active_rules(self) -> List[DetectionRule]:
        """Active rules ordered by priority, highest first."""
        ...


class DetectionHistoryStore(Protocol):
    """Audit trail of detection outcomes."""

    async def record_detection(self, entry: DetectionHistoryEntry) -> str:
        ...

    async def record_correction(
        self,
        history_id: str,
        corrected_company_id: str,
        reason: Optional[str] = None,
        corrected_by: Optional[str] = None,
    ) -> bool:
        ...

    async def get_history(self, history_id: str) -> Optional[Dict[str, Any]]:
        ...
