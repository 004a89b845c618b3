"""Process state contracts."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ProcessStatus(str, Enum):
    """UI-facing status of one document in the pipeline."""
    WAITING = "waiting"
    OCR_PROCESSING = "ocr_processing"
    DOCUMENT_CREATING = "document_creating"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ProcessStatus.COMPLETED, ProcessStatus.ERROR, ProcessStatus.CANCELLED}
)

# Position on the forward path; error and cancelled sit outside it.
FORWARD_ORDER = {
    ProcessStatus.WAITING: 0,
    ProcessStatus.OCR_PROCESSING: 1,
    ProcessStatus.DOCUMENT_CREATING: 2,
    ProcessStatus.COMPLETED: 3,
}


@dataclass(frozen=True)
class ProcessState:
    """Snapshot of one document's progress.

    Attributes:
        status: Current process status
        current_step: Human-readable label for the status
        start_time: When processing of this document started
        can_cancel: Whether a cancel request is currently meaningful
        error_detail: Failure message when status is ``error``
        work_order_id: Persisted work-order id once known
    """
    status: ProcessStatus
    current_step: str
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    can_cancel: bool = False
    error_detail: Optional[str] = None
    work_order_id: Optional[str] = None

    def evolve(self, **changes: Any) -> "ProcessState":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "current_step": self.current_step,
            "start_time": self.start_time.isoformat(),
            "can_cancel": self.can_cancel,
            "error_detail": self.error_detail,
            "work_order_id": self.work_order_id,
        }
