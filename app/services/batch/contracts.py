"""Data contracts for batch orchestration."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from app.services.detection.contracts import DetectionResult


class FileStatus(str, Enum):
    """Outcome of one file inside a batch."""
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class BatchStatus(str, Enum):
    """Lifecycle status of a batch run."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


class PauseReason(str, Enum):
    USER = "user"
    ERROR = "error"


CANCELLED_MESSAGE = "Processing was cancelled"


@dataclass(frozen=True)
class BatchOptions:
    """Options shared by every file of a batch.

    Attributes:
        concurrency_limit: Requested parallelism; capped by the orchestrator
        auto_detect_enabled: Run Stage 1 to pick the company per file
        retry_failed_files: Re-queue failed files once after the main pass
        pause_on_error: Pause the batch after any file fails
        company_id: Company used when auto-detection is off or finds nothing
    """
    concurrency_limit: int = 1
    auto_detect_enabled: bool = True
    retry_failed_files: bool = False
    pause_on_error: bool = False
    company_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concurrency_limit": self.concurrency_limit,
            "auto_detect_enabled": self.auto_detect_enabled,
            "retry_failed_files": self.retry_failed_files,
            "pause_on_error": self.pause_on_error,
            "company_id": self.company_id,
        }


@dataclass
class FileTaskResult:
    """Terminal record of one file's passage through the pipeline."""
    file_name: str
    status: FileStatus
    file_size: int = 0
    company_id: Optional[str] = None
    work_order_id: Optional[str] = None
    detection_result: Optional[DetectionResult] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    attempts: int = 1
    previous_errors: List[str] = field(default_factory=list)

    @property
    def processing_time_ms(self) -> Optional[int]:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "status": self.status.value,
            "file_size": self.file_size,
            "company_id": self.company_id,
            "work_order_id": self.work_order_id,
            "detection_result": self.detection_result.to_dict() if self.detection_result else None,
            "error_message": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "processing_time_ms": self.processing_time_ms,
            "attempts": self.attempts,
            "previous_errors": list(self.previous_errors),
        }


@dataclass
class BatchState:
    """Observable state of the running (or last) batch."""
    is_processing: bool = False
    is_paused: bool = False
    pause_reason: Optional[PauseReason] = None
    current_file_index: int = 0
    total_files: int = 0
    results: List[FileTaskResult] = field(default_factory=list)
    batch_id: Optional[str] = None
    status: Optional[BatchStatus] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_processing": self.is_processing,
            "is_paused": self.is_paused,
            "pause_reason": self.pause_reason.value if self.pause_reason else None,
            "current_file_index": self.current_file_index,
            "total_files": self.total_files,
            "results": [result.to_dict() for result in self.results],
            "batch_id": self.batch_id,
            "status": self.status.value if self.status else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }


@dataclass(frozen=True)
class BatchSummary:
    """Aggregate outcome reported when a batch finishes."""
    batch_id: Optional[str]
    status: BatchStatus
    total_files: int
    success_count: int
    error_count: int
    cancelled_count: int
    results: List[FileTaskResult]

    @property
    def processed_files(self) -> int:
        """Files that produced a work order; failures are counted separately."""
        return self.success_count

    @property
    def failed_files(self) -> int:
        return self.error_count
