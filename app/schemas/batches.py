from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class DetectionResultResponse(BaseModel):
    """Company detection outcome attached to a file result."""

    detected_company_id: Optional[str] = Field(None, description="Detected company id, if any")
    confidence: float = Field(..., description="Detection confidence (0.0 to 1.0)")
    method: str = Field(..., description="gemini_analysis | rule_based | unknown")
    details: dict = Field(default_factory=dict, description="Keywords, patterns, reasoning and applied rules")


class FileResultResponse(BaseModel):
    """Terminal result of one file in a batch."""

    file_name: str = Field(..., description="Uploaded file name")
    status: str = Field(..., description="pending | processing | success | error | cancelled")
    file_size: int = Field(0, description="File size in bytes")
    company_id: Optional[str] = Field(None, description="Company used for the work order")
    work_order_id: Optional[str] = Field(None, description="Persisted work order id")
    detection_result: Optional[DetectionResultResponse] = Field(None, description="Stage 1 result")
    error_message: Optional[str] = Field(None, description="Failure or cancellation message")
    started_at: Optional[datetime] = Field(None, description="Processing start time")
    completed_at: Optional[datetime] = Field(None, description="Processing end time")
    processing_time_ms: Optional[int] = Field(None, description="Processing time in milliseconds")
    attempts: int = Field(1, description="Number of attempts, including retries")
    previous_errors: List[str] = Field(default_factory=list, description="Errors from earlier attempts")


class BatchSubmissionResponse(BaseModel):
    """Response model for batch submission."""

    run_id: str = Field(..., description="Identifier used to query and control the batch")
    total_files: int = Field(..., description="Number of files accepted")
    message: str = Field(..., description="Human-readable status message")


class BatchStatusResponse(BaseModel):
    """Snapshot of a batch run."""

    run_id: str = Field(..., description="Batch run identifier")
    batch_id: Optional[str] = Field(None, description="Persisted batch record id")
    status: Optional[str] = Field(None, description="processing | completed | error | cancelled")
    is_processing: bool = Field(..., description="Whether files are still being processed")
    is_paused: bool = Field(..., description="Whether the batch is paused")
    pause_reason: Optional[str] = Field(None, description="user | error")
    current_file_index: int = Field(..., description="Index of the most recently started file")
    total_files: int = Field(..., description="Number of files in the batch")
    progress: int = Field(..., description="Progress percentage (0 to 100)")
    elapsed_ms: int = Field(..., description="Elapsed processing time in milliseconds")
    results: List[FileResultResponse] = Field(default_factory=list, description="Per-file results")


class BatchControlResponse(BaseModel):
    """Result of a pause, resume or cancel request."""

    run_id: str = Field(..., description="Batch run identifier")
    action: str = Field(..., description="pause | resume | cancel")
    accepted: bool = Field(..., description="False when the request had no effect")
    is_paused: bool = Field(..., description="Paused flag after the request")
    is_processing: bool = Field(..., description="Processing flag after the request")


class ProcessStateResponse(BaseModel):
    """UI-facing state of one file."""

    status: str = Field(..., description="waiting | ocr_processing | document_creating | completed | error | cancelled")
    current_step: str = Field(..., description="Human-readable step label")
    start_time: datetime = Field(..., description="When processing of the file started")
    can_cancel: bool = Field(..., description="Whether cancelling is currently meaningful")
    error_detail: Optional[str] = Field(None, description="Failure message")
    work_order_id: Optional[str] = Field(None, description="Persisted work order id")
