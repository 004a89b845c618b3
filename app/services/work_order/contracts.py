"""Data contracts for the single-file pipeline."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from app.core.ai_client import UsageMetadata
from app.services.detection.contracts import DetectionResult


@dataclass(frozen=True)
class SourceFile:
    """An uploaded document waiting to be processed."""
    name: str
    data: bytes
    mime_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class WorkOrderDraft:
    """Everything persisted for a generated work order."""
    file_name: str
    company_id: str
    company_name: str
    prompt_identifier: str
    generated_text: str
    status: str = "completed"
    detection_result: Optional[DetectionResult] = None
    usage: Optional[UsageMetadata] = None
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class GenerationOutcome:
    """Result of Stage 2 for one file."""
    work_order_id: str
    company_id: str
    company_name: str
    prompt_identifier: str
    generated_text: str
    usage: Optional[UsageMetadata] = None
