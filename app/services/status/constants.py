"""Status labels, raw status mapping and tracker timing defaults."""

from typing import Optional

from app.services.status.contracts import ProcessStatus

STEP_LABELS = {
    ProcessStatus.WAITING: "Waiting to start...",
    ProcessStatus.OCR_PROCESSING: "Detecting company...",
    ProcessStatus.DOCUMENT_CREATING: "Creating work order...",
    ProcessStatus.COMPLETED: "Completed",
    ProcessStatus.ERROR: "An error occurred",
    ProcessStatus.CANCELLED: "Processing cancelled",
}
RETRY_STEP_LABEL = "Restarting processing..."

# Raw statuses written by the pipeline and older clients.
RAW_STATUS_MAP = {
    "pending": ProcessStatus.WAITING,
    "waiting": ProcessStatus.WAITING,
    "uploaded": ProcessStatus.OCR_PROCESSING,
    "processing": ProcessStatus.OCR_PROCESSING,
    "ocr_processing": ProcessStatus.OCR_PROCESSING,
    "generating": ProcessStatus.DOCUMENT_CREATING,
    "document_creating": ProcessStatus.DOCUMENT_CREATING,
    "completed": ProcessStatus.COMPLETED,
    "completed_from_ai": ProcessStatus.COMPLETED,
    "success": ProcessStatus.COMPLETED,
    "failed": ProcessStatus.ERROR,
    "error": ProcessStatus.ERROR,
    "cancelled": ProcessStatus.CANCELLED,
}

DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_MIN_DOCUMENT_CREATING_DWELL = 2.0


def map_raw_status(raw: Optional[str]) -> Optional[ProcessStatus]:
    """Map a stored status string onto ProcessStatus, or None if unknown."""
    if raw is None:
        return None
    return RAW_STATUS_MAP.get(raw.strip().lower())
