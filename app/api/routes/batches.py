"""Batch processing API endpoints."""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from app.core.exceptions import NotFoundError, ValidationError
from app.dependencies import get_batch_registry
from app.schemas.batches import (
    BatchControlResponse,
    BatchStatusResponse,
    BatchSubmissionResponse,
    FileResultResponse,
    ProcessStateResponse,
)
from app.schemas.common import ErrorResponse
from app.services.batch.batch_orchestrator import BatchOrchestrator
from app.services.batch.batch_registry import BatchRegistry
from app.services.batch.contracts import BatchOptions
from app.services.work_order.contracts import SourceFile
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


def _get_orchestrator(registry: BatchRegistry, run_id: str) -> BatchOrchestrator:
    try:
        return registry.get(run_id)
    except NotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "BatchNotFound",
                "message": "Batch run not found",
                "detail": e.message,
            },
        ) from e


def _status_response(run_id: str, orchestrator: BatchOrchestrator) -> BatchStatusResponse:
    state = orchestrator.state
    return BatchStatusResponse(
        run_id=run_id,
        batch_id=state.batch_id,
        status=state.status.value if state.status else None,
        is_processing=state.is_processing,
        is_paused=state.is_paused,
        pause_reason=state.pause_reason.value if state.pause_reason else None,
        current_file_index=state.current_file_index,
        total_files=state.total_files,
        progress=orchestrator.progress(),
        elapsed_ms=orchestrator.elapsed_ms(),
        results=[FileResultResponse(**result.to_dict()) for result in state.results],
    )


def _control_response(run_id: str, action: str, accepted: bool, orchestrator: BatchOrchestrator) -> BatchControlResponse:
    return BatchControlResponse(
        run_id=run_id,
        action=action,
        accepted=accepted,
        is_paused=orchestrator.state.is_paused,
        is_processing=orchestrator.state.is_processing,
    )


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=BatchSubmissionResponse,
    responses={
        202: {
            "description": "Batch accepted and started",
        },
        400: {
            "description": "Invalid batch submission",
            "model": ErrorResponse,
        },
    },
    summary="Start a batch of documents",
    description="Upload up to 50 scanned order documents and start detecting companies and generating work orders in the background.",
    operation_id="start_batch",
)
async def start_batch(
    registry: Annotated[BatchRegistry, Depends(get_batch_registry)],
    files: Annotated[List[UploadFile], File(description="Documents to process")],
    concurrency_limit: Annotated[int, Form()] = 1,
    auto_detect_enabled: Annotated[bool, Form()] = True,
    retry_failed_files: Annotated[bool, Form()] = False,
    pause_on_error: Annotated[bool, Form()] = False,
    company_id: Annotated[Optional[str], Form()] = None,
) -> BatchSubmissionResponse:
    """Start a batch run in the background.

    Args:
        registry: Batch registry that owns the run
        files: Uploaded documents
        concurrency_limit: Requested parallelism (capped at 3)
        auto_detect_enabled: Detect the company of each file
        retry_failed_files: Retry failed files once after the main pass
        pause_on_error: Pause the batch when a file fails
        company_id: Company used when detection is off or finds nothing

    Returns:
        BatchSubmissionResponse: Run id of the started batch

    Raises:
        HTTPException: If the submission is rejected
    """
    sources = [
        SourceFile(
            name=upload.filename or f"file_{index + 1}",
            data=await upload.read(),
            mime_type=upload.content_type or "application/pdf",
        )
        for index, upload in enumerate(files)
    ]
    options = BatchOptions(
        concurrency_limit=concurrency_limit,
        auto_detect_enabled=auto_detect_enabled,
        retry_failed_files=retry_failed_files,
        pause_on_error=pause_on_error,
        company_id=company_id or None,
    )

    LOGGER.info(
        "Received batch submission",
        extra={"total_files": len(sources), "options": options.to_dict()},
    )

    try:
        run_id = registry.submit(sources, options)
    except ValidationError as e:
        LOGGER.warning(f"Batch submission rejected: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "ValidationError",
                "message": e.message,
            },
        ) from e

    return BatchSubmissionResponse(
        run_id=run_id,
        total_files=len(sources),
        message="Batch processing started",
    )


@router.get(
    "/{run_id}",
    response_model=BatchStatusResponse,
    responses={404: {"description": "Batch run not found", "model": ErrorResponse}},
    summary="Get batch status",
    description="Return progress, flags and per-file results of a batch run.",
    operation_id="get_batch_status",
)
async def get_batch_status(
    run_id: str,
    registry: Annotated[BatchRegistry, Depends(get_batch_registry)],
) -> BatchStatusResponse:
    orchestrator = _get_orchestrator(registry, run_id)
    return _status_response(run_id, orchestrator)


@router.post(
    "/{run_id}/pause",
    response_model=BatchControlResponse,
    responses={404: {"description": "Batch run not found", "model": ErrorResponse}},
    summary="Pause a batch",
    description="Stop starting new files. Files already running finish.",
    operation_id="pause_batch",
)
async def pause_batch(
    run_id: str,
    registry: Annotated[BatchRegistry, Depends(get_batch_registry)],
) -> BatchControlResponse:
    orchestrator = _get_orchestrator(registry, run_id)
    accepted = orchestrator.pause()
    return _control_response(run_id, "pause", accepted, orchestrator)


@router.post(
    "/{run_id}/resume",
    response_model=BatchControlResponse,
    responses={404: {"description": "Batch run not found", "model": ErrorResponse}},
    summary="Resume a batch",
    description="Resume a batch paused by the user or by a file error.",
    operation_id="resume_batch",
)
async def resume_batch(
    run_id: str,
    registry: Annotated[BatchRegistry, Depends(get_batch_registry)],
) -> BatchControlResponse:
    orchestrator = _get_orchestrator(registry, run_id)
    accepted = orchestrator.resume()
    return _control_response(run_id, "resume", accepted, orchestrator)


@router.post(
    "/{run_id}/cancel",
    response_model=BatchControlResponse,
    responses={404: {"description": "Batch run not found", "model": ErrorResponse}},
    summary="Cancel a batch",
    description="Cancel every file that has not finished. Results of in-flight AI calls are discarded.",
    operation_id="cancel_batch",
)
async def cancel_batch(
    run_id: str,
    registry: Annotated[BatchRegistry, Depends(get_batch_registry)],
) -> BatchControlResponse:
    orchestrator = _get_orchestrator(registry, run_id)
    accepted = orchestrator.cancel()
    LOGGER.info("Batch cancel requested", extra={"run_id": run_id, "accepted": accepted})
    return _control_response(run_id, "cancel", accepted, orchestrator)


@router.get(
    "/{run_id}/files/{file_name}/status",
    response_model=ProcessStateResponse,
    responses={404: {"description": "Batch run or file not found", "model": ErrorResponse}},
    summary="Get file process status",
    description="Return the process state of one file of a batch run.",
    operation_id="get_file_process_status",
)
async def get_file_status(
    run_id: str,
    file_name: str,
    registry: Annotated[BatchRegistry, Depends(get_batch_registry)],
) -> ProcessStateResponse:
    orchestrator = _get_orchestrator(registry, run_id)
    tracker = orchestrator.tracker_for(file_name)
    if tracker is None or tracker.state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "FileNotFound",
                "message": "File has not started processing in this batch",
                "detail": file_name,
            },
        )
    return ProcessStateResponse(**tracker.state.to_dict())
