"""Company detection API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.exceptions import DatabaseError
from app.dependencies import get_sql_store
from app.repositories.sql_store import SqlStore
from app.schemas.common import ErrorResponse
from app.schemas.detection import (
    DetectionCorrectionRequest,
    DetectionCorrectionResponse,
    DetectionRuleListResponse,
    DetectionRuleResponse,
)
from app.services.detection.rule_set import DetectionRuleSet
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/rules",
    response_model=DetectionRuleListResponse,
    summary="List detection rules",
    description="Return the active detection rules in evaluation order. Falls back to the built-in rules when the store is unavailable.",
    operation_id="list_detection_rules",
)
async def list_detection_rules(
    store: Annotated[SqlStore, Depends(get_sql_store)],
) -> DetectionRuleListResponse:
    """List the rules a new detection would use.

    Args:
        store: Detection rule source

    Returns:
        DetectionRuleListResponse: Rules, highest priority first
    """
    rule_set = await DetectionRuleSet.load(store)
    return DetectionRuleListResponse(
        origin=rule_set.origin,
        rules=[
            DetectionRuleResponse(
                id=rule.id,
                company_id=rule.company_id,
                rule_type=rule.rule_type.value,
                rule_value=rule.rule_value,
                priority=rule.priority,
            )
            for rule in rule_set
        ],
    )


@router.post(
    "/history/{history_id}/correction",
    response_model=DetectionCorrectionResponse,
    responses={
        404: {"description": "Detection history record not found", "model": ErrorResponse},
        500: {"description": "Internal server error", "model": ErrorResponse},
    },
    summary="Correct a detection result",
    description="Record the company a document actually belongs to on its detection history record.",
    operation_id="correct_detection",
)
async def correct_detection(
    history_id: UUID,
    request: DetectionCorrectionRequest,
    store: Annotated[SqlStore, Depends(get_sql_store)],
) -> DetectionCorrectionResponse:
    """Record a human correction of a detection.

    Args:
        history_id: Detection history record id
        request: Corrected company and optional reason
        store: Detection history store

    Returns:
        DetectionCorrectionResponse: The recorded correction

    Raises:
        HTTPException: If the record does not exist or the update fails
    """
    try:
        updated = await store.record_correction(
            str(history_id),
            request.corrected_company_id,
            reason=request.reason,
            corrected_by=request.corrected_by,
        )
    except DatabaseError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "DatabaseError",
                "message": "Failed to record detection correction",
                "detail": e.message,
            },
        ) from e

    if not updated:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "DetectionHistoryNotFound",
                "message": "Detection history record not found",
                "detail": str(history_id),
            },
        )

    LOGGER.info(
        "Detection corrected",
        extra={"history_id": str(history_id), "corrected_company_id": request.corrected_company_id},
    )
    return DetectionCorrectionResponse(
        history_id=str(history_id),
        corrected_company_id=request.corrected_company_id,
        message="Correction recorded",
    )
