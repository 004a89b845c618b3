from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response model.

    Attributes:
        error: Error type/category
        message: Human-readable error message
        detail: Optional detailed error information
    """

    error: str = Field(
        ...,
        description="Error type or category",
        examples=["ValidationError", "BatchNotFound"],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Too many files: 51 (maximum 50 per batch)"],
    )
    detail: Optional[str] = Field(
        default=None,
        description="Detailed error information",
    )
