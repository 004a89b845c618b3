from typing import List, Optional

from pydantic import BaseModel, Field


class DetectionRuleResponse(BaseModel):
    """One active detection rule."""

    id: str = Field(..., description="Rule id")
    company_id: str = Field(..., description="Company the rule votes for")
    rule_type: str = Field(..., description="keyword | pattern | address | logo_text")
    rule_value: str = Field(..., description="Literal text or regular expression")
    priority: int = Field(..., description="Score added when the rule matches")


class DetectionRuleListResponse(BaseModel):
    """Active rules in evaluation order."""

    origin: str = Field(..., description="store | default")
    rules: List[DetectionRuleResponse] = Field(default_factory=list, description="Rules, highest priority first")


class DetectionCorrectionRequest(BaseModel):
    """Human correction of a detection result."""

    corrected_company_id: str = Field(..., min_length=1, description="Company the document actually belongs to")
    reason: Optional[str] = Field(None, description="Why the detection was wrong")
    corrected_by: Optional[str] = Field(None, description="Who made the correction")


class DetectionCorrectionResponse(BaseModel):
    """Result of recording a correction."""

    history_id: str = Field(..., description="Detection history record id")
    corrected_company_id: str = Field(..., description="Recorded company id")
    message: str = Field(..., description="Human-readable status message")
