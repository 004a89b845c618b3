"""Data contracts for company detection."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DetectionMethod(str, Enum):
    """How a detection result was produced."""
    GEMINI_ANALYSIS = "gemini_analysis"
    RULE_BASED = "rule_based"
    UNKNOWN = "unknown"


class RuleType(str, Enum):
    """Kinds of detection rules."""
    KEYWORD = "keyword"
    PATTERN = "pattern"
    ADDRESS = "address"
    LOGO_TEXT = "logo_text"


@dataclass(frozen=True)
class DetectionRule:
    """One classification heuristic for a company.

    Attributes:
        id: Rule identifier (store id, or a stable name for built-in rules)
        company_id: Company the rule votes for
        rule_type: keyword/address/logo_text are literals, pattern is a regex
        rule_value: Literal text or regular expression
        priority: Score added when the rule matches
        is_active: Inactive rules are never scored
    """
    id: str
    company_id: str
    rule_type: RuleType
    rule_value: str
    priority: int
    is_active: bool = True


@dataclass(frozen=True)
class RuleApplication:
    """Outcome of scoring a single rule against extracted text."""
    rule_id: str
    rule_type: str
    rule_value: str
    matched: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "rule_type": self.rule_type,
            "rule_value": self.rule_value,
            "matched": self.matched,
        }


@dataclass
class DetectionDetails:
    """Explanation trail attached to a detection result."""
    found_keywords: List[str] = field(default_factory=list)
    matched_patterns: List[str] = field(default_factory=list)
    reasoning: Optional[str] = None
    rules_applied: List[RuleApplication] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "found_keywords": list(self.found_keywords),
            "matched_patterns": list(self.matched_patterns),
            "reasoning": self.reasoning,
            "rules_applied": [rule.to_dict() for rule in self.rules_applied],
        }


@dataclass
class DetectionResult:
    """Best-guess company for one document.

    A result with ``detected_company_id`` of None is low-trust and must not
    be applied automatically.
    """
    detected_company_id: Optional[str]
    confidence: float
    method: DetectionMethod
    details: DetectionDetails = field(default_factory=DetectionDetails)

    @property
    def is_detected(self) -> bool:
        return self.detected_company_id is not None

    @classmethod
    def failed(cls, reasoning: str) -> "DetectionResult":
        """Well-formed result for a detection that could not run."""
        return cls(
            detected_company_id=None,
            confidence=0.0,
            method=DetectionMethod.UNKNOWN,
            details=DetectionDetails(reasoning=reasoning),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected_company_id": self.detected_company_id,
            "confidence": self.confidence,
            "method": self.method.value,
            "details": self.details.to_dict(),
        }


@dataclass(frozen=True)
class DetectionHistoryEntry:
    """Audit record written after a detection."""
    file_name: str
    result: DetectionResult
    work_order_id: Optional[str] = None
    created_by: Optional[str] = None
