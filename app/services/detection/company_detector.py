"""Hybrid company detection for scanned order documents.

Detection runs an AI classification first. When the AI is not confident
enough, the document text is extracted with a second call and scored
against the detection rules; the more confident of the two results wins.
"""

import asyncio
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Set

from app.core.ai_client import AIClient, DocumentPart
from app.prompts.system_prompts import COMPANY_CLASSIFICATION_PROMPT, TEXT_EXTRACTION_PROMPT
from app.services.detection.constants import (
    CONFIRMED_RULE_PRIORITY,
    LITERAL_RULE_TYPES,
    RULE_CONFIDENCE_CAP,
    RULE_SCORE_NORMALIZER,
    SHORT_CIRCUIT_THRESHOLD,
)
from app.services.detection.contracts import (
    DetectionDetails,
    DetectionHistoryEntry,
    DetectionMethod,
    DetectionResult,
    DetectionRule,
    RuleApplication,
    RuleType,
)
from app.services.detection.rule_set import DetectionRuleSet
from app.services.store import DetectionHistoryStore, DetectionRuleSource
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def pick_better(ai_result: DetectionResult, rule_result: DetectionResult) -> DetectionResult:
    """Return the more confident result; ties go to the AI result."""
    if rule_result.confidence > ai_result.confidence:
        return rule_result
    return ai_result


def coerce_confidence(value: Any) -> float:
    """Convert a model-reported confidence into a float in [0, 1].

    Accepts numbers, numeric strings and percentages ("0.9", "90%").
    Anything unparseable becomes 0.0.

    Example:
        >>> coerce_confidence("92%")
        0.92
        >>> coerce_confidence(1.4)
        1.0
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, str):
        raw = value.strip()
        try:
            if raw.endswith("%"):
                number = float(raw[:-1]) / 100.0
            else:
                number = float(raw)
        except ValueError:
            return 0.0
    elif isinstance(value, (int, float)):
        number = float(value)
    else:
        return 0.0
    if number != number:  # NaN
        return 0.0
    return max(0.0, min(1.0, number))


class CompanyDetector:
    """Determine which company issued a document.

    ``detect`` never raises: any internal failure yields a result with no
    company, confidence 0.0 and method ``unknown``.

    Attributes:
        ai_client: Text-generation client used for classification and extraction
        rule_source: Store the detection rules are loaded from (optional)
        history_store: Where detection audit records are written (optional)
    """

    def __init__(
        self,
        ai_client: AIClient,
        rule_source: Optional[DetectionRuleSource] = None,
        history_store: Optional[DetectionHistoryStore] = None,
        company_names: Optional[Mapping[str, str]] = None,
        short_circuit_threshold: float = SHORT_CIRCUIT_THRESHOLD,
        score_normalizer: float = RULE_SCORE_NORMALIZER,
        confidence_cap: float = RULE_CONFIDENCE_CAP,
    ):
        self.ai_client = ai_client
        self.rule_source = rule_source
        self.history_store = history_store
        self.company_names = dict(company_names or {})
        self.short_circuit_threshold = short_circuit_threshold
        self.score_normalizer = score_normalizer
        self.confidence_cap = confidence_cap

        self._rule_set: Optional[DetectionRuleSet] = None
        self._rule_lock = asyncio.Lock()
        self._history_tasks: Set[asyncio.Task] = set()

    async def get_rule_set(self) -> DetectionRuleSet:
        """Load the rule set once per detector; concurrent callers share the load."""
        if self._rule_set is not None:
            return self._rule_set
        async with self._rule_lock:
            if self._rule_set is None:
                self._rule_set = await DetectionRuleSet.load(self.rule_source)
        return self._rule_set

    async def detect(self, document: bytes, mime_type: str) -> DetectionResult:
        """Detect the issuing company of a document.

        Args:
            document: Raw document bytes
            mime_type: MIME type of the document (e.g. ``application/pdf``)

        Returns:
            DetectionResult: Best-guess company with confidence and explanation
        """
        try:
            rule_set = await self.get_rule_set()
            part = DocumentPart(mime_type=mime_type, data=document)

            ai_result = await self.classify_with_ai(part, rule_set)
            if ai_result.confidence >= self.short_circuit_threshold:
                LOGGER.info(
                    "AI classification accepted",
                    extra={
                        "company_id": ai_result.detected_company_id,
                        "confidence": ai_result.confidence,
                    },
                )
                return ai_result

            text = await self.extract_text(part)
            rule_result = self.apply_rules(text, rule_set)
            result = pick_better(ai_result, rule_result)

            LOGGER.info(
                "Company detection finished",
                extra={
                    "company_id": result.detected_company_id,
                    "confidence": result.confidence,
                    "method": result.method.value,
                    "ai_confidence": ai_result.confidence,
                    "rule_confidence": rule_result.confidence,
                },
            )
            return result

        except Exception as e:
            LOGGER.error(f"Company detection failed: {e}", exc_info=True)
            return DetectionResult.failed(f"Detection failed: {e}")

    async def classify_with_ai(
        self, document: DocumentPart, rule_set: DetectionRuleSet
    ) -> DetectionResult:
        prompt = self.build_classification_prompt(rule_set)
        response = await self.ai_client.generate(prompt, document=document)
        return self.parse_classification(response.text, self.known_company_ids(rule_set))

    async def extract_text(self, document: DocumentPart) -> str:
        """Extract plain document text for the rule pass; failures yield ''."""
        try:
            response = await self.ai_client.generate(TEXT_EXTRACTION_PROMPT, document=document)
            return response.text or ""
        except Exception as e:
            LOGGER.warning(f"Text extraction failed: {e}")
            return ""

    def known_company_ids(self, rule_set: DetectionRuleSet) -> Set[str]:
        return set(self.company_names) | set(rule_set.companies())

    def build_classification_prompt(self, rule_set: DetectionRuleSet) -> str:
        lines: List[str] = []
        company_ids = list(self.company_names)
        company_ids += [cid for cid in rule_set.companies() if cid not in self.company_names]

        for index, company_id in enumerate(company_ids, start=1):
            name = self.company_names.get(company_id, company_id)
            lines.append(f"{index}. {company_id} ({name})")

            confirmed = [
                rule.rule_value
                for rule in rule_set
                if rule.company_id == company_id
                and rule.rule_type in LITERAL_RULE_TYPES
                and rule.priority >= CONFIRMED_RULE_PRIORITY
            ]
            aliases = [value for value in rule_set.aliases_for(company_id) if value not in confirmed]
            if confirmed:
                lines.append("   - CONFIRMED identifiers: " + ", ".join(f"「{v}」" for v in confirmed))
            if aliases:
                lines.append("   - Keywords: " + ", ".join(f"「{v}」" for v in aliases))

        return COMPANY_CLASSIFICATION_PROMPT.format(company_catalog="\n".join(lines))

    def parse_classification(self, text: str, known_company_ids: Set[str]) -> DetectionResult:
        """Parse the classifier's free-text answer into a DetectionResult.

        The first ``{...}`` block is read as JSON. Unparseable answers keep
        the raw text as reasoning with confidence 0.0. Company ids outside
        the catalog and null answers also get confidence 0.0.
        """
        raw = (text or "").strip()
        match = _JSON_OBJECT.search(raw)
        if not match:
            LOGGER.warning("Classification response contained no JSON object")
            return DetectionResult.failed(raw)

        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            LOGGER.warning(f"Failed to parse classification response: {e}")
            return DetectionResult.failed(raw)

        if not isinstance(data, dict):
            return DetectionResult.failed(raw)

        reasoning = data.get("reasoning")
        reasoning = str(reasoning) if reasoning is not None else None
        found = data.get("found_keywords") or []
        if isinstance(found, str):
            found = [found]
        found_keywords = [str(keyword) for keyword in found]

        company_id = data.get("company_id")
        company_id = str(company_id).strip() if company_id not in (None, "") else None
        if company_id is not None and known_company_ids and company_id not in known_company_ids:
            LOGGER.warning(f"Classifier returned unknown company id: {company_id}")
            reasoning = f"{reasoning or ''} (unknown company id: {company_id})".strip()
            company_id = None

        confidence = coerce_confidence(data.get("confidence")) if company_id else 0.0

        return DetectionResult(
            detected_company_id=company_id,
            confidence=confidence,
            method=DetectionMethod.GEMINI_ANALYSIS,
            details=DetectionDetails(found_keywords=found_keywords, reasoning=reasoning),
        )

    def apply_rules(self, text: str, rule_set: DetectionRuleSet) -> DetectionResult:
        """Score every rule against the extracted text.

        Each matching rule adds its priority to its company's score. When a
        confirmed identifier matched, only companies with a confirmed match
        compete. Confidence is ``min(score / normalizer, cap)``.
        """
        scores: Dict[str, int] = {}
        confirmed: Set[str] = set()
        applications: List[RuleApplication] = []
        found_keywords: List[str] = []
        matched_patterns: List[str] = []

        for rule in rule_set:
            matched = self._rule_matches(rule, text)
            applications.append(
                RuleApplication(
                    rule_id=rule.id,
                    rule_type=rule.rule_type.value,
                    rule_value=rule.rule_value,
                    matched=matched,
                )
            )
            if not matched:
                continue

            scores[rule.company_id] = scores.get(rule.company_id, 0) + rule.priority
            if rule.priority >= CONFIRMED_RULE_PRIORITY:
                confirmed.add(rule.company_id)
            if rule.rule_type == RuleType.PATTERN:
                matched_patterns.append(rule.rule_value)
            else:
                found_keywords.append(rule.rule_value)

        candidates = confirmed or set(scores)
        best_company: Optional[str] = None
        best_score = 0
        for company_id, score in scores.items():
            if company_id in candidates and score > best_score:
                best_company, best_score = company_id, score

        if best_company is None:
            reasoning = "No detection rule matched" if text else "No text extracted for rule matching"
            return DetectionResult(
                detected_company_id=None,
                confidence=0.0,
                method=DetectionMethod.UNKNOWN,
                details=DetectionDetails(reasoning=reasoning, rules_applied=applications),
            )

        confidence = min(best_score / self.score_normalizer, self.confidence_cap)
        return DetectionResult(
            detected_company_id=best_company,
            confidence=confidence,
            method=DetectionMethod.RULE_BASED,
            details=DetectionDetails(
                found_keywords=found_keywords,
                matched_patterns=matched_patterns,
                reasoning=f"Rule-based detection: {best_company} scored {best_score}",
                rules_applied=applications,
            ),
        )

    @staticmethod
    def _rule_matches(rule: DetectionRule, text: str) -> bool:
        if not text:
            return False
        if rule.rule_type == RuleType.PATTERN:
            try:
                return re.search(rule.rule_value, text, re.IGNORECASE) is not None
            except re.error as e:
                LOGGER.warning(
                    "Invalid detection pattern",
                    extra={"rule_id": rule.id, "pattern": rule.rule_value, "error": str(e)},
                )
                return False
        return rule.rule_value in text

    def record_history(self, entry: DetectionHistoryEntry) -> Optional[asyncio.Task]:
        """Write a detection audit record without blocking the caller.

        Returns:
            The scheduled task, or None when no history store is configured
        """
        if self.history_store is None:
            return None

        task = asyncio.create_task(self.history_store.record_detection(entry))
        self._history_tasks.add(task)
        task.add_done_callback(self._on_history_done)
        return task

    def _on_history_done(self, task: asyncio.Task) -> None:
        self._history_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            LOGGER.warning(f"Failed to save detection history: {error}")

    async def drain_history(self) -> None:
        """Wait for outstanding history writes (shutdown and tests)."""
        if self._history_tasks:
            await asyncio.gather(*list(self._history_tasks), return_exceptions=True)
