"""Two-stage pipeline for exactly one document."""

from typing import Optional

from app.core.ai_client import AIClient, DocumentPart
from app.core.exceptions import PipelineError, UnsupportedCompanyError, WorkOrderPersistenceError
from app.services.detection.company_detector import CompanyDetector
from app.services.detection.contracts import DetectionHistoryEntry, DetectionResult
from app.services.store import WorkOrderStore
from app.services.work_order.contracts import GenerationOutcome, SourceFile, WorkOrderDraft
from app.services.work_order.prompt_registry import PromptRegistry
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SingleFileProcessor:
    """Classify a document, then generate and persist its work order.

    Stage 1 (``classify``) never raises; Stage 2 (``generate``) raises a
    ``PipelineError`` subclass or ``APIClientError`` on failure.
    """

    def __init__(
        self,
        ai_client: AIClient,
        detector: CompanyDetector,
        work_order_store: WorkOrderStore,
        prompt_registry: Optional[PromptRegistry] = None,
        created_by: Optional[str] = None,
    ):
        self.ai_client = ai_client
        self.detector = detector
        self.work_order_store = work_order_store
        self.prompt_registry = prompt_registry or PromptRegistry()
        self.created_by = created_by

    async def classify(self, source: SourceFile) -> DetectionResult:
        """Stage 1: detect the issuing company."""
        LOGGER.info("Starting company detection", extra={"file_name": source.name})
        return await self.detector.detect(source.data, source.mime_type)

    async def generate(
        self,
        source: SourceFile,
        company_id: str,
        detection_result: Optional[DetectionResult] = None,
    ) -> GenerationOutcome:
        """Stage 2: generate the work-order text for a known company and store it.

        Args:
            source: Document to process
            company_id: Company whose prompt is used
            detection_result: Stage 1 result, stored with the work order when present

        Returns:
            GenerationOutcome with the persisted work-order id

        Raises:
            UnsupportedCompanyError: If no prompt is registered for the company
            APIClientError: If the AI call fails
            PipelineError: If the AI returns no text
            WorkOrderPersistenceError: If the work order cannot be stored
        """
        entry = self.prompt_registry.get_prompt(company_id)
        if entry is None:
            raise UnsupportedCompanyError(company_id)

        LOGGER.info(
            "Generating work order",
            extra={"file_name": source.name, "prompt_identifier": entry.identifier},
        )
        response = await self.ai_client.generate(
            entry.render(source.name),
            document=DocumentPart(mime_type=source.mime_type, data=source.data),
        )
        text = (response.text or "").strip()
        if not text:
            raise PipelineError(f"AI service returned no work order text for {source.name}")

        draft = WorkOrderDraft(
            file_name=source.name,
            company_id=company_id,
            company_name=entry.company_name,
            prompt_identifier=entry.identifier,
            generated_text=text,
            detection_result=detection_result,
            usage=response.usage,
        )
        try:
            work_order_id = await self.work_order_store.create_work_order(draft)
        except Exception as e:
            LOGGER.error(
                "Failed to store work order",
                exc_info=True,
                extra={"file_name": source.name, "error": str(e)},
            )
            raise WorkOrderPersistenceError(
                f"Failed to store work order for {source.name}: {e}", original_error=e
            )

        if detection_result is not None:
            self.detector.record_history(
                DetectionHistoryEntry(
                    file_name=source.name,
                    result=detection_result,
                    work_order_id=work_order_id,
                    created_by=self.created_by,
                )
            )

        return GenerationOutcome(
            work_order_id=work_order_id,
            company_id=company_id,
            company_name=entry.company_name,
            prompt_identifier=entry.identifier,
            generated_text=text,
            usage=response.usage,
        )
