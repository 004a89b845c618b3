"""Unit tests for SingleFileProcessor."""

import pytest

from app.core.exceptions import (
    APIClientError,
    PipelineError,
    UnsupportedCompanyError,
    WorkOrderPersistenceError,
)
from app.services.detection.company_detector import CompanyDetector
from app.services.detection.contracts import DetectionMethod, DetectionResult
from app.services.work_order.prompt_registry import PromptRegistry
from app.services.work_order.single_file_processor import SingleFileProcessor
from tests.fakes import FakeAIClient, FakeStore, make_source


def _processor(ai: FakeAIClient, store: FakeStore) -> SingleFileProcessor:
    registry = PromptRegistry()
    detector = CompanyDetector(ai, history_store=store, company_names=registry.company_names())
    return SingleFileProcessor(ai, detector, store, prompt_registry=registry, created_by="operator-1")


class TestGenerate:
    """Test suite for Stage 2 generation."""

    @pytest.mark.asyncio
    async def test_generates_and_stores_work_order(self):
        ai = FakeAIClient(generate=lambda _: "  【発注元】 野原G住環境  ")
        store = FakeStore()
        processor = _processor(ai, store)

        outcome = await processor.generate(make_source("order.pdf"), "NOHARA_G")

        draft = store.work_orders[outcome.work_order_id]
        assert outcome.generated_text == "【発注元】 野原G住環境"
        assert outcome.prompt_identifier == "NOHARA_G_V20250526"
        assert draft.company_name == "野原G住環境"
        assert draft.status == "completed"
        assert draft.usage.total_units == 15
        assert draft.detection_result is None
        assert store.history == {}

    @pytest.mark.asyncio
    async def test_prompt_names_company_and_file(self):
        prompts = []
        ai = FakeAIClient()
        original = ai.generate

        async def capture(prompt, document=None):
            prompts.append(prompt)
            return await original(prompt, document)

        ai.generate = capture
        processor = _processor(ai, FakeStore())

        await processor.generate(make_source("発注書_0601.pdf"), "JUTEC")

        assert "ジューテック" in prompts[0]
        assert "発注書_0601.pdf" in prompts[0]

    @pytest.mark.asyncio
    async def test_detection_history_is_recorded(self):
        store = FakeStore()
        processor = _processor(FakeAIClient(), store)
        detection = DetectionResult("JUTEC", 0.9, DetectionMethod.GEMINI_ANALYSIS)

        outcome = await processor.generate(make_source("a.pdf"), "JUTEC", detection)
        await processor.detector.drain_history()

        [record] = store.history.values()
        assert record["work_order_id"] == outcome.work_order_id
        assert store.work_orders[outcome.work_order_id].detection_result is detection

    @pytest.mark.asyncio
    async def test_unknown_company_is_rejected(self):
        ai = FakeAIClient()
        processor = _processor(ai, FakeStore())

        with pytest.raises(UnsupportedCompanyError, match="ACME"):
            await processor.generate(make_source("a.pdf"), "ACME")

        assert ai.calls == []

    @pytest.mark.asyncio
    async def test_empty_generation_is_an_error(self):
        processor = _processor(FakeAIClient(generate=lambda _: "   "), FakeStore())

        with pytest.raises(PipelineError, match="no work order text"):
            await processor.generate(make_source("a.pdf"), "NOHARA_G")

    @pytest.mark.asyncio
    async def test_ai_errors_propagate(self):
        processor = _processor(FakeAIClient(generate=lambda _: APIClientError("quota")), FakeStore())

        with pytest.raises(APIClientError):
            await processor.generate(make_source("a.pdf"), "NOHARA_G")

    @pytest.mark.asyncio
    async def test_store_failure_is_wrapped(self):
        store = FakeStore()
        store.fail_work_orders = True
        processor = _processor(FakeAIClient(), store)

        with pytest.raises(WorkOrderPersistenceError) as exc_info:
            await processor.generate(make_source("a.pdf"), "NOHARA_G")

        assert isinstance(exc_info.value.original_error, RuntimeError)


@pytest.mark.asyncio
async def test_classify_delegates_to_detector():
    ai = FakeAIClient(classify=lambda _: {"company_id": "YAMAFUJI", "confidence": 0.97})
    processor = _processor(ai, FakeStore())

    result = await processor.classify(make_source("a.pdf"))

    assert result.detected_company_id == "YAMAFUJI"
    assert ai.calls_of("classify") == [b"a.pdf"]
