"""Unit tests for BatchOrchestrator."""

import asyncio

import pytest

from app.core.exceptions import APIClientError, ValidationError
from app.services.batch.contracts import (
    CANCELLED_MESSAGE,
    BatchOptions,
    BatchStatus,
    FileStatus,
    PauseReason,
)
from app.services.status.contracts import ProcessStatus
from app.services.work_order.prompt_registry import PromptEntry, PromptRegistry
from tests.fakes import FakeAIClient, FakeStore, build_orchestrator, make_source


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def fail_for(*names: str):
    """Generation responder that fails for the given file names."""
    failing = {name.encode("utf-8") for name in names}

    def responder(data):
        if data in failing:
            return APIClientError("AI service unavailable")
        return "【発注元】 generated work order"
    return responder


MANUAL = BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G")


class TestValidation:
    """Test suite for submission validation."""

    @pytest.mark.asyncio
    async def test_51_files_rejected_before_any_pipeline_call(self):
        ai = FakeAIClient()
        store = FakeStore()
        orchestrator = build_orchestrator(ai, store)
        files = [make_source(f"order_{i}.pdf") for i in range(51)]

        with pytest.raises(ValidationError, match="maximum 50"):
            await orchestrator.start_batch(files, MANUAL)

        assert ai.calls == []
        assert store.batch_jobs == {}
        assert orchestrator.state.is_processing is False

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self):
        orchestrator = build_orchestrator(FakeAIClient())

        with pytest.raises(ValidationError):
            await orchestrator.start_batch([], MANUAL)

    def test_duplicate_file_names_rejected(self):
        orchestrator = build_orchestrator(FakeAIClient())

        with pytest.raises(ValidationError, match="a.pdf"):
            orchestrator.validate([make_source("a.pdf"), make_source("a.pdf", b"other")], MANUAL)

    def test_manual_mode_requires_company(self):
        orchestrator = build_orchestrator(FakeAIClient())

        with pytest.raises(ValidationError, match="company"):
            orchestrator.validate([make_source("a.pdf")], BatchOptions(auto_detect_enabled=False))

    def test_concurrency_limit_must_be_positive(self):
        orchestrator = build_orchestrator(FakeAIClient())

        with pytest.raises(ValidationError):
            orchestrator.validate(
                [make_source("a.pdf")],
                BatchOptions(concurrency_limit=0, auto_detect_enabled=False, company_id="NOHARA_G"),
            )

    @pytest.mark.asyncio
    async def test_second_batch_rejected_while_running(self):
        orchestrator = build_orchestrator(FakeAIClient(delay=0.05))
        task = asyncio.create_task(orchestrator.start_batch([make_source("a.pdf")], MANUAL))
        await wait_until(lambda: orchestrator.state.is_processing)

        with pytest.raises(ValidationError, match="already running"):
            await orchestrator.start_batch([make_source("b.pdf")], MANUAL)

        await task


class TestSequential:
    """Test suite for sequential batches."""

    @pytest.mark.asyncio
    async def test_three_files_with_selected_company_all_succeed(self):
        ai = FakeAIClient()
        store = FakeStore()
        registry = PromptRegistry({"ACME": PromptEntry("ACME", "ACME Corporation", "V1")})
        completed = []
        orchestrator = build_orchestrator(
            ai, store, prompt_registry=registry, on_batch_complete=completed.append
        )
        files = [make_source(name) for name in ("a.pdf", "b.pdf", "c.pdf")]

        summary = await orchestrator.start_batch(
            files,
            BatchOptions(concurrency_limit=1, auto_detect_enabled=False, company_id="ACME"),
        )

        state = orchestrator.state
        assert summary.status == BatchStatus.COMPLETED
        assert state.is_processing is False
        assert len(state.results) == 3
        assert [r.file_name for r in state.results] == ["a.pdf", "b.pdf", "c.pdf"]
        assert all(r.status == FileStatus.SUCCESS for r in state.results)
        assert all(r.work_order_id for r in state.results)
        assert all(r.company_id == "ACME" for r in state.results)
        assert ai.calls_of("classify") == []
        assert completed == [summary]
        assert orchestrator.progress() == 100

        assert store.batch_jobs[state.batch_id]["status"] == "completed"
        assert store.batch_jobs[state.batch_id]["processed_files"] == 3
        assert {f["status"] for f in store.batch_files[state.batch_id].values()} == {"success"}
        assert {draft.prompt_identifier for draft in store.work_orders.values()} == {"ACME_V1"}

    @pytest.mark.asyncio
    async def test_per_file_trackers_end_completed(self):
        orchestrator = build_orchestrator(FakeAIClient())

        await orchestrator.start_batch([make_source("a.pdf")], MANUAL)

        tracker = orchestrator.tracker_for("a.pdf")
        assert tracker.status == ProcessStatus.COMPLETED
        assert tracker.state.work_order_id == orchestrator.state.results[0].work_order_id
        assert orchestrator.focused_process_state.status == ProcessStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_batch_ends_after_trackers_leave_the_dwell(self):
        orchestrator = build_orchestrator(FakeAIClient(), min_document_creating_dwell=0.05)

        await orchestrator.start_batch([make_source("a.pdf"), make_source("b.pdf")], MANUAL)

        for name in ("a.pdf", "b.pdf"):
            tracker = orchestrator.tracker_for(name)
            assert tracker.status == ProcessStatus.COMPLETED
            assert tracker.completion_pending is False

    @pytest.mark.asyncio
    async def test_failed_file_does_not_stop_the_batch(self):
        processed = []
        orchestrator = build_orchestrator(
            FakeAIClient(generate=fail_for("b.pdf")), on_file_processed=processed.append
        )
        files = [make_source(name) for name in ("a.pdf", "b.pdf", "c.pdf")]

        summary = await orchestrator.start_batch(files, MANUAL)

        assert [r.status for r in summary.results] == [FileStatus.SUCCESS, FileStatus.ERROR, FileStatus.SUCCESS]
        assert summary.results[1].error_message == "AI service unavailable"
        assert summary.results[1].work_order_id is None
        assert summary.status == BatchStatus.COMPLETED
        assert [r.file_name for r in processed] == ["a.pdf", "b.pdf", "c.pdf"]
        assert orchestrator.tracker_for("b.pdf").status == ProcessStatus.ERROR

    @pytest.mark.asyncio
    async def test_all_files_failing_gives_error_status(self):
        store = FakeStore()
        orchestrator = build_orchestrator(FakeAIClient(generate=fail_for("a.pdf", "b.pdf")), store)

        summary = await orchestrator.start_batch([make_source("a.pdf"), make_source("b.pdf")], MANUAL)

        assert summary.status == BatchStatus.ERROR
        assert summary.error_count == 2
        assert summary.processed_files == 0
        assert summary.failed_files == 2
        job = store.batch_jobs[summary.batch_id]
        assert (job["processed_files"], job["failed_files"]) == (0, 2)
        assert job["processed_files"] + job["failed_files"] <= job["total_files"]

    @pytest.mark.asyncio
    async def test_mixed_batch_counts_successes_and_failures_separately(self):
        store = FakeStore()
        orchestrator = build_orchestrator(FakeAIClient(generate=fail_for("b.pdf")), store)
        files = [make_source(name) for name in ("a.pdf", "b.pdf", "c.pdf")]

        summary = await orchestrator.start_batch(files, MANUAL)

        job = store.batch_jobs[summary.batch_id]
        assert (summary.processed_files, summary.failed_files) == (2, 1)
        assert (job["processed_files"], job["failed_files"]) == (2, 1)

    @pytest.mark.asyncio
    async def test_work_order_write_failure_is_a_file_error(self):
        store = FakeStore()
        store.fail_work_orders = True
        orchestrator = build_orchestrator(FakeAIClient(), store)

        summary = await orchestrator.start_batch([make_source("a.pdf")], MANUAL)

        assert summary.results[0].status == FileStatus.ERROR
        assert "Failed to store work order" in summary.results[0].error_message

    @pytest.mark.asyncio
    async def test_batch_job_write_failure_is_not_fatal(self):
        store = FakeStore()
        store.fail_batch_job = True
        orchestrator = build_orchestrator(FakeAIClient(), store)

        summary = await orchestrator.start_batch([make_source("a.pdf")], MANUAL)

        assert summary.status == BatchStatus.COMPLETED
        assert summary.batch_id is None
        assert summary.results[0].status == FileStatus.SUCCESS


class TestAutoDetection:
    """Test suite for Stage 1 inside a batch."""

    @pytest.mark.asyncio
    async def test_detected_company_is_used(self):
        ai = FakeAIClient(classify=lambda _: {"company_id": "JUTEC", "confidence": 0.92})
        orchestrator = build_orchestrator(ai)

        summary = await orchestrator.start_batch([make_source("a.pdf")], BatchOptions())

        result = summary.results[0]
        assert result.status == FileStatus.SUCCESS
        assert result.company_id == "JUTEC"
        assert result.detection_result.confidence == pytest.approx(0.92)

    @pytest.mark.asyncio
    async def test_undetected_company_falls_back_to_selection(self):
        orchestrator = build_orchestrator(FakeAIClient())

        summary = await orchestrator.start_batch(
            [make_source("a.pdf")], BatchOptions(company_id="YAMAFUJI")
        )

        assert summary.results[0].status == FileStatus.SUCCESS
        assert summary.results[0].company_id == "YAMAFUJI"
        assert summary.results[0].detection_result.detected_company_id is None

    @pytest.mark.asyncio
    async def test_undetected_company_without_selection_fails_file(self):
        ai = FakeAIClient()
        orchestrator = build_orchestrator(ai)

        summary = await orchestrator.start_batch([make_source("a.pdf")], BatchOptions())

        result = summary.results[0]
        assert result.status == FileStatus.ERROR
        assert "Could not detect the company" in result.error_message
        assert ai.calls_of("generate") == []


class TestConcurrency:
    """Test suite for chunked processing."""

    @pytest.mark.asyncio
    async def test_never_more_than_three_calls_in_flight(self):
        ai = FakeAIClient(delay=0.02)
        orchestrator = build_orchestrator(ai)
        files = [make_source(f"order_{i}.pdf") for i in range(10)]

        summary = await orchestrator.start_batch(
            files, BatchOptions(concurrency_limit=10, auto_detect_enabled=False, company_id="NOHARA_G")
        )

        assert ai.max_in_flight == 3
        assert len(summary.results) == 10
        assert all(r.status == FileStatus.SUCCESS for r in summary.results)

    @pytest.mark.asyncio
    async def test_limit_below_cap_is_respected(self):
        ai = FakeAIClient(delay=0.02)
        orchestrator = build_orchestrator(ai)
        files = [make_source(f"order_{i}.pdf") for i in range(4)]

        await orchestrator.start_batch(
            files, BatchOptions(concurrency_limit=2, auto_detect_enabled=False, company_id="NOHARA_G")
        )

        assert ai.max_in_flight == 2


class TestPauseResume:
    """Test suite for pause and resume."""

    @pytest.mark.asyncio
    async def test_two_files_pause_after_second_file_fails(self):
        orchestrator = build_orchestrator(FakeAIClient(generate=fail_for("b.pdf")))
        options = BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G", pause_on_error=True)

        summary = await orchestrator.start_batch([make_source("a.pdf"), make_source("b.pdf")], options)

        state = orchestrator.state
        assert state.is_paused is True
        assert state.pause_reason == PauseReason.ERROR
        assert state.results[0].status == FileStatus.SUCCESS
        assert state.results[1].status == FileStatus.ERROR
        assert summary.status == BatchStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_paused_batch_starts_no_file_until_resumed(self):
        ai = FakeAIClient(generate=fail_for("a.pdf"))
        orchestrator = build_orchestrator(ai)
        options = BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G", pause_on_error=True)
        task = asyncio.create_task(
            orchestrator.start_batch([make_source("a.pdf"), make_source("b.pdf")], options)
        )

        await wait_until(lambda: orchestrator.state.is_paused)
        await asyncio.sleep(0.05)
        assert ai.calls_of("generate") == [b"a.pdf"]
        assert len(orchestrator.state.results) == 1

        assert orchestrator.resume() is True
        summary = await task

        assert [r.status for r in summary.results] == [FileStatus.ERROR, FileStatus.SUCCESS]
        assert orchestrator.state.is_paused is False

    @pytest.mark.asyncio
    async def test_user_pause_and_resume(self):
        orchestrator = build_orchestrator(FakeAIClient(delay=0.02))
        files = [make_source(name) for name in ("a.pdf", "b.pdf", "c.pdf")]
        task = asyncio.create_task(orchestrator.start_batch(files, MANUAL))

        await wait_until(lambda: orchestrator.state.is_processing)
        assert orchestrator.pause() is True
        assert orchestrator.pause() is False
        assert orchestrator.state.pause_reason == PauseReason.USER

        await asyncio.sleep(0.1)
        assert len(orchestrator.state.results) <= 1

        orchestrator.resume()
        summary = await task
        assert len(summary.results) == 3

    def test_pause_and_resume_without_batch_are_noops(self):
        orchestrator = build_orchestrator(FakeAIClient())

        assert orchestrator.pause() is False
        assert orchestrator.resume() is False
        assert orchestrator.cancel() is False


class TestCancel:
    """Test suite for cancellation."""

    @pytest.mark.asyncio
    async def test_cancel_between_files_leaves_rest_untouched(self):
        orchestrator = build_orchestrator(FakeAIClient())
        orchestrator.on_file_processed = lambda result: orchestrator.cancel()
        files = [make_source(f"order_{i}.pdf") for i in range(5)]

        summary = await orchestrator.start_batch(files, MANUAL)

        assert summary.status == BatchStatus.CANCELLED
        assert len(summary.results) == 1
        assert summary.results[0].status == FileStatus.SUCCESS
        assert orchestrator.state.is_processing is False

    @pytest.mark.asyncio
    async def test_cancel_discards_in_flight_result(self):
        ai = FakeAIClient(delay=0.05)
        store = FakeStore()
        orchestrator = build_orchestrator(ai, store)
        task = asyncio.create_task(orchestrator.start_batch([make_source("a.pdf")], MANUAL))

        await wait_until(lambda: ai.in_flight == 1)
        assert orchestrator.cancel() is True
        assert orchestrator.cancel() is False
        summary = await task

        result = summary.results[0]
        assert result.status == FileStatus.CANCELLED
        assert result.error_message == CANCELLED_MESSAGE
        assert result.work_order_id is None
        assert summary.status == BatchStatus.CANCELLED
        assert orchestrator.tracker_for("a.pdf").status == ProcessStatus.CANCELLED
        assert store.batch_jobs[summary.batch_id]["status"] == "cancelled"
        (work_order_id,) = store.work_orders
        assert store.statuses[work_order_id] == "cancelled"
        assert store.status_updates == [(work_order_id, "cancelled")]

    @pytest.mark.asyncio
    async def test_cancel_while_paused_unblocks_waiting_files(self):
        orchestrator = build_orchestrator(FakeAIClient(generate=fail_for("a.pdf")))
        options = BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G", pause_on_error=True)
        task = asyncio.create_task(
            orchestrator.start_batch([make_source("a.pdf"), make_source("b.pdf")], options)
        )

        await wait_until(lambda: orchestrator.state.is_paused)
        orchestrator.cancel()
        summary = await task

        assert summary.status == BatchStatus.CANCELLED
        assert [r.status for r in summary.results] == [FileStatus.ERROR, FileStatus.CANCELLED]
        assert orchestrator.state.is_paused is False


class TestRetry:
    """Test suite for the retry pass."""

    @pytest.mark.asyncio
    async def test_failed_files_are_retried_once(self):
        attempts = {"count": 0}

        def flaky(data):
            if data == b"b.pdf":
                attempts["count"] += 1
                if attempts["count"] == 1:
                    return APIClientError("rate limited")
            return "generated"

        orchestrator = build_orchestrator(FakeAIClient(generate=flaky))
        options = BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G", retry_failed_files=True)

        summary = await orchestrator.start_batch([make_source("a.pdf"), make_source("b.pdf")], options)

        retried = summary.results[1]
        assert len(summary.results) == 2
        assert retried.status == FileStatus.SUCCESS
        assert retried.attempts == 2
        assert retried.previous_errors == ["rate limited"]
        assert summary.error_count == 0

    @pytest.mark.asyncio
    async def test_persistent_failure_keeps_error_after_retry(self):
        orchestrator = build_orchestrator(FakeAIClient(generate=fail_for("a.pdf")))
        options = BatchOptions(auto_detect_enabled=False, company_id="NOHARA_G", retry_failed_files=True)

        summary = await orchestrator.start_batch([make_source("a.pdf")], options)

        assert summary.results[0].status == FileStatus.ERROR
        assert summary.results[0].attempts == 2
        assert summary.status == BatchStatus.ERROR
