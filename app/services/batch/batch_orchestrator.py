"""Batch orchestration over the two-stage single-file pipeline.

The orchestrator owns one batch at a time: it validates the submission,
schedules files sequentially or in capped chunks, honours pause, resume and
cancel requests, drives one ``ProcessStatusTracker`` per file, and reports
per-file and aggregate results through callbacks and ``BatchState``.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from app.core.exceptions import CompanyDetectionFailedError, PipelineError, ValidationError
from app.services.batch.contracts import (
    CANCELLED_MESSAGE,
    BatchOptions,
    BatchState,
    BatchStatus,
    BatchSummary,
    FileStatus,
    FileTaskResult,
    PauseReason,
)
from app.services.detection.contracts import DetectionResult
from app.services.status.contracts import ProcessState
from app.services.status.process_status_tracker import ProcessStatusTracker
from app.services.store import BatchFileEntry, BatchJobStore, WorkOrderStore
from app.services.work_order.contracts import SourceFile
from app.services.work_order.single_file_processor import SingleFileProcessor
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

MAX_BATCH_FILES = 50
MAX_CONCURRENCY = 3
PAUSE_POLL_INTERVAL = 0.1
CHUNK_DELAY = 0.1
LARGE_BATCH_THRESHOLD = 20
FILE_START_DELAY = 1.0
STAGE_DELAY = 1.0

FileCallback = Callable[[FileTaskResult], Any]
BatchCallback = Callable[[BatchSummary], Any]
StateCallback = Callable[[BatchState], Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchOrchestrator:
    """Run one batch of documents through the pipeline.

    Args:
        processor: Single-file pipeline
        batch_store: Store for job and per-file progress (optional)
        work_order_store: Store handed to per-file trackers (optional)
        max_files: Largest accepted batch
        max_concurrency: Hard cap on files processed at once
        pause_poll_interval: Seconds between pause-flag checks
        chunk_delay: Pause between chunks of large batches
        large_batch_threshold: Batches above this size get ``chunk_delay``
        file_start_delay: Throttle before every file except the first
        stage_delay: Throttle between Stage 1 and Stage 2
        tracker_poll_interval: Poll interval for per-file trackers
        min_document_creating_dwell: Dwell floor for per-file trackers
        on_file_processed: Called with each file result
        on_batch_complete: Called once with the batch summary
        on_state_change: Called with ``BatchState`` after every change
    """

    def __init__(
        self,
        processor: SingleFileProcessor,
        batch_store: Optional[BatchJobStore] = None,
        work_order_store: Optional[WorkOrderStore] = None,
        max_files: int = MAX_BATCH_FILES,
        max_concurrency: int = MAX_CONCURRENCY,
        pause_poll_interval: float = PAUSE_POLL_INTERVAL,
        chunk_delay: float = CHUNK_DELAY,
        large_batch_threshold: int = LARGE_BATCH_THRESHOLD,
        file_start_delay: float = FILE_START_DELAY,
        stage_delay: float = STAGE_DELAY,
        tracker_poll_interval: float = 3.0,
        min_document_creating_dwell: float = 2.0,
        on_file_processed: Optional[FileCallback] = None,
        on_batch_complete: Optional[BatchCallback] = None,
        on_state_change: Optional[StateCallback] = None,
    ):
        self.processor = processor
        self.batch_store = batch_store
        self.work_order_store = work_order_store
        self.max_files = max_files
        self.max_concurrency = max_concurrency
        self.pause_poll_interval = pause_poll_interval
        self.chunk_delay = chunk_delay
        self.large_batch_threshold = large_batch_threshold
        self.file_start_delay = file_start_delay
        self.stage_delay = stage_delay
        self.tracker_poll_interval = tracker_poll_interval
        self.min_document_creating_dwell = min_document_creating_dwell
        self.on_file_processed = on_file_processed
        self.on_batch_complete = on_batch_complete
        self.on_state_change = on_state_change

        self.state = BatchState()
        self.summary: Optional[BatchSummary] = None
        self._cancel_event = asyncio.Event()
        self._trackers: Dict[str, ProcessStatusTracker] = {}
        self._result_positions: Dict[str, int] = {}
        self._focused_file: Optional[str] = None
        self._started_monotonic: Optional[float] = None
        self._ended_monotonic: Optional[float] = None
        self._completion_notified = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def validate(self, files: Sequence[SourceFile], options: BatchOptions) -> None:
        """Reject a submission before any side effect.

        Raises:
            ValidationError: If the batch is empty, too large, has duplicate
                file names, lacks a company selection, or another batch is
                still running
        """
        if self.state.is_processing:
            raise ValidationError("A batch is already running")
        if not files:
            raise ValidationError("No files to process")
        if len(files) > self.max_files:
            raise ValidationError(
                f"Too many files: {len(files)} (maximum {self.max_files} per batch)"
            )
        names = [source.name for source in files]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValidationError(f"Duplicate file names in batch: {', '.join(duplicates)}")
        if options.concurrency_limit < 1:
            raise ValidationError("concurrency_limit must be at least 1")
        if not options.auto_detect_enabled and not options.company_id:
            raise ValidationError("A company must be selected when auto-detection is disabled")

    async def start_batch(self, files: Sequence[SourceFile], options: BatchOptions) -> BatchSummary:
        """Process a batch of files to completion, cancellation or failure.

        Progress is reported through ``state`` and the callbacks; the
        returned summary is also passed to ``on_batch_complete``.

        Raises:
            ValidationError: See ``validate``
        """
        self.validate(files, options)
        self._begin(files)

        LOGGER.info(
            "Starting batch",
            extra={"total_files": len(files), "options": options.to_dict()},
        )
        await self._create_batch_job(files, options)

        try:
            if options.concurrency_limit <= 1:
                await self._run_sequential(files, options)
            else:
                await self._run_chunked(files, options)

            if options.retry_failed_files and not self.is_cancelled:
                await self._retry_failed(files, options)
        except asyncio.CancelledError:
            self._cancel_event.set()
            await self._finalize()
            raise

        return await self._finalize()

    async def process_file_with_result(
        self,
        source: SourceFile,
        index: int,
        options: BatchOptions,
        previous: Optional[FileTaskResult] = None,
    ) -> FileTaskResult:
        """Run one file through the pipeline and record its result.

        Never raises for pipeline or persistence failures; those become an
        ``error`` result. Cancellation always yields a ``cancelled`` result.
        """
        await self._wait_while_paused()
        if self.is_cancelled:
            return await self._conclude(self._cancelled_result(source, previous))

        if index > 0 and self.file_start_delay > 0:
            await asyncio.sleep(self.file_start_delay)
            if self.is_cancelled:
                return await self._conclude(self._cancelled_result(source, previous))

        started_at = _now()
        self.state.current_file_index = max(self.state.current_file_index, index)
        self._focused_file = source.name
        tracker = self._new_tracker(source.name)
        tracker.start_process_without_id()
        self._notify_state()
        await self._persist_file(
            FileTaskResult(
                file_name=source.name,
                status=FileStatus.PROCESSING,
                file_size=source.size,
                started_at=started_at,
                attempts=self._attempt_number(previous),
            )
        )

        detection: Optional[DetectionResult] = None
        company_id: Optional[str] = options.company_id
        try:
            if options.auto_detect_enabled:
                detection = await self.processor.classify(source)
                company_id = self._resolve_company(source, detection, options)
                if self.is_cancelled:
                    return await self._conclude_cancelled(source, tracker, previous, started_at, detection, company_id)
                if self.stage_delay > 0:
                    await asyncio.sleep(self.stage_delay)
                if self.is_cancelled:
                    return await self._conclude_cancelled(source, tracker, previous, started_at, detection, company_id)

            tracker.set_document_creating()
            outcome = await self.processor.generate(source, company_id, detection)
            if not outcome.work_order_id:
                raise PipelineError(f"No work order was created for {source.name}")

        except Exception as e:
            if self.is_cancelled:
                return await self._conclude_cancelled(source, tracker, previous, started_at, detection, company_id)

            message = str(e) or e.__class__.__name__
            LOGGER.warning(
                "File processing failed",
                extra={"file_name": source.name, "error": message},
            )
            tracker.set_error_state(message)
            result = FileTaskResult(
                file_name=source.name,
                status=FileStatus.ERROR,
                file_size=source.size,
                company_id=company_id,
                detection_result=detection,
                error_message=message,
                started_at=started_at,
                completed_at=_now(),
                attempts=self._attempt_number(previous),
                previous_errors=self._previous_errors(previous),
            )
            if options.pause_on_error:
                self._pause(PauseReason.ERROR)
            return await self._conclude(result)

        if self.is_cancelled:
            # The call finished after cancellation; the stored record is marked cancelled.
            tracker.update_work_order_id(outcome.work_order_id)
            return await self._conclude_cancelled(source, tracker, previous, started_at, detection, company_id)

        tracker.update_work_order_id(outcome.work_order_id)
        tracker.complete_process(outcome.work_order_id)
        result = FileTaskResult(
            file_name=source.name,
            status=FileStatus.SUCCESS,
            file_size=source.size,
            company_id=outcome.company_id,
            work_order_id=outcome.work_order_id,
            detection_result=detection,
            started_at=started_at,
            completed_at=_now(),
            attempts=self._attempt_number(previous),
            previous_errors=self._previous_errors(previous),
        )
        return await self._conclude(result)

    def pause(self) -> bool:
        """Pause before the next file starts. Files already running finish."""
        return self._pause(PauseReason.USER)

    def resume(self) -> bool:
        if not self.state.is_paused:
            return False
        self.state.is_paused = False
        self.state.pause_reason = None
        LOGGER.info("Batch resumed", extra={"batch_id": self.state.batch_id})
        self._notify_state()
        return True

    def cancel(self) -> bool:
        """Signal every in-flight file to stop; running AI calls finish but are discarded."""
        if not self.state.is_processing or self.is_cancelled:
            return False
        self._cancel_event.set()
        self.state.is_paused = False
        self.state.pause_reason = None
        LOGGER.info("Batch cancellation requested", extra={"batch_id": self.state.batch_id})
        self._notify_state()
        return True

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def progress(self) -> int:
        """Percentage of files with a result, rounded."""
        if not self.state.total_files:
            return 0
        return round(len(self.state.results) / self.state.total_files * 100)

    def elapsed_ms(self) -> int:
        if self._started_monotonic is None:
            return 0
        end = self._ended_monotonic if self._ended_monotonic is not None else time.monotonic()
        return int((end - self._started_monotonic) * 1000)

    def tracker_for(self, file_name: str) -> Optional[ProcessStatusTracker]:
        return self._trackers.get(file_name)

    @property
    def focused_process_state(self) -> Optional[ProcessState]:
        """Process state of the most recently started file."""
        if self._focused_file is None:
            return None
        tracker = self._trackers.get(self._focused_file)
        return tracker.state if tracker else None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def _run_sequential(self, files: Sequence[SourceFile], options: BatchOptions) -> None:
        for index, source in enumerate(files):
            if self.is_cancelled:
                break
            await self.process_file_with_result(source, index, options)

    async def _run_chunked(self, files: Sequence[SourceFile], options: BatchOptions) -> None:
        chunk_size = min(options.concurrency_limit, self.max_concurrency)
        chunks = [files[i:i + chunk_size] for i in range(0, len(files), chunk_size)]
        LOGGER.debug(
            f"Created {len(chunks)} chunks from {len(files)} files (chunk_size={chunk_size})"
        )

        for chunk_index, chunk in enumerate(chunks):
            if self.is_cancelled:
                break
            offset = chunk_index * chunk_size
            await asyncio.gather(
                *(
                    self.process_file_with_result(source, offset + position, options)
                    for position, source in enumerate(chunk)
                )
            )
            is_last = chunk_index == len(chunks) - 1
            if not is_last and len(files) > self.large_batch_threshold and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)

    async def _retry_failed(self, files: Sequence[SourceFile], options: BatchOptions) -> None:
        by_name = {source.name: source for source in files}
        index_by_name = {source.name: index for index, source in enumerate(files)}
        failed = [result for result in self.state.results if result.status == FileStatus.ERROR]
        if not failed:
            return

        LOGGER.info(f"Retrying {len(failed)} failed files")
        for previous in failed:
            if self.is_cancelled:
                break
            source = by_name[previous.file_name]
            await self.process_file_with_result(
                source, index_by_name[source.name], options, previous=previous
            )

    async def _wait_while_paused(self) -> None:
        while self.state.is_paused and not self.is_cancelled:
            await asyncio.sleep(self.pause_poll_interval)

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def _begin(self, files: Sequence[SourceFile]) -> None:
        self.state = BatchState(
            is_processing=True,
            total_files=len(files),
            status=BatchStatus.PROCESSING,
            start_time=_now(),
        )
        self.summary = None
        self._cancel_event = asyncio.Event()
        self._trackers = {}
        self._result_positions = {}
        self._focused_file = None
        self._started_monotonic = time.monotonic()
        self._ended_monotonic = None
        self._completion_notified = False
        self._notify_state()

    async def _finalize(self) -> BatchSummary:
        # Trackers still inside the minimum dwell settle before the batch ends.
        await asyncio.gather(*(tracker.wait_for_completion() for tracker in self._trackers.values()))

        results = self.state.results
        success_count = sum(1 for r in results if r.status == FileStatus.SUCCESS)
        error_count = sum(1 for r in results if r.status == FileStatus.ERROR)
        cancelled_count = sum(1 for r in results if r.status == FileStatus.CANCELLED)

        if self.is_cancelled or cancelled_count > 0:
            status = BatchStatus.CANCELLED
        elif error_count == self.state.total_files:
            status = BatchStatus.ERROR
        else:
            status = BatchStatus.COMPLETED

        end_time = _now()
        self._ended_monotonic = time.monotonic()
        self.state.is_processing = False
        self.state.status = status
        self.state.end_time = end_time

        if self.batch_store is not None and self.state.batch_id is not None:
            try:
                await self.batch_store.finalize_batch_job(
                    self.state.batch_id,
                    status.value,
                    processed_files=success_count,
                    failed_files=error_count,
                    end_time=end_time,
                )
            except Exception as e:
                LOGGER.error(
                    "Failed to update batch status",
                    extra={"batch_id": self.state.batch_id, "error": str(e)},
                )

        summary = BatchSummary(
            batch_id=self.state.batch_id,
            status=status,
            total_files=self.state.total_files,
            success_count=success_count,
            error_count=error_count,
            cancelled_count=cancelled_count,
            results=list(results),
        )
        self.summary = summary

        LOGGER.info(
            "Batch finished",
            extra={
                "batch_id": self.state.batch_id,
                "status": status.value,
                "success": success_count,
                "error": error_count,
                "cancelled": cancelled_count,
            },
        )
        self._notify_state()
        if not self._completion_notified:
            self._completion_notified = True
            self._invoke(self.on_batch_complete, summary)
        return summary

    async def _create_batch_job(self, files: Sequence[SourceFile], options: BatchOptions) -> None:
        if self.batch_store is None:
            return
        try:
            batch_id = await self.batch_store.create_batch_job(len(files), options)
        except Exception as e:
            LOGGER.error(
                "Failed to create batch job record; continuing without persistence",
                extra={"error": str(e)},
            )
            return

        self.state.batch_id = batch_id
        try:
            await self.batch_store.record_batch_files(
                batch_id,
                [BatchFileEntry(file_name=source.name, file_size=source.size) for source in files],
            )
        except Exception as e:
            LOGGER.error(
                "Failed to record batch files",
                extra={"batch_id": batch_id, "error": str(e)},
            )

    async def _persist_file(self, result: FileTaskResult) -> None:
        if self.batch_store is None or self.state.batch_id is None:
            return
        try:
            await self.batch_store.update_file_result(self.state.batch_id, result)
        except Exception as e:
            LOGGER.error(
                "Failed to update file status",
                extra={
                    "batch_id": self.state.batch_id,
                    "file_name": result.file_name,
                    "status": result.status.value,
                    "error": str(e),
                },
            )

    async def _conclude(self, result: FileTaskResult) -> FileTaskResult:
        self._record(result)
        await self._persist_file(result)
        self._invoke(self.on_file_processed, result)
        self._notify_state()
        return result

    async def _conclude_cancelled(
        self,
        source: SourceFile,
        tracker: ProcessStatusTracker,
        previous: Optional[FileTaskResult],
        started_at: datetime,
        detection: Optional[DetectionResult],
        company_id: Optional[str],
    ) -> FileTaskResult:
        await tracker.cancel_process()
        result = self._cancelled_result(source, previous)
        result.started_at = started_at
        result.detection_result = detection
        result.company_id = company_id
        return await self._conclude(result)

    def _record(self, result: FileTaskResult) -> None:
        position = self._result_positions.get(result.file_name)
        if position is None:
            self._result_positions[result.file_name] = len(self.state.results)
            self.state.results.append(result)
        else:
            self.state.results[position] = result

    def _resolve_company(
        self,
        source: SourceFile,
        detection: DetectionResult,
        options: BatchOptions,
    ) -> str:
        if detection.detected_company_id:
            return detection.detected_company_id
        if options.company_id:
            LOGGER.info(
                "Company not detected; using selected company",
                extra={"file_name": source.name, "company_id": options.company_id},
            )
            return options.company_id
        keywords = ", ".join(detection.details.found_keywords) or "none"
        raise CompanyDetectionFailedError(
            f"Could not detect the company for {source.name} "
            f"(confidence: {detection.confidence:.2f}, keywords: {keywords}). "
            "Select the company manually."
        )

    def _new_tracker(self, file_name: str) -> ProcessStatusTracker:
        existing = self._trackers.get(file_name)
        if existing is not None:
            existing.clear_process()
        tracker = ProcessStatusTracker(
            store=self.work_order_store,
            poll_interval=self.tracker_poll_interval,
            min_document_creating_dwell=self.min_document_creating_dwell,
        )
        self._trackers[file_name] = tracker
        return tracker

    def _pause(self, reason: PauseReason) -> bool:
        if not self.state.is_processing or self.state.is_paused or self.is_cancelled:
            return False
        self.state.is_paused = True
        self.state.pause_reason = reason
        LOGGER.info(
            "Batch paused",
            extra={"batch_id": self.state.batch_id, "reason": reason.value},
        )
        self._notify_state()
        return True

    def _cancelled_result(
        self, source: SourceFile, previous: Optional[FileTaskResult]
    ) -> FileTaskResult:
        return FileTaskResult(
            file_name=source.name,
            status=FileStatus.CANCELLED,
            file_size=source.size,
            error_message=CANCELLED_MESSAGE,
            completed_at=_now(),
            attempts=self._attempt_number(previous),
            previous_errors=self._previous_errors(previous),
        )

    @staticmethod
    def _attempt_number(previous: Optional[FileTaskResult]) -> int:
        return previous.attempts + 1 if previous else 1

    @staticmethod
    def _previous_errors(previous: Optional[FileTaskResult]) -> List[str]:
        if previous is None:
            return []
        errors = list(previous.previous_errors)
        if previous.error_message:
            errors.append(previous.error_message)
        return errors

    def _notify_state(self) -> None:
        self._invoke(self.on_state_change, self.state)

    @staticmethod
    def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            LOGGER.error(f"Batch callback failed: {e}", exc_info=True)
