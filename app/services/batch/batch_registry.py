"""In-process registry of running batch orchestrators."""

import asyncio
import uuid
from typing import Callable, Dict, List, Sequence

from app.core.exceptions import NotFoundError
from app.services.batch.batch_orchestrator import BatchOrchestrator
from app.services.batch.contracts import BatchOptions
from app.services.work_order.contracts import SourceFile
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BatchRegistry:
    """Start batches in the background and look them up by run id.

    Each submission gets its own orchestrator from ``orchestrator_factory``.
    The registry keeps a reference to every background task so it is not
    garbage-collected mid-run. Only the newest ``max_finished_runs``
    finished runs stay queryable; older ones are evicted as runs finish.
    """

    def __init__(
        self,
        orchestrator_factory: Callable[[], BatchOrchestrator],
        max_finished_runs: int = 20,
    ):
        self.orchestrator_factory = orchestrator_factory
        self.max_finished_runs = max(0, max_finished_runs)
        self._orchestrators: Dict[str, BatchOrchestrator] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, files: Sequence[SourceFile], options: BatchOptions) -> str:
        """Validate and start a batch in the background.

        Returns:
            Run id used to query and control the batch

        Raises:
            ValidationError: If the submission is rejected
        """
        orchestrator = self.orchestrator_factory()
        orchestrator.validate(files, options)

        run_id = uuid.uuid4().hex
        task = asyncio.create_task(orchestrator.start_batch(list(files), options))
        self._orchestrators[run_id] = orchestrator
        self._tasks[run_id] = task
        task.add_done_callback(lambda t, rid=run_id: self._on_done(rid, t))

        LOGGER.info("Batch submitted", extra={"run_id": run_id, "total_files": len(files)})
        return run_id

    def get(self, run_id: str) -> BatchOrchestrator:
        orchestrator = self._orchestrators.get(run_id)
        if orchestrator is None:
            raise NotFoundError(f"Batch run not found: {run_id}")
        return orchestrator

    def run_ids(self) -> List[str]:
        return list(self._orchestrators)

    def is_running(self, run_id: str) -> bool:
        task = self._tasks.get(run_id)
        return task is not None and not task.done()

    async def wait(self, run_id: str) -> None:
        """Wait for a batch task to finish (used by tests and shutdown)."""
        self.get(run_id)
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel every running batch and wait for them to unwind."""
        for run_id, orchestrator in self._orchestrators.items():
            if self.is_running(run_id):
                orchestrator.cancel()
        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _on_done(self, run_id: str, task: asyncio.Task) -> None:
        if task.cancelled():
            LOGGER.warning("Batch task cancelled", extra={"run_id": run_id})
        elif task.exception() is not None:
            error = task.exception()
            LOGGER.error(
                "Batch task failed",
                exc_info=error,
                extra={"run_id": run_id, "error": str(error)},
            )
        self._evict_finished()

    def _evict_finished(self) -> None:
        finished = [run_id for run_id, task in self._tasks.items() if task.done()]
        excess = len(finished) - self.max_finished_runs
        for run_id in finished[:max(0, excess)]:
            self._tasks.pop(run_id, None)
            self._orchestrators.pop(run_id, None)
            LOGGER.debug("Evicted finished batch run", extra={"run_id": run_id})
