"""State machine reflecting one document's progress through the pipeline.

The tracker is either driven locally by the orchestrator (explicit
transition methods) or polls a persisted work-order record and maps its
raw status onto ``ProcessStatus``. Both modes share the same forward-only
transition rules and fire the terminal callbacks exactly once.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.core.exceptions import InvalidStateTransitionError
from app.services.status.constants import (
    DEFAULT_MIN_DOCUMENT_CREATING_DWELL,
    DEFAULT_POLL_INTERVAL,
    RETRY_STEP_LABEL,
    STEP_LABELS,
    map_raw_status,
)
from app.services.status.contracts import FORWARD_ORDER, ProcessState, ProcessStatus
from app.services.store import WorkOrderStore
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

StatusCallback = Callable[[ProcessState], Any]
CompleteCallback = Callable[[Optional[str]], Any]
ErrorCallback = Callable[[Optional[str], str], Any]
CancelCallback = Callable[[Optional[str]], Any]
PollErrorCallback = Callable[[Exception], Any]


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class ProcessStatusTracker:
    """Per-file process state machine.

    Transitions only move forward along
    ``waiting -> ocr_processing -> document_creating -> completed``;
    ``error`` and ``cancelled`` are reachable from any non-terminal state
    and ``retry_process`` moves ``error`` back to ``waiting``. Moving
    backwards raises ``InvalidStateTransitionError``. Once a terminal state
    is reached further transitions are ignored.

    Args:
        store: Work-order store used for polling and best-effort remote updates
        poll_interval: Seconds between status fetches while polling
        min_document_creating_dwell: Minimum seconds spent in
            ``document_creating`` before ``completed`` is shown
        on_status_change: Called with the new state whenever the status changes
        on_complete: Called with the work-order id on completion
        on_error: Called with the work-order id and message on failure
        on_cancel: Called with the work-order id on cancellation
        on_poll_error: Called when fetching the remote status fails
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        store: Optional[WorkOrderStore] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        min_document_creating_dwell: float = DEFAULT_MIN_DOCUMENT_CREATING_DWELL,
        on_status_change: Optional[StatusCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
        on_poll_error: Optional[PollErrorCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.poll_interval = poll_interval
        self.min_document_creating_dwell = min_document_creating_dwell
        self.on_status_change = on_status_change
        self.on_complete = on_complete
        self.on_error = on_error
        self.on_cancel = on_cancel
        self.on_poll_error = on_poll_error
        self.clock = clock

        self.last_error: Optional[str] = None
        self._state: Optional[ProcessState] = None
        self._started_at: Optional[float] = None
        self._document_creating_since: Optional[float] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._completion_task: Optional[asyncio.Task] = None
        self._terminal_notified = False

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    @property
    def state(self) -> Optional[ProcessState]:
        return self._state

    @property
    def status(self) -> Optional[ProcessStatus]:
        return self._state.status if self._state else None

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def completion_pending(self) -> bool:
        return self._completion_task is not None and not self._completion_task.done()

    @property
    def elapsed_seconds(self) -> float:
        if self._started_at is None:
            return 0.0
        return self.clock() - self._started_at

    # ------------------------------------------------------------------
    # Locally driven transitions
    # ------------------------------------------------------------------

    def start_process(self, work_order_id: str) -> ProcessState:
        """Track an existing record: state ``waiting`` and start polling it."""
        self._reset()
        self._state = None
        self._set_state(
            ProcessState(
                status=ProcessStatus.WAITING,
                current_step=STEP_LABELS[ProcessStatus.WAITING],
                can_cancel=False,
                work_order_id=work_order_id,
            )
        )
        self.start_polling(work_order_id)
        return self._state

    def start_process_without_id(self) -> ProcessState:
        """Begin local tracking before any record exists (Stage 1)."""
        self._reset()
        self._state = None
        self._set_state(
            ProcessState(
                status=ProcessStatus.OCR_PROCESSING,
                current_step=STEP_LABELS[ProcessStatus.OCR_PROCESSING],
                can_cancel=True,
            )
        )
        return self._state

    def update_work_order_id(self, work_order_id: str) -> bool:
        """Attach the persisted record id and move to ``document_creating``."""
        return self._transition(
            ProcessStatus.DOCUMENT_CREATING,
            work_order_id=work_order_id,
            can_cancel=True,
        )

    def set_document_creating(self) -> bool:
        return self._transition(ProcessStatus.DOCUMENT_CREATING, can_cancel=True)

    def complete_process(self, work_order_id: Optional[str] = None) -> bool:
        """Move to ``completed``, honouring the minimum ``document_creating`` dwell.

        When the dwell has not elapsed yet the completion is scheduled and
        this returns False without blocking; it returns True when the state
        is completed immediately.
        """
        if self._state is None or self._state.status.is_terminal:
            return False
        if self.completion_pending:
            return False

        remaining = self._remaining_dwell()
        if remaining > 0:
            self._completion_task = asyncio.create_task(
                self._complete_after(remaining, work_order_id)
            )
            return False

        return self._finish_completed(work_order_id)

    def set_error_state(self, message: str) -> bool:
        """Move to ``error`` with a message; stops polling."""
        if self._state is None:
            self._set_state(
                ProcessState(
                    status=ProcessStatus.WAITING,
                    current_step=STEP_LABELS[ProcessStatus.WAITING],
                )
            )
        if self._state.status.is_terminal:
            return False

        self._cancel_completion()
        self.stop_polling()
        changed = self._transition(
            ProcessStatus.ERROR, error_detail=message, can_cancel=False
        )
        if changed:
            self._notify_terminal()
        return changed

    async def cancel_process(self) -> bool:
        """Cancel from any non-terminal state.

        Polling stops and the local state becomes ``cancelled`` before the
        best-effort remote update is attempted. Calling this again is a no-op.

        Returns:
            True if the state changed, False if it was already terminal
        """
        if self._state is None or self._state.status.is_terminal:
            return False

        self._cancel_completion()
        self.stop_polling()
        self._transition(ProcessStatus.CANCELLED, can_cancel=False)
        self._notify_terminal()

        await self._update_remote(ProcessStatus.CANCELLED.value)
        return True

    async def retry_process(self) -> ProcessState:
        """Move ``error`` back to ``waiting`` and resume polling if a record exists."""
        if self._state is None or self._state.status != ProcessStatus.ERROR:
            current = self._state.status.value if self._state else "none"
            raise InvalidStateTransitionError(current, ProcessStatus.WAITING.value)

        self._terminal_notified = False
        self.last_error = None
        self._document_creating_since = None
        self._started_at = self.clock()
        self._set_state(
            self._state.evolve(
                status=ProcessStatus.WAITING,
                current_step=RETRY_STEP_LABEL,
                start_time=datetime.now(timezone.utc),
                error_detail=None,
                can_cancel=False,
            )
        )

        work_order_id = self._state.work_order_id
        if work_order_id:
            await self._update_remote(ProcessStatus.WAITING.value)
            self.start_polling(work_order_id)
        return self._state

    async def wait_for_completion(self) -> None:
        """Wait for a scheduled ``completed`` transition, if one is pending."""
        task = self._completion_task
        if task is not None and task is not _current_task():
            await asyncio.gather(task, return_exceptions=True)

    def clear_process(self) -> None:
        """Forget the current process and stop all timers."""
        self._reset()
        self._state = None

    async def dispose(self) -> None:
        """Stop polling and pending completions and wait for them to unwind."""
        tasks = [task for task in (self._poll_task, self._completion_task) if task is not None]
        self.clear_process()
        current = _current_task()
        pending = [task for task in tasks if task is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Remote polling
    # ------------------------------------------------------------------

    def start_polling(self, work_order_id: str) -> None:
        if self.store is None:
            LOGGER.warning("Cannot poll status without a work order store")
            return
        self.stop_polling()
        self._poll_task = asyncio.create_task(self._poll_loop(work_order_id))

    def stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def refresh_status(self) -> Optional[ProcessStatus]:
        """Fetch and apply the remote status once.

        Raises:
            Exception: Whatever the store raises; polling handles it
        """
        if self.store is None or self._state is None or not self._state.work_order_id:
            return self.status
        raw = await self.store.get_work_order_status(self._state.work_order_id)
        if raw is not None:
            self._apply_remote_status(raw)
        return self.status

    async def _poll_loop(self, work_order_id: str) -> None:
        me = _current_task()
        while self._poll_task is me:
            try:
                raw = await self.store.get_work_order_status(work_order_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.last_error = str(e)
                LOGGER.warning(
                    "Status polling failed",
                    extra={"work_order_id": work_order_id, "error": str(e)},
                )
                self._poll_task = None
                self._invoke(self.on_poll_error, e)
                return

            if raw is not None:
                self._apply_remote_status(raw)

            if self._state is None or self._state.status.is_terminal:
                return
            await asyncio.sleep(self.poll_interval)

    def _apply_remote_status(self, raw: str) -> None:
        status = map_raw_status(raw)
        if status is None:
            LOGGER.warning(f"Ignoring unknown work order status: {raw}")
            return
        if self._state is None or self._state.status.is_terminal:
            return
        current = self._state.status
        if status == current:
            return

        if status == ProcessStatus.COMPLETED:
            self._cancel_completion()
            self._finish_completed(self._state.work_order_id)
        elif status == ProcessStatus.ERROR:
            self.set_error_state("Processing failed")
        elif status == ProcessStatus.CANCELLED:
            self._cancel_completion()
            self.stop_polling()
            self._transition(ProcessStatus.CANCELLED, can_cancel=False)
            self._notify_terminal()
        elif FORWARD_ORDER[status] < FORWARD_ORDER[current]:
            # Stale read from an eventually consistent store.
            LOGGER.debug(f"Ignoring stale status {status.value} while {current.value}")
        else:
            self._transition(
                status,
                can_cancel=status != ProcessStatus.WAITING,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, target: ProcessStatus, **fields: Any) -> bool:
        if self._state is None:
            self._reset()
            self._state = ProcessState(status=ProcessStatus.WAITING, current_step=STEP_LABELS[ProcessStatus.WAITING])

        current = self._state.status
        if current.is_terminal:
            LOGGER.debug(f"Ignoring transition to {target.value}; already {current.value}")
            return False

        if target in FORWARD_ORDER and FORWARD_ORDER[target] < FORWARD_ORDER[current]:
            raise InvalidStateTransitionError(current.value, target.value)

        if target == ProcessStatus.DOCUMENT_CREATING and current != target:
            self._document_creating_since = self.clock()

        self._set_state(
            self._state.evolve(status=target, current_step=STEP_LABELS[target], **fields)
        )
        return True

    def _finish_completed(self, work_order_id: Optional[str]) -> bool:
        fields: dict = {"can_cancel": False}
        if work_order_id:
            fields["work_order_id"] = work_order_id
        self.stop_polling()
        changed = self._transition(ProcessStatus.COMPLETED, **fields)
        if changed:
            self._notify_terminal()
        return changed

    async def _complete_after(self, delay: float, work_order_id: Optional[str]) -> None:
        await asyncio.sleep(delay)
        self._completion_task = None
        self._finish_completed(work_order_id)

    def _remaining_dwell(self) -> float:
        if self._state.status != ProcessStatus.DOCUMENT_CREATING:
            return 0.0
        if self._document_creating_since is None:
            return 0.0
        elapsed = self.clock() - self._document_creating_since
        return max(0.0, self.min_document_creating_dwell - elapsed)

    def _cancel_completion(self) -> None:
        task = self._completion_task
        self._completion_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    def _reset(self) -> None:
        self.stop_polling()
        self._cancel_completion()
        self._terminal_notified = False
        self._document_creating_since = None
        self.last_error = None
        self._started_at = self.clock()

    def _set_state(self, new_state: ProcessState) -> None:
        previous = self._state
        self._state = new_state
        if previous is None or previous.status != new_state.status:
            self._invoke(self.on_status_change, new_state)

    def _notify_terminal(self) -> None:
        if self._terminal_notified or self._state is None:
            return
        self._terminal_notified = True
        state = self._state
        if state.status == ProcessStatus.COMPLETED:
            self._invoke(self.on_complete, state.work_order_id)
        elif state.status == ProcessStatus.ERROR:
            self._invoke(self.on_error, state.work_order_id, state.error_detail or "")
        elif state.status == ProcessStatus.CANCELLED:
            self._invoke(self.on_cancel, state.work_order_id)

    async def _update_remote(self, status: str) -> None:
        if self.store is None or self._state is None or not self._state.work_order_id:
            return
        try:
            await self.store.update_work_order_status(self._state.work_order_id, status)
        except Exception as e:
            LOGGER.warning(
                "Failed to update remote work order status",
                extra={"work_order_id": self._state.work_order_id, "status": status, "error": str(e)},
            )

    @staticmethod
    def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            LOGGER.error(f"Process status callback failed: {e}", exc_info=True)
