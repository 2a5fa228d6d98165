"""
Exam session coordinator.

Owns one exam attempt: the reducer snapshot, the answer flush cycle
against the backend, the countdown timer and the violation monitor.
Every change to the snapshot goes through `_dispatch`.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .api import ApiError, handle_api_error, is_network_error
from .flush_policy import should_flush, needs_forced_flush
from .models import AnswerRecord, ExamConfig, FinishResult, StartPayload
from .reducer import (
    INITIAL_STATE,
    ApplyBatchResult,
    ClearFlushed,
    Initialize,
    MarkComplete,
    RecordAnswer,
    SessionState,
    exam_reducer,
    high_water_position,
    is_finalizable,
    is_last_question,
    remaining_inventory,
)
from .timer import ExamTimer
from .violations import EnvironmentObserver, StaticEnvironment, ViolationMonitor


UNINITIALIZED = "uninitialized"
ACTIVE = "active"
FINISHING = "finishing"
COMPLETE = "complete"


class ExamSession:
    """Coordinates one exam attempt against the backend."""

    def __init__(
        self,
        api,
        config: Optional[ExamConfig] = None,
        observer: Optional[EnvironmentObserver] = None,
        session_logger=None,
        clock: Optional[Callable[[], datetime]] = None,
        on_finished: Optional[Callable[[FinishResult], None]] = None,
        background: bool = False,
    ):
        """
        Args:
            api: Backend client (see ApiClient)
            config: Batching, timer and proctoring thresholds
            observer: Source of focus/fullscreen events
            session_logger: Callable(event, details) for the session log
            clock: Returns the current UTC datetime
            on_finished: Called with the finish result once the exam is finalized
            background: Run the timer, fullscreen poll and flushes on daemon
                        threads. When False everything runs on the caller's
                        thread and the timer is driven through timer.tick().
        """
        self.api = api
        self.config = config or ExamConfig.default()
        self.session_logger = session_logger
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.on_finished = on_finished
        self.background = background

        self.state: SessionState = INITIAL_STATE
        self.error: Optional[str] = None
        self.error_is_network = False
        self.finish_result: Optional[FinishResult] = None

        self._lock = threading.RLock()
        self._initialized_attempt: Optional[int] = None
        self._auto_finish_triggered = False
        self._answering = False
        self._flushing = False
        self._finishing = False
        self._pending_flush = False
        self._pending_force = False
        self._time_expired = False
        self._flush_idle = threading.Event()
        self._flush_idle.set()
        self._flush_thread: Optional[threading.Thread] = None

        self.timer = ExamTimer(
            self.config.exam_duration_seconds,
            on_expire=self._handle_time_up,
            session_logger=session_logger,
        )

        self.monitor: Optional[ViolationMonitor] = None
        if self.config.proctoring_enabled:
            self.monitor = ViolationMonitor(
                observer or StaticEnvironment(),
                self.timer,
                on_terminate=self._handle_violation_limit,
                max_violations=self.config.max_violations,
                poll_interval=self.config.fullscreen_poll_seconds,
                is_active=self._is_active,
                session_logger=session_logger,
            )

    def log(self, event: str, details: str = ""):
        if self.session_logger:
            self.session_logger(event, details)

    # Read-only views

    @property
    def status(self) -> str:
        if self.state.attempt_id is None:
            return UNINITIALIZED
        if self.state.is_complete:
            return COMPLETE
        if self._finishing:
            return FINISHING
        return ACTIVE

    @property
    def current_question(self):
        return self.state.current_question

    @property
    def remaining_inventory(self) -> int:
        return remaining_inventory(self.state)

    @property
    def is_last_question(self) -> bool:
        return is_last_question(self.state)

    @property
    def is_flushing(self) -> bool:
        return self._flushing

    @property
    def violation_count(self) -> int:
        return self.monitor.violation_count if self.monitor else 0

    @property
    def warning(self) -> Optional[str]:
        return self.monitor.warning if self.monitor else None

    @property
    def is_interaction_locked(self) -> bool:
        if self._answering or self._finishing or self.state.is_complete:
            return True
        return bool(self.monitor and self.monitor.is_blocking)

    def clear_error(self):
        self.error = None
        self.error_is_network = False

    def _set_error(self, error: BaseException):
        self.error = handle_api_error(error)
        self.error_is_network = is_network_error(error)

    def _is_active(self) -> bool:
        return self.status == ACTIVE

    def _dispatch(self, action) -> SessionState:
        with self._lock:
            self.state = exam_reducer(self.state, action)
            return self.state

    # Lifecycle

    def start_new_attempt(self) -> StartPayload:
        """
        Ask the backend for a new attempt and initialize from it.

        Raises:
            ApiError: If the backend call fails
            InvalidStartPayload: If the response cannot start a session
        """
        payload = self.api.start_exam()
        self.initialize(payload)
        return payload

    def initialize(self, payload: StartPayload) -> bool:
        """
        Initialize the session from a start payload.

        Returns:
            False if this attempt was already initialized (no-op)
        """
        with self._lock:
            if self._initialized_attempt == payload.exam_attempt_id:
                self.log("EXAM_REINIT_IGNORED", f"Attempt {payload.exam_attempt_id} already initialized")
                return False
            self._initialized_attempt = payload.exam_attempt_id
            self._dispatch(Initialize(payload))
            self._auto_finish_triggered = False
            self._pending_flush = False
            self._pending_force = False
            self._time_expired = False
            self.clear_error()
            self.finish_result = None
            if self.monitor:
                self.monitor.reset()

        self.timer.reset(self.config.exam_duration_seconds)
        self.timer.start(background=self.background)
        if self.monitor:
            self.monitor.attach(poll=self.background)

        self.log(
            "EXAM_START",
            f"Attempt {payload.exam_attempt_id}, {len(payload.question_inventory)} items served, "
            f"duration: {self.timer.format_remaining()}",
        )
        self._check_auto_finish()
        return True

    def close(self):
        """Stop background activity without finishing the attempt."""
        self.timer.stop()
        if self.monitor:
            self.monitor.detach()

    # Answers

    def record_answer(self, selected_option: int, response_time_ms: int) -> Optional[AnswerRecord]:
        """
        Record the student's answer to the current question.

        Returns:
            The answer record, or None if no answer can be taken right now
        """
        if not 1 <= selected_option <= 5:
            raise ValueError(f"selected_option must be between 1 and 5, got {selected_option}")

        with self._lock:
            previous = self.state
            question = previous.current_question
            if question is None or previous.is_complete or self._answering or self._finishing:
                return None
            if self.monitor and self.monitor.is_blocking:
                return None
            self._answering = True

        try:
            now = self.clock()
            answer = AnswerRecord(
                item_id=question.id,
                selected_option=selected_option,
                response_time_ms=response_time_ms,
                served_at=(now - timedelta(milliseconds=response_time_ms)).isoformat(),
                answered_at=now.isoformat(),
            )
            self.clear_error()
            current = self._dispatch(RecordAnswer(answer))
        finally:
            self._answering = False

        self.log("ANSWER_RECORDED", f"Item {answer.item_id}, option {selected_option}, position {current.position}")

        forced = needs_forced_flush(
            previous,
            current,
            self.config,
            time_expired=self._time_expired,
            violation_limit_reached=bool(self.monitor and self.monitor.limit_reached),
        )
        self.request_flush(force=forced)
        self._check_auto_finish()
        return answer

    # Flushing

    def request_flush(self, force: bool = False):
        """Flush now, or on a worker thread when running in background mode."""
        if not self.background:
            self.flush_answers(force=force)
            return
        worker = threading.Thread(target=self._flush_in_background, args=(force,), daemon=True)
        worker.start()

    def _flush_in_background(self, force: bool):
        try:
            self.flush_answers(force=force)
        except Exception as e:
            self._set_error(e)
            self.log("ERROR", f"Background flush error: {e}")

    def flush_answers(self, force: bool = False) -> bool:
        """
        Send the buffered answers to the backend.

        Only one flush runs at a time. A request made while another flush
        is in flight is remembered and replayed once, right after it,
        with the force flags of all such requests combined.

        Returns:
            True if a batch was acknowledged by the server
        """
        with self._lock:
            if self._flushing:
                self._pending_flush = True
                self._pending_force = self._pending_force or force
                self.log("FLUSH_COALESCED", f"Flush requested while in flight (force={force})")
                return False
            self._flushing = True
            self._flush_idle.clear()
            self._flush_thread = threading.current_thread()

        acknowledged = False
        try:
            while True:
                acknowledged = self._flush_once(force) or acknowledged
                with self._lock:
                    if not self._pending_flush:
                        self._flushing = False
                        break
                    force = self._pending_force
                    self._pending_flush = False
                    self._pending_force = False
        finally:
            with self._lock:
                self._flushing = False
                self._pending_flush = False
                self._pending_force = False
                self._flush_thread = None
                self._flush_idle.set()

        self._check_auto_finish()
        return acknowledged

    def wait_for_flush(self, timeout: Optional[float] = None) -> bool:
        """Block until no flush is in flight. Returns False on timeout."""
        if self._flush_thread is threading.current_thread():
            return False
        return self._flush_idle.wait(timeout)

    def _flush_once(self, force: bool) -> bool:
        with self._lock:
            state = self.state
            answers = state.answered_queue
            if state.attempt_id is None or state.is_complete or not answers:
                return False
            if not force and not should_flush(len(answers), remaining_inventory(state), self.config):
                return False
            current_position = high_water_position(state)

        try:
            result = self.api.submit_answer_batch(
                exam_attempt_id=state.attempt_id,
                answers=list(answers),
                batch_size=self.config.batch_size,
                learning_rate=state.learning_rate,
                current_position=current_position,
            )
        except ApiError as e:
            self._set_error(e)
            self.log("FLUSH_FAILED", f"{len(answers)} answers kept for retry: {self.error}")
            return False

        with self._lock:
            self._dispatch(ApplyBatchResult(result))
            self._dispatch(ClearFlushed(answers))
        self.log(
            "FLUSH_SENT",
            f"{len(answers)} answers (force={force}), position {result.position}, "
            f"theta {result.theta:.3f}, se {result.se:.3f}, stop={result.stop}",
        )
        return True

    # Finishing

    def finish(self) -> Optional[FinishResult]:
        """
        Finalize the attempt on the backend.

        Re-entry while a finish is outstanding, or after completion, is
        ignored.
        """
        with self._lock:
            attempt_id = self.state.attempt_id
            if attempt_id is None or self.state.is_complete or self._finishing:
                return None
            self._finishing = True

        self.log("FINISH_START", f"Attempt {attempt_id}")
        try:
            result = self.api.finish_exam(attempt_id)
        except ApiError as e:
            self._set_error(e)
            self.log("FINISH_FAILED", self.error)
            return None
        else:
            self._dispatch(MarkComplete())
            self.finish_result = result
        finally:
            with self._lock:
                self._finishing = False

        self.timer.stop()
        if self.monitor:
            self.monitor.detach()
        self.log("SESSION_FINISH", f"theta_hat={result.theta_hat}, se_theta={result.se_theta}, completed_at={result.completed_at}")

        if self.on_finished:
            self.on_finished(result)
        return result

    def _check_auto_finish(self):
        with self._lock:
            if self.state.is_complete or self._finishing or self._flushing or self._auto_finish_triggered:
                return
            if not is_finalizable(self.state):
                return
            self._auto_finish_triggered = True
        self.finish()

    def _terminate(self, reason: str):
        """Send whatever is buffered, then finish."""
        self.timer.stop()
        try:
            if self.state.answered_queue:
                self.flush_answers(force=True)
                self.wait_for_flush(self.config.request_timeout_seconds)
        finally:
            self.log("TERMINATE", reason)
            self.finish()

    def _handle_time_up(self):
        self._time_expired = True
        self._terminate("Exam time finished")

    def _handle_violation_limit(self):
        self._terminate(f"{self.violation_count} proctoring violations")
