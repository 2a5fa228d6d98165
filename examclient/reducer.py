"""
Session reducer.

Pure transition function for the exam session: every change to the
session snapshot is an action applied with `exam_reducer(state, action)`.
Nothing here touches the network, the clock or a timer.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple, Sequence, Union

from .models import Item, AnswerRecord, StartPayload, BatchResult


@dataclass(frozen=True)
class SessionState:
    """Snapshot of exam progress."""
    attempt_id: Optional[int] = None
    pilot_start: Optional[int] = None
    theta: Optional[float] = None
    se: Optional[float] = None
    learning_rate: float = 0.5
    position: int = 0
    current_question: Optional[Item] = None
    question_queue: Tuple[Item, ...] = ()
    answered_queue: Tuple[AnswerRecord, ...] = ()
    stop: bool = False
    is_complete: bool = False


@dataclass(frozen=True)
class Initialize:
    payload: StartPayload


@dataclass(frozen=True)
class RecordAnswer:
    answer: AnswerRecord


@dataclass(frozen=True)
class ApplyBatchResult:
    result: BatchResult


@dataclass(frozen=True)
class ClearFlushed:
    answers: Tuple[AnswerRecord, ...]


@dataclass(frozen=True)
class MarkComplete:
    pass


Action = Union[Initialize, RecordAnswer, ApplyBatchResult, ClearFlushed, MarkComplete]


INITIAL_STATE = SessionState()


def split_inventory(items: Sequence[Item]) -> Tuple[Optional[Item], Tuple[Item, ...]]:
    """Split served items into (current, rest)."""
    if not items:
        return None, ()
    return items[0], tuple(items[1:])


def exam_reducer(state: SessionState, action: Action) -> SessionState:
    """
    Apply an action to the session snapshot.

    Returns the same object when the action does not apply, so callers
    can detect no-ops with an identity check.
    """
    if isinstance(action, Initialize):
        current, queue = split_inventory(action.payload.question_inventory)
        return SessionState(
            attempt_id=action.payload.exam_attempt_id,
            pilot_start=action.payload.pilot_start_pos,
            theta=action.payload.theta,
            se=action.payload.se_theta,
            learning_rate=action.payload.learning_rate,
            position=0,
            current_question=current,
            question_queue=queue,
            answered_queue=(),
            stop=current is None and not queue,
            is_complete=False,
        )

    # A completed attempt only accepts a fresh Initialize
    if state.is_complete:
        return state

    if isinstance(action, RecordAnswer):
        if state.current_question is None:
            return state
        next_current, next_queue = split_inventory(state.question_queue)
        return replace(
            state,
            answered_queue=state.answered_queue + (action.answer,),
            question_queue=next_queue,
            current_question=next_current,
            position=state.position + 1,
        )

    if isinstance(action, ApplyBatchResult):
        result = action.result
        current = state.current_question
        queue = state.question_queue

        if result.question_inventory:
            if current is None:
                current, delivered = split_inventory(result.question_inventory)
                queue = queue + delivered
            else:
                queue = queue + tuple(result.question_inventory)

        if current is None and queue:
            current, queue = split_inventory(queue)

        return replace(
            state,
            attempt_id=result.exam_attempt_id or state.attempt_id,
            theta=result.theta,
            se=result.se,
            learning_rate=result.learning_rate,
            position=result.position,
            stop=result.stop,
            current_question=current,
            question_queue=queue,
        )

    if isinstance(action, ClearFlushed):
        if not state.answered_queue or not action.answers:
            return state
        flushed = {answer.key for answer in action.answers}
        remaining = tuple(a for a in state.answered_queue if a.key not in flushed)
        if len(remaining) == len(state.answered_queue):
            return state
        return replace(state, answered_queue=remaining)

    if isinstance(action, MarkComplete):
        return replace(state, is_complete=True, stop=True)

    raise TypeError(f"Unknown session action: {action!r}")


def remaining_inventory(state: SessionState) -> int:
    """Items still available locally (current plus queued)."""
    return (1 if state.current_question is not None else 0) + len(state.question_queue)


def high_water_position(state: SessionState) -> int:
    """Highest position known locally, sent as current_position on flush."""
    current_pos = state.current_question.position if state.current_question else 0
    queue_max = max((item.position or 0 for item in state.question_queue), default=0)
    return max(state.position, current_pos or 0, queue_max)


def is_finalizable(state: SessionState) -> bool:
    """True when the server stopped the exam and nothing is left locally."""
    return (
        state.attempt_id is not None
        and state.stop
        and state.current_question is None
        and not state.question_queue
        and not state.answered_queue
    )


def is_last_question(state: SessionState) -> bool:
    return state.current_question is not None and state.stop and not state.question_queue
