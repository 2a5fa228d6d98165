"""Shared fixtures and fakes for the exam client tests."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from examclient.api import ApiError
from examclient.models import BatchResult, FinishResult, Item, StartPayload


def make_item_dict(item_id: int, position: int = 0) -> dict:
    return {
        "id": item_id,
        "position": position,
        "question_text": f"Question {item_id}?",
        "option_a_text": "A",
        "option_b_text": "B",
        "option_c_text": "C",
        "option_d_text": "D",
        "option_e_text": "E",
    }


def make_item(item_id: int, position: int = 0) -> Item:
    return Item.from_dict(make_item_dict(item_id, position))


def make_payload(count: int, attempt_id: int = 1, first_id: int = 100) -> StartPayload:
    return StartPayload.from_dict({
        "exam_attempt_id": attempt_id,
        "theta": 0.0,
        "se_theta": 1.0,
        "learning_rate": 0.5,
        "pilot_start_pos": 0,
        "question_inventory": [make_item_dict(first_id + i, i + 1) for i in range(count)],
    })


class FakeApi:
    """In-memory stand-in for ApiClient."""

    def __init__(self, stop_after=None, new_items=None):
        self.stop_after = stop_after
        self.new_items = list(new_items or [])
        self.batch_calls = []
        self.finish_calls = []
        self.answers_received = 0
        self.fail_batches = 0
        self.fail_finish = 0
        self.on_submit = None

    def start_exam(self):
        return make_payload(6)

    def submit_answer_batch(self, exam_attempt_id, answers, batch_size, learning_rate, current_position):
        self.batch_calls.append({
            "exam_attempt_id": exam_attempt_id,
            "answers": list(answers),
            "batch_size": batch_size,
            "learning_rate": learning_rate,
            "current_position": current_position,
        })
        if self.on_submit:
            hook, self.on_submit = self.on_submit, None
            hook()
        if self.fail_batches:
            self.fail_batches -= 1
            raise ApiError("Network Error: connection refused")

        self.answers_received += len(answers)
        stop = self.stop_after is not None and self.answers_received >= self.stop_after
        items = tuple(self.new_items) if not stop else ()
        self.new_items = []
        return BatchResult(
            exam_attempt_id=exam_attempt_id,
            theta=0.1 * self.answers_received,
            se=1.0 / (1 + self.answers_received),
            learning_rate=learning_rate,
            position=self.answers_received,
            stop=stop,
            question_inventory=items,
        )

    def finish_exam(self, exam_attempt_id):
        self.finish_calls.append(exam_attempt_id)
        if self.fail_finish:
            self.fail_finish -= 1
            raise ApiError("Service unavailable", status_code=503)
        return FinishResult(theta_hat=0.42, se_theta=0.3, completed_at="2026-10-19T10:00:00+00:00")


class StepClock:
    """Clock that advances one second per call."""

    def __init__(self):
        self.now = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def fake_api():
    return FakeApi()


@pytest.fixture
def clock():
    return StepClock()
